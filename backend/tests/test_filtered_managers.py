"""Tests for the supported and searchable registry views."""

import pytest

from conftest import SP
from fhir_registry.context import RequestContext, get_request_context, request_context
from fhir_registry.definitions import (
    SearchableSearchParameterDefinitionManager,
    SupportedSearchParameterDefinitionManager,
)
from fhir_registry.exceptions import SearchParameterNotSupportedError
from fhir_registry.schemas.search_parameter import SearchParameterStatus

CUSTOM_URL = "http://example.org/fhir/SearchParameter/Patient-favorite-color"


@pytest.fixture
def manager_with_custom(manager, custom_search_parameter):
    """Registry with one Supported custom parameter and one Disabled built-in."""
    manager.add_new_search_parameters([custom_search_parameter])
    manager.update_search_parameter_status(f"{SP}/Patient-name", SearchParameterStatus.DISABLED)
    return manager


class TestSupportedView:
    """Tests for SupportedSearchParameterDefinitionManager."""

    def test_includes_supported_and_enabled(self, manager_with_custom):
        view = SupportedSearchParameterDefinitionManager(manager_with_custom)

        codes = {p.code for p in view.get_search_parameters("Patient")}

        assert "favorite-color" in codes
        assert "birthdate" in codes
        assert "name" not in codes

    def test_lookup_of_hidden_parameter_raises(self, manager_with_custom):
        view = SupportedSearchParameterDefinitionManager(manager_with_custom)

        with pytest.raises(SearchParameterNotSupportedError):
            view.get_search_parameter("Patient", "name")
        with pytest.raises(SearchParameterNotSupportedError):
            view.get_search_parameter_by_url(f"{SP}/Patient-name")

    def test_try_get_of_hidden_parameter_returns_none(self, manager_with_custom):
        view = SupportedSearchParameterDefinitionManager(manager_with_custom)

        assert view.try_get_search_parameter("Patient", "name") is None
        assert view.try_get_search_parameter_by_url(f"{SP}/Patient-name") is None
        assert view.try_get_search_parameter_by_url(CUSTOM_URL) is not None

    def test_requiring_reindexing(self, manager_with_custom):
        view = SupportedSearchParameterDefinitionManager(manager_with_custom)

        urls = [p.url for p in view.get_search_parameters_requiring_reindexing()]

        assert urls == [CUSTOM_URL]

    def test_view_follows_registry_changes(self, manager_with_custom):
        """The view holds no copy of the registry state."""
        view = SupportedSearchParameterDefinitionManager(manager_with_custom)

        manager_with_custom.update_search_parameter_status(CUSTOM_URL, SearchParameterStatus.ENABLED)

        assert view.get_search_parameters_requiring_reindexing() == []

    def test_hashes_pass_through(self, manager_with_custom):
        view = SupportedSearchParameterDefinitionManager(manager_with_custom)

        assert view.search_parameter_hash_map == manager_with_custom.search_parameter_hash_map
        assert view.get_search_parameter_hash_for_resource_type("Patient") is not None


class TestSearchableView:
    """Tests for SearchableSearchParameterDefinitionManager."""

    def test_only_enabled_by_default(self, manager_with_custom):
        view = SearchableSearchParameterDefinitionManager(manager_with_custom)

        codes = {p.code for p in view.get_search_parameters("Patient")}

        assert "birthdate" in codes
        assert "favorite-color" not in codes
        assert "name" not in codes

    def test_supported_parameter_lookup_raises(self, manager_with_custom):
        view = SearchableSearchParameterDefinitionManager(manager_with_custom)

        with pytest.raises(SearchParameterNotSupportedError):
            view.get_search_parameter("Patient", "favorite-color")

    def test_request_can_include_partially_indexed(self, manager_with_custom):
        view = SearchableSearchParameterDefinitionManager(manager_with_custom)

        with request_context(include_partially_indexed_search_params=True):
            codes = {p.code for p in view.get_search_parameters("Patient")}

        assert "favorite-color" in codes
        assert "name" not in codes

    def test_request_context_is_reset(self, manager_with_custom):
        view = SearchableSearchParameterDefinitionManager(manager_with_custom)

        with request_context(include_partially_indexed_search_params=True):
            pass

        assert view.try_get_search_parameter("Patient", "favorite-color") is None

    def test_explicit_override(self, manager_with_custom):
        view = SearchableSearchParameterDefinitionManager(
            manager_with_custom, include_partially_indexed=True
        )

        assert view.try_get_search_parameter("Patient", "favorite-color") is not None

    def test_custom_context_accessor(self, manager_with_custom):
        view = SearchableSearchParameterDefinitionManager(
            manager_with_custom,
            request_context_accessor=lambda: RequestContext(include_partially_indexed_search_params=True),
        )

        assert {p.url for p in view.all_search_parameters} >= {CUSTOM_URL}


class TestRequestContext:
    """Tests for the request context variable."""

    def test_default_context(self):
        assert get_request_context().include_partially_indexed_search_params is False

    def test_context_manager_binds_and_resets(self):
        with request_context(include_partially_indexed_search_params=True) as context:
            assert get_request_context() is context

        assert get_request_context().include_partially_indexed_search_params is False
