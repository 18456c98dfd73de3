"""Status-filtered views over the search parameter registry.

The views hold no state of their own; every call reads through to the shared
SearchParameterDefinitionManager and drops definitions the view cannot see.
"""

from collections.abc import Callable

from fhir_registry.context import RequestContext, get_request_context
from fhir_registry.definitions.search_parameter_info import SearchParameterInfo
from fhir_registry.definitions.search_parameter_manager import SearchParameterDefinitionManager
from fhir_registry.exceptions import SearchParameterNotSupportedError


class _FilteredSearchParameterDefinitionManager:
    """Read-only view that hides definitions rejected by _is_visible."""

    def __init__(self, inner: SearchParameterDefinitionManager):
        self._inner = inner

    def _is_visible(self, parameter: SearchParameterInfo) -> bool:
        raise NotImplementedError

    @property
    def all_search_parameters(self) -> list[SearchParameterInfo]:
        return [p for p in self._inner.all_search_parameters if self._is_visible(p)]

    @property
    def search_parameter_hash_map(self) -> dict[str, str]:
        return self._inner.search_parameter_hash_map

    def get_search_parameters(self, resource_type: str) -> list[SearchParameterInfo]:
        return [p for p in self._inner.get_search_parameters(resource_type) if self._is_visible(p)]

    def get_search_parameter(self, resource_type: str, code: str) -> SearchParameterInfo:
        parameter = self._inner.get_search_parameter(resource_type, code)
        if not self._is_visible(parameter):
            raise SearchParameterNotSupportedError(resource_type=resource_type, code=code)
        return parameter

    def try_get_search_parameter(self, resource_type: str, code: str) -> SearchParameterInfo | None:
        parameter = self._inner.try_get_search_parameter(resource_type, code)
        if parameter is None or not self._is_visible(parameter):
            return None
        return parameter

    def get_search_parameter_by_url(self, url: str) -> SearchParameterInfo:
        parameter = self._inner.get_search_parameter_by_url(url)
        if not self._is_visible(parameter):
            raise SearchParameterNotSupportedError(url=url)
        return parameter

    def try_get_search_parameter_by_url(self, url: str) -> SearchParameterInfo | None:
        parameter = self._inner.try_get_search_parameter_by_url(url)
        if parameter is None or not self._is_visible(parameter):
            return None
        return parameter

    def get_search_parameter_hash_for_resource_type(self, resource_type: str) -> str | None:
        return self._inner.get_search_parameter_hash_for_resource_type(resource_type)


class SupportedSearchParameterDefinitionManager(_FilteredSearchParameterDefinitionManager):
    """Definitions the indexer extracts values for: Supported or Enabled."""

    def _is_visible(self, parameter: SearchParameterInfo) -> bool:
        return parameter.is_supported

    def get_search_parameters_requiring_reindexing(self) -> list[SearchParameterInfo]:
        """Supported definitions that are not yet searchable."""
        return [
            p for p in self._inner.all_search_parameters if p.is_supported and not p.is_searchable
        ]


class SearchableSearchParameterDefinitionManager(_FilteredSearchParameterDefinitionManager):
    """Definitions queries may use.

    Normally only Enabled definitions are visible. A request that opts in to
    partially indexed search parameters also sees Supported ones.
    """

    def __init__(
        self,
        inner: SearchParameterDefinitionManager,
        request_context_accessor: Callable[[], RequestContext] = get_request_context,
        include_partially_indexed: bool | None = None,
    ):
        """Create the view.

        Args:
            inner: The shared registry.
            request_context_accessor: Returns the current request's context.
            include_partially_indexed: Overrides the request context when set.
        """
        super().__init__(inner)
        self._request_context_accessor = request_context_accessor
        self._include_partially_indexed = include_partially_indexed

    @property
    def include_partially_indexed(self) -> bool:
        if self._include_partially_indexed is not None:
            return self._include_partially_indexed
        return self._request_context_accessor().include_partially_indexed_search_params

    def _is_visible(self, parameter: SearchParameterInfo) -> bool:
        if parameter.is_searchable:
            return True
        return self.include_partially_indexed and parameter.is_supported
