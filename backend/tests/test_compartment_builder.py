"""Tests for compartment definition building and lookups."""

import pytest

from fhir_registry.compartments import CompartmentDefinitionManager
from fhir_registry.compartments.compartment_builder import build
from fhir_registry.exceptions import CompartmentNotDefinedError, DefinitionValidationError
from fhir_registry.schemas.compartment import CompartmentDefinitionEntry, CompartmentType


def compartment(code, url=None, resource=()):
    return {
        "resourceType": "CompartmentDefinition",
        "url": url or f"http://hl7.org/fhir/CompartmentDefinition/{str(code).lower()}",
        "code": code,
        "resource": list(resource),
    }


class TestBuild:
    """Tests for the compartment builder."""

    def test_indexes_params_by_resource_and_compartment(self, compartment_definition_entries):
        compartment_lookup, resource_type_lookup = build(compartment_definition_entries)

        assert set(compartment_lookup) == {
            CompartmentType.PATIENT,
            CompartmentType.ENCOUNTER,
            CompartmentType.DEVICE,
        }
        assert resource_type_lookup["Observation"][CompartmentType.PATIENT] == frozenset(
            {"subject", "performer"}
        )
        assert resource_type_lookup["Observation"][CompartmentType.ENCOUNTER] == frozenset({"encounter"})

    def test_resource_without_params_is_not_indexed(self, compartment_definition_entries):
        _, resource_type_lookup = build(compartment_definition_entries)

        assert "Organization" not in resource_type_lookup

    def test_repeated_resource_keeps_first(self):
        entries = [
            compartment(
                "Patient",
                resource=[
                    {"code": "Observation", "param": ["subject"]},
                    {"code": "Observation", "param": ["performer"]},
                ],
            )
        ]

        _, resource_type_lookup = build(entries)

        assert resource_type_lookup["Observation"][CompartmentType.PATIENT] == frozenset({"subject"})

    def test_accepts_parsed_entries(self):
        entry = CompartmentDefinitionEntry.model_validate(
            compartment("Device", resource=[{"code": "Observation", "param": ["device"]}])
        )

        compartment_lookup, _ = build([entry])

        assert compartment_lookup[CompartmentType.DEVICE] is entry

    def test_duplicate_compartment_is_rejected(self):
        entries = [compartment("Patient"), compartment("Patient", url="http://example.org/patient")]

        with pytest.raises(DefinitionValidationError) as exc_info:
            build(entries)

        assert "Patient" in exc_info.value.issues[0].diagnostics

    def test_unknown_compartment_type_is_rejected(self):
        with pytest.raises(DefinitionValidationError):
            build([compartment("Organization")])

    def test_missing_code_is_rejected(self):
        with pytest.raises(DefinitionValidationError):
            build([compartment(None, url="http://example.org/none")])

    def test_relative_url_is_rejected(self):
        with pytest.raises(DefinitionValidationError):
            build([compartment("Patient", url="CompartmentDefinition/patient")])

    def test_wrong_resource_type_is_rejected(self):
        with pytest.raises(DefinitionValidationError):
            build([{"resourceType": "SearchParameter", "code": "Patient", "url": "http://x.org/p"}])

    def test_issues_are_aggregated(self):
        entries = [
            compartment("Organization"),
            compartment("Patient", url="relative"),
            {"resourceType": "Patient"},
        ]

        with pytest.raises(DefinitionValidationError) as exc_info:
            build(entries)

        assert len(exc_info.value.issues) == 3


class TestCompartmentDefinitionManager:
    """Tests for CompartmentDefinitionManager lookups."""

    def test_try_get_search_params(self, compartment_manager):
        params = compartment_manager.try_get_search_params("Condition", CompartmentType.PATIENT)

        assert params == frozenset({"patient", "asserter"})

    def test_try_get_search_params_missing(self, compartment_manager):
        assert compartment_manager.try_get_search_params("Condition", CompartmentType.DEVICE) is None
        assert compartment_manager.try_get_search_params("Unknown", CompartmentType.PATIENT) is None

    def test_try_get_resource_types(self, compartment_manager):
        resource_types = compartment_manager.try_get_resource_types(CompartmentType.PATIENT)

        assert resource_types == frozenset({"Observation", "Condition", "Patient"})

    def test_try_get_resource_types_undefined(self, compartment_manager):
        assert compartment_manager.try_get_resource_types(CompartmentType.PRACTITIONER) is None

    def test_get_compartment_definition(self, compartment_manager):
        definition = compartment_manager.get_compartment_definition(CompartmentType.ENCOUNTER)

        assert definition.url == "http://hl7.org/fhir/CompartmentDefinition/encounter"

    def test_get_undefined_compartment_raises(self, compartment_manager):
        with pytest.raises(CompartmentNotDefinedError):
            compartment_manager.get_compartment_definition(CompartmentType.RELATED_PERSON)

    def test_compartment_types(self, compartment_manager):
        assert set(compartment_manager.compartment_types) == {
            CompartmentType.PATIENT,
            CompartmentType.ENCOUNTER,
            CompartmentType.DEVICE,
        }

    def test_compartment_type_to_resource_type(self):
        assert (
            CompartmentDefinitionManager.compartment_type_to_resource_type(CompartmentType.RELATED_PERSON)
            == "RelatedPerson"
        )

    def test_resource_type_to_compartment_type(self):
        assert (
            CompartmentDefinitionManager.resource_type_to_compartment_type("Practitioner")
            == CompartmentType.PRACTITIONER
        )

    def test_resource_type_without_compartment_raises(self):
        with pytest.raises(ValueError):
            CompartmentDefinitionManager.resource_type_to_compartment_type("Observation")

    def test_empty_manager(self):
        manager = CompartmentDefinitionManager()

        assert manager.compartment_types == []
        assert manager.try_get_search_params("Observation", CompartmentType.PATIENT) is None
