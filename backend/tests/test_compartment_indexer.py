"""Tests for compartment membership extraction."""

import pytest

from fhir_registry.compartments import (
    CompartmentDefinitionManager,
    CompartmentIndexer,
    CompartmentIndices,
    ReferenceSearchValue,
    SearchIndexEntry,
    StringSearchValue,
)
from fhir_registry.schemas.compartment import CompartmentType


@pytest.fixture
def subject(manager):
    return manager.get_search_parameter("Observation", "subject")


@pytest.fixture
def code(manager):
    return manager.get_search_parameter("Observation", "code")


def reference_entry(parameter, reference):
    return SearchIndexEntry(parameter, ReferenceSearchValue.from_reference(reference))


class TestExtract:
    """Tests for CompartmentIndexer.extract."""

    def test_subject_reference_places_observation_in_patient_compartment(
        self, compartment_indexer, subject
    ):
        indices = compartment_indexer.extract("Observation", [reference_entry(subject, "Patient/123")])

        assert indices["Patient"] == {"123"}

    def test_observation_without_subject_is_absent(self, compartment_indexer, code):
        entries = [SearchIndexEntry(code, StringSearchValue("8867-4"))]

        indices = compartment_indexer.extract("Observation", entries)

        assert indices["Patient"] is None

    def test_reference_to_other_type_is_ignored(self, compartment_indexer, subject):
        """A subject pointing at a Group is not a Patient compartment member."""
        indices = compartment_indexer.extract("Observation", [reference_entry(subject, "Group/g1")])

        assert indices["Patient"] is None

    def test_same_field_feeds_several_compartments(self, compartment_indexer, subject):
        entries = [
            reference_entry(subject, "Patient/123"),
            reference_entry(subject, "Device/d1"),
        ]

        indices = compartment_indexer.extract("Observation", entries)

        assert indices.patient_compartment_entry == {"123"}
        assert indices.device_compartment_entry == {"d1"}

    def test_ids_deduplicated_ignoring_case(self, compartment_indexer, subject):
        entries = [
            reference_entry(subject, "Patient/abc"),
            reference_entry(subject, "Patient/ABC"),
            reference_entry(subject, "https://example.org/fhir/Patient/def"),
        ]

        indices = compartment_indexer.extract("Observation", entries)

        assert indices["Patient"] == {"abc", "def"}

    def test_irrelevant_code_is_ignored(self, compartment_indexer, manager):
        """clinical-patient is not listed for Observation in the Patient compartment."""
        patient = manager.get_search_parameter("Observation", "patient")

        indices = compartment_indexer.extract("Observation", [reference_entry(patient, "Patient/123")])

        assert indices["Patient"] is None

    def test_resource_type_outside_compartments(self, compartment_indexer, subject):
        indices = compartment_indexer.extract("Organization", [reference_entry(subject, "Patient/123")])

        assert all(ids is None for _, ids in indices.items())

    def test_every_compartment_type_is_reported(self, compartment_indexer):
        indices = compartment_indexer.extract("Observation", [])

        assert set(indices.to_dict()) == {c.value for c in CompartmentType}
        assert indices.encounter_compartment_entry is None
        assert indices.related_person_compartment_entry is None
        assert indices.practitioner_compartment_entry is None

    def test_never_returns_empty_set(self, compartment_indexer, subject, code):
        entries = [
            SearchIndexEntry(code, StringSearchValue("x")),
            reference_entry(subject, "Location/l1"),
        ]

        indices = compartment_indexer.extract("Observation", entries)

        assert all(ids is None or len(ids) > 0 for _, ids in indices.items())

    def test_indexer_without_definitions(self, subject):
        indexer = CompartmentIndexer(CompartmentDefinitionManager())

        indices = indexer.extract("Observation", [reference_entry(subject, "Patient/123")])

        assert indices == CompartmentIndices()


class TestReferenceSearchValue:
    """Tests for ReferenceSearchValue.from_reference."""

    def test_relative_reference(self):
        value = ReferenceSearchValue.from_reference("Patient/123")

        assert value == ReferenceSearchValue("Patient", "123")

    def test_absolute_reference(self):
        value = ReferenceSearchValue.from_reference("https://example.org/fhir/Patient/123/_history/2")

        assert value.resource_type == "Patient"
        assert value.resource_id == "123"
        assert value.base_uri == "https://example.org/fhir"

    def test_urn_uuid_reference(self):
        value = ReferenceSearchValue.from_reference("urn:uuid:abc-123")

        assert value.resource_type is None
        assert value.resource_id == "abc-123"

    def test_empty_reference_raises(self):
        with pytest.raises(ValueError):
            ReferenceSearchValue.from_reference("")


class TestCompartmentIndices:
    """Tests for the CompartmentIndices container."""

    def test_item_and_attribute_access_agree(self):
        indices = CompartmentIndices({CompartmentType.PATIENT: frozenset({"1"})})

        assert indices["Patient"] == indices[CompartmentType.PATIENT] == indices.patient_compartment_entry

    def test_unknown_compartment_raises(self):
        with pytest.raises(ValueError):
            CompartmentIndices()["Organization"]

    def test_to_dict(self):
        indices = CompartmentIndices({"Patient": frozenset({"b", "a"})})

        assert indices.to_dict()["Patient"] == ["a", "b"]
        assert indices.to_dict()["Device"] is None
