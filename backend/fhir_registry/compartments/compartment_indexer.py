"""Computes which compartments a resource belongs to.

The indexer runs once per resource write, after search values have been
extracted from the resource. A compartment with no relevant reference is
recorded as None, which storage keeps distinct from an empty membership.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from fhir_registry.compartments.compartment_manager import CompartmentDefinitionManager
from fhir_registry.definitions.search_parameter_info import SearchParameterInfo
from fhir_registry.schemas.compartment import CompartmentType
from fhir_registry.utils.fhir_helpers import parse_reference


# =============================================================================
# Search Values
# =============================================================================


@dataclass(frozen=True)
class ReferenceSearchValue:
    """A reference extracted from a resource field."""

    resource_type: str | None
    resource_id: str
    base_uri: str | None = None

    @classmethod
    def from_reference(cls, reference: str) -> ReferenceSearchValue:
        """Parse "Patient/123", an absolute URL or a urn:uuid reference.

        Raises:
            ValueError: If the reference has no resource id.
        """
        parsed = parse_reference(reference)
        if parsed.resource_id is None:
            raise ValueError(f"Reference {reference!r} does not identify a resource")
        return cls(parsed.resource_type, parsed.resource_id, parsed.base_uri)


@dataclass(frozen=True)
class StringSearchValue:
    """A string extracted from a resource field."""

    value: str


SearchValue = ReferenceSearchValue | StringSearchValue


@dataclass(frozen=True)
class SearchIndexEntry:
    """One extracted value of a search parameter for a resource."""

    search_parameter: SearchParameterInfo
    value: SearchValue


# =============================================================================
# Compartment Indices
# =============================================================================


class CompartmentIndices:
    """Compartment membership of one resource.

    Each compartment maps to None (no relevant reference) or a non-empty set of
    referenced resource ids.
    """

    def __init__(self, entries: dict[CompartmentType, frozenset[str] | None] | None = None):
        self._entries = {compartment_type: None for compartment_type in CompartmentType}
        if entries:
            self._entries.update({CompartmentType(k): v for k, v in entries.items()})

    def __getitem__(self, compartment_type: CompartmentType | str) -> frozenset[str] | None:
        return self._entries[CompartmentType(compartment_type)]

    def items(self):
        return self._entries.items()

    def to_dict(self) -> dict[str, list[str] | None]:
        return {
            compartment_type.value: sorted(ids) if ids is not None else None
            for compartment_type, ids in self._entries.items()
        }

    @property
    def patient_compartment_entry(self) -> frozenset[str] | None:
        return self._entries[CompartmentType.PATIENT]

    @property
    def encounter_compartment_entry(self) -> frozenset[str] | None:
        return self._entries[CompartmentType.ENCOUNTER]

    @property
    def related_person_compartment_entry(self) -> frozenset[str] | None:
        return self._entries[CompartmentType.RELATED_PERSON]

    @property
    def practitioner_compartment_entry(self) -> frozenset[str] | None:
        return self._entries[CompartmentType.PRACTITIONER]

    @property
    def device_compartment_entry(self) -> frozenset[str] | None:
        return self._entries[CompartmentType.DEVICE]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompartmentIndices):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"<CompartmentIndices({self.to_dict()})>"


# =============================================================================
# Indexer
# =============================================================================


class CompartmentIndexer:
    """Extracts compartment membership from a resource's search index entries."""

    def __init__(self, compartment_manager: CompartmentDefinitionManager):
        self._compartment_manager = compartment_manager

    def extract(
        self, resource_type: str, search_index_entries: Iterable[SearchIndexEntry]
    ) -> CompartmentIndices:
        """Compute compartment membership for a resource.

        Args:
            resource_type: Type of the resource being written.
            search_index_entries: Values already extracted from the resource.

        Returns:
            CompartmentIndices with None for every compartment the resource
            has no relevant reference into.
        """
        entries = list(search_index_entries)
        result: dict[CompartmentType, frozenset[str] | None] = {}

        for compartment_type in CompartmentType:
            codes = self._compartment_manager.try_get_search_params(resource_type, compartment_type)
            if not codes:
                result[compartment_type] = None
                continue

            owner_type = CompartmentDefinitionManager.compartment_type_to_resource_type(
                compartment_type
            )
            result[compartment_type] = _collect_ids(entries, codes, owner_type)

        return CompartmentIndices(result)


def _collect_ids(
    entries: list[SearchIndexEntry], codes: frozenset[str], owner_type: str
) -> frozenset[str] | None:
    """Referenced ids of owner_type, deduplicated ignoring case; None if there are none."""
    seen: dict[str, str] = {}
    for entry in entries:
        if entry.search_parameter.code not in codes:
            continue
        value = entry.value
        if not isinstance(value, ReferenceSearchValue) or value.resource_type != owner_type:
            continue
        # First spelling wins
        seen.setdefault(value.resource_id.casefold(), value.resource_id)
    return frozenset(seen.values()) if seen else None
