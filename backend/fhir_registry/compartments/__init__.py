"""Compartment definitions and compartment membership indexing."""

from fhir_registry.compartments.compartment_indexer import (
    CompartmentIndexer,
    CompartmentIndices,
    ReferenceSearchValue,
    SearchIndexEntry,
    StringSearchValue,
)
from fhir_registry.compartments.compartment_manager import CompartmentDefinitionManager

__all__ = [
    "CompartmentDefinitionManager",
    "CompartmentIndexer",
    "CompartmentIndices",
    "ReferenceSearchValue",
    "SearchIndexEntry",
    "StringSearchValue",
]
