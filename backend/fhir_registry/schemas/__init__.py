"""Pydantic schemas."""

from fhir_registry.schemas.compartment import (
    CompartmentDefinitionEntry,
    CompartmentResourceEntry,
    CompartmentType,
)
from fhir_registry.schemas.search_parameter import (
    SearchParameterComponentEntry,
    SearchParameterEntry,
    SearchParameterStatus,
    SearchParamType,
)

__all__ = [
    # Compartment schemas
    "CompartmentDefinitionEntry",
    "CompartmentResourceEntry",
    "CompartmentType",
    # Search parameter schemas
    "SearchParameterComponentEntry",
    "SearchParameterEntry",
    "SearchParameterStatus",
    "SearchParamType",
]
