"""SQLAlchemy models."""

from fhir_registry.models.search_parameter import (
    SearchParameterResource,
    SearchParameterStatusRecord,
)

__all__ = [
    "SearchParameterResource",
    "SearchParameterStatusRecord",
]
