"""Pydantic schemas for SearchParameter definition entries.

These mirror the parts of the FHIR SearchParameter resource the registry
needs. Field aliases follow the FHIR JSON names so raw bundle entries can be
validated directly.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


# === Enums ===


class SearchParamType(str, Enum):
    """FHIR search parameter types."""

    NUMBER = "number"
    DATE = "date"
    STRING = "string"
    TOKEN = "token"
    REFERENCE = "reference"
    COMPOSITE = "composite"
    QUANTITY = "quantity"
    URI = "uri"
    SPECIAL = "special"


class SearchParameterStatus(str, Enum):
    """Registry lifecycle states of a search parameter."""

    SUPPORTED = "supported"
    ENABLED = "enabled"
    PENDING_DELETE = "pending-delete"
    DISABLED = "disabled"


# === Entry Schemas ===


class SearchParameterComponentEntry(BaseModel):
    """One component of a composite search parameter."""

    model_config = ConfigDict(extra="ignore")

    definition: str | None = None
    expression: str | None = None

    @field_validator("definition", mode="before")
    @classmethod
    def _normalize_definition(cls, value: Any) -> Any:
        # STU3 nests the canonical URL under definition.reference
        if isinstance(value, dict):
            return value.get("reference")
        return value


class SearchParameterEntry(BaseModel):
    """A SearchParameter resource as read from a definition bundle."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    resource_type: str = Field(alias="resourceType")
    url: str = ""
    name: str | None = None
    code: str
    type: SearchParamType
    expression: str | None = None
    description: str | None = None
    base: list[str] = Field(default_factory=list)
    target: list[str] = Field(default_factory=list)
    component: list[SearchParameterComponentEntry] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value
