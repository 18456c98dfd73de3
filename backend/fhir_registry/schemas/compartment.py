"""Pydantic schemas for CompartmentDefinition entries."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CompartmentType(str, Enum):
    """Compartments the server indexes resources into."""

    PATIENT = "Patient"
    ENCOUNTER = "Encounter"
    RELATED_PERSON = "RelatedPerson"
    PRACTITIONER = "Practitioner"
    DEVICE = "Device"


class CompartmentResourceEntry(BaseModel):
    """Which search parameters link a resource type to the compartment."""

    model_config = ConfigDict(extra="ignore")

    code: str
    param: list[str] = Field(default_factory=list)


class CompartmentDefinitionEntry(BaseModel):
    """A CompartmentDefinition resource as read from a definition bundle."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    resource_type: str = Field(alias="resourceType")
    url: str | None = None
    code: str | None = None
    resource: list[CompartmentResourceEntry] = Field(default_factory=list)
