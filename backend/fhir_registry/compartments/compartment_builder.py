"""Builds the compartment indexes from CompartmentDefinition entries.

Produces two lookups: compartment type -> definition, and resource type ->
compartment type -> the search parameter codes that place a resource of that
type into the compartment.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from fhir_registry.definitions.constants import ISSUE_SEVERITY_FATAL, ISSUE_TYPE_INVALID
from fhir_registry.definitions.model_info import KnownResourceTypes
from fhir_registry.definitions.search_parameter_builder import is_absolute_url
from fhir_registry.exceptions import DefinitionValidationError, OperationOutcomeIssue
from fhir_registry.schemas.compartment import CompartmentDefinitionEntry, CompartmentType

logger = logging.getLogger(__name__)

COMPARTMENT_DEFINITION_CONTAINS_INVALID_ENTRY = (
    "The compartment definition contains one or more invalid entries."
)
INVALID_COMPARTMENT_RESOURCE = "Entry {0} is not a valid CompartmentDefinition resource."
INVALID_COMPARTMENT_TYPE = "Entry {0} has an invalid compartment type '{1}'."
INVALID_COMPARTMENT_URL = "Entry {0} does not have a valid absolute url."
DUPLICATE_COMPARTMENT = "Compartment '{0}' is defined more than once."

CompartmentSource = Mapping[str, Any] | CompartmentDefinitionEntry
CompartmentLookup = dict[CompartmentType, CompartmentDefinitionEntry]
ResourceTypeLookup = dict[str, dict[CompartmentType, frozenset[str]]]


def build(entries: Iterable[CompartmentSource]) -> tuple[CompartmentLookup, ResourceTypeLookup]:
    """Validate CompartmentDefinition entries and index them.

    Args:
        entries: CompartmentDefinition resources, as dicts or parsed entries.

    Returns:
        (compartment_lookup, resource_type_lookup)

    Raises:
        DefinitionValidationError: If any entry is invalid.
    """
    compartment_lookup = _validate_and_get_compartment_lookup(list(entries))

    resource_type_lookup: ResourceTypeLookup = {}
    for compartment_type, definition in compartment_lookup.items():
        for resource in definition.resource:
            if not resource.param:
                continue
            by_compartment = resource_type_lookup.setdefault(resource.code, {})
            if compartment_type in by_compartment:
                logger.debug(
                    "Ignoring repeated %s entry in the %s compartment",
                    resource.code,
                    compartment_type.value,
                )
                continue
            by_compartment[compartment_type] = frozenset(resource.param)

    return compartment_lookup, resource_type_lookup


def _validate_and_get_compartment_lookup(entries: list[CompartmentSource]) -> CompartmentLookup:
    issues: list[OperationOutcomeIssue] = []

    def add_issue(template: str, *args: Any) -> None:
        issues.append(
            OperationOutcomeIssue(
                severity=ISSUE_SEVERITY_FATAL,
                code=ISSUE_TYPE_INVALID,
                diagnostics=template.format(*args),
            )
        )

    compartment_lookup: CompartmentLookup = {}
    for index, raw in enumerate(entries):
        entry = _parse_entry(raw)
        if entry is None:
            add_issue(INVALID_COMPARTMENT_RESOURCE, index)
            continue

        try:
            compartment_type = CompartmentType(entry.code)
        except ValueError:
            add_issue(INVALID_COMPARTMENT_TYPE, index, entry.code)
            continue

        if not is_absolute_url(entry.url):
            add_issue(INVALID_COMPARTMENT_URL, index)
            continue

        if compartment_type in compartment_lookup:
            add_issue(DUPLICATE_COMPARTMENT, compartment_type.value)
            continue

        compartment_lookup[compartment_type] = entry

    if issues:
        raise DefinitionValidationError(COMPARTMENT_DEFINITION_CONTAINS_INVALID_ENTRY, issues)

    return compartment_lookup


def _parse_entry(raw: CompartmentSource) -> CompartmentDefinitionEntry | None:
    if isinstance(raw, CompartmentDefinitionEntry):
        entry = raw
    else:
        try:
            entry = CompartmentDefinitionEntry.model_validate(raw)
        except ValidationError:
            return None
    if entry.resource_type != KnownResourceTypes.COMPARTMENT_DEFINITION:
        return None
    return entry
