"""Shared constants for search parameter definitions.

Centralizes issue messages, exclusion lists and well-known URLs used by the
builder and the registry.
"""

from fhir_registry.definitions.model_info import FhirSpecification, KnownResourceTypes

# OperationOutcome issue values used for build failures
ISSUE_SEVERITY_FATAL = "fatal"
ISSUE_TYPE_INVALID = "invalid"

# Issue diagnostics
DEFINITION_CONTAINS_INVALID_ENTRY = "The search parameter definition contains one or more invalid entries."
INVALID_RESOURCE = "Entry {0} is not a valid SearchParameter resource."
INVALID_DEFINITION_URI = "Entry {0} does not have a valid absolute url."
DUPLICATED_ENTRY = "A search parameter with url '{0}' is defined more than once."
INVALID_COMPONENT = "Composite search parameter '{0}' does not define any components."
INVALID_COMPONENT_REFERENCE = "Component {1} of search parameter '{0}' references an unknown search parameter."
COMPONENT_REFERENCE_CANNOT_BE_COMPOSITE = "Component {1} of search parameter '{0}' cannot reference another composite search parameter."
INVALID_COMPONENT_EXPRESSION = "Component {1} of search parameter '{0}' does not have an expression."
BASE_NOT_DEFINED = "Search parameter '{0}' does not define a base resource type."
INVALID_BASE = "Search parameter '{0}' has an empty base resource type."
INVALID_EXPRESSION = "Search parameter '{0}' does not have an expression."

# The _type parameter is missing from the published definition bundles
RESOURCE_TYPE_SEARCH_PARAMETER_URL = "http://hl7.org/fhir/SearchParameter/Resource-type"
RESOURCE_TYPE_SEARCH_PARAMETER_CODE = "_type"
RESOURCE_TYPE_SEARCH_PARAMETER_EXPRESSION = "Resource.type().name"

# (base resource type, name) pairs published with intentionally empty expressions
EXCLUDED_ENTRIES = frozenset(
    {
        (KnownResourceTypes.DOMAIN_RESOURCE, "_text"),
        (KnownResourceTypes.RESOURCE, "_text"),
        (KnownResourceTypes.RESOURCE, "_content"),
        (KnownResourceTypes.RESOURCE, "_query"),
        (KnownResourceTypes.RESOURCE, "_list"),
        (KnownResourceTypes.RESOURCE, "_has"),
        (KnownResourceTypes.RESOURCE, "_filter"),
        (KnownResourceTypes.RESOURCE, "_type"),
    }
)

EXCLUDED_ENTRIES_BY_VERSION = {
    FhirSpecification.STU3: frozenset(
        {
            ("DataElement", "objectClass"),
            ("DataElement", "objectClassProperty"),
        }
    ),
}

# Definitions published without expressions; skipped rather than rejected
MISSING_EXPRESSIONS_BY_VERSION = {
    FhirSpecification.R5: frozenset(
        {
            "http://hl7.org/fhir/SearchParameter/EvidenceVariable-topic",
            "http://hl7.org/fhir/SearchParameter/ImagingStudy-reason",
            "http://hl7.org/fhir/SearchParameter/Medication-form",
            "http://hl7.org/fhir/SearchParameter/MedicationKnowledge-packaging-cost",
            "http://hl7.org/fhir/SearchParameter/MedicationKnowledge-packaging-cost-concept",
            "http://hl7.org/fhir/SearchParameter/Subscription-payload",
            "http://hl7.org/fhir/SearchParameter/Subscription-type",
            "http://hl7.org/fhir/SearchParameter/Subscription-url",
            "http://hl7.org/fhir/SearchParameter/TestScript-scope-artifact-conformance",
            "http://hl7.org/fhir/SearchParameter/TestScript-scope-artifact-phase",
        }
    ),
}


def should_exclude_entry(
    resource_type: str, name: str | None, version: FhirSpecification
) -> bool:
    """Check whether a definition name on a base type is allowed an empty expression."""
    if (resource_type, name) in EXCLUDED_ENTRIES:
        return True
    return (resource_type, name) in EXCLUDED_ENTRIES_BY_VERSION.get(version, frozenset())


def is_missing_expression(url: str, version: FhirSpecification) -> bool:
    """Check whether a definition is a known-broken entry for this version."""
    return url in MISSING_EXPRESSIONS_BY_VERSION.get(version, frozenset())
