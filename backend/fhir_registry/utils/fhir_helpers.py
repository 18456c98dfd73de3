"""FHIR reference helpers shared across the registry."""

from typing import NamedTuple

URN_UUID_PREFIX = "urn:uuid:"
URN_OID_PREFIX = "urn:oid:"


class ParsedReference(NamedTuple):
    """The parts of a FHIR reference string."""

    resource_type: str | None
    resource_id: str | None
    base_uri: str | None = None


def extract_reference_id(reference: str | None) -> str | None:
    """Extract FHIR ID from a reference string.

    Handles these formats:
    - "urn:uuid:abc-123" -> "abc-123"
    - "Patient/abc-123" -> "abc-123"
    - "http://server/fhir/Patient/abc-123/_history/2" -> "abc-123"

    Args:
        reference: FHIR reference string

    Returns:
        Extracted ID or None if reference is empty/None
    """
    return parse_reference(reference).resource_id


def parse_reference(reference: str | None) -> ParsedReference:
    """Split a reference into resource type, id and base URI.

    Relative references ("Patient/123"), absolute references
    ("https://server/fhir/Patient/123") and version-specific references
    ("Patient/123/_history/2") carry a resource type. urn:uuid and urn:oid
    references only carry an id.

    Args:
        reference: FHIR reference string

    Returns:
        ParsedReference; every part is None if reference is empty/None
    """
    if not reference or not reference.strip():
        return ParsedReference(None, None)

    reference = reference.strip()
    if reference.startswith(URN_UUID_PREFIX):
        return ParsedReference(None, reference[len(URN_UUID_PREFIX):])
    if reference.startswith(URN_OID_PREFIX):
        return ParsedReference(None, reference[len(URN_OID_PREFIX):])
    if reference.startswith("#"):
        # Contained resource
        return ParsedReference(None, reference[1:])

    segments = reference.split("/")
    if "_history" in segments:
        segments = segments[: segments.index("_history")]
    segments = [s for s in segments if s]

    if len(segments) < 2:
        return ParsedReference(None, segments[-1] if segments else None)

    resource_type, resource_id = segments[-2], segments[-1]
    if not resource_type[:1].isupper():
        return ParsedReference(None, resource_id)

    base_uri = None
    if "://" in reference:
        base_uri = reference[: reference.rindex(f"{resource_type}/{resource_id}")].rstrip("/")

    return ParsedReference(resource_type, resource_id, base_uri or None)
