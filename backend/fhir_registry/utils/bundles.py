"""Reading definition bundles from disk.

Specification bundles are FHIR Bundle JSON documents whose entries hold
SearchParameter or CompartmentDefinition resources.
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def get_bundle_resources(bundle: dict[str, Any]) -> list[dict[str, Any]]:
    """Extract resources from a FHIR Bundle.

    Args:
        bundle: FHIR Bundle dict with "entry" array of resources.

    Returns:
        The entries' resources, in bundle order. Entries without a resource
        are kept as empty dicts so that issue indexes match entry positions.
    """
    if bundle.get("resourceType") != "Bundle":
        raise ValueError(f"Expected a Bundle, got {bundle.get('resourceType')!r}")
    return [entry.get("resource") or {} for entry in bundle.get("entry", [])]


def load_bundle_resources(path: Path | str) -> list[dict[str, Any]]:
    """Read a Bundle JSON file and return its resources.

    Args:
        path: Path to the bundle file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a FHIR Bundle.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        bundle = json.load(f)

    resources = get_bundle_resources(bundle)
    logger.info("Read %d entries from %s", len(resources), path)
    return resources
