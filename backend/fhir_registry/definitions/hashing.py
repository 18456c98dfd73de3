"""Content hash of a resource type's search parameters.

Storage compares the hash stored with each resource against the current one to
decide whether the resource needs reindexing, so the value depends only on the
(code, status) pairs and never on insertion order.
"""

import hashlib
from collections.abc import Iterable

from fhir_registry.definitions.search_parameter_info import SearchParameterInfo


def calculate_search_parameter_hash(parameters: Iterable[SearchParameterInfo]) -> str:
    """Hash the canonical (code, status) multiset of parameters.

    Args:
        parameters: Definitions currently registered for one resource type.

    Returns:
        Hex encoded SHA-256 digest.
    """
    lines = sorted(f"{p.code}|{p.status.value}" for p in parameters)
    digest = hashlib.sha256()
    for line in lines:
        digest.update(line.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()
