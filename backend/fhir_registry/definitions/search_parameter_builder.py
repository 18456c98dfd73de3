"""Builds search parameter indexes from a bundle of SearchParameter entries.

The build runs in two passes over the entries. The first pass materializes one
SearchParameterInfo per URL; the second validates each definition and links
composite components to the definitions they reference, so forward references
within a bundle always resolve. Inheritance is then flattened per resource type:
a parameter declared on Resource is available on every resource.

Nothing is written to the caller's indexes until every entry is valid.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from fhir_registry.definitions.constants import (
    BASE_NOT_DEFINED,
    COMPONENT_REFERENCE_CANNOT_BE_COMPOSITE,
    DEFINITION_CONTAINS_INVALID_ENTRY,
    DUPLICATED_ENTRY,
    INVALID_BASE,
    INVALID_COMPONENT,
    INVALID_COMPONENT_EXPRESSION,
    INVALID_COMPONENT_REFERENCE,
    INVALID_DEFINITION_URI,
    INVALID_EXPRESSION,
    INVALID_RESOURCE,
    ISSUE_SEVERITY_FATAL,
    ISSUE_TYPE_INVALID,
    RESOURCE_TYPE_SEARCH_PARAMETER_CODE,
    RESOURCE_TYPE_SEARCH_PARAMETER_URL,
    is_missing_expression,
    should_exclude_entry,
)
from fhir_registry.definitions.model_info import (
    FhirSpecification,
    KnownResourceTypes,
    ModelInfoProvider,
)
from fhir_registry.definitions.search_parameter_info import (
    SearchParameterInfo,
    resource_type_search_parameter,
)
from fhir_registry.exceptions import DefinitionValidationError, OperationOutcomeIssue
from fhir_registry.schemas.search_parameter import SearchParameterEntry, SearchParameterStatus

logger = logging.getLogger(__name__)

SearchParameterSource = Mapping[str, Any] | SearchParameterEntry
UrlLookup = dict[str, SearchParameterInfo]
TypeLookup = dict[str, dict[str, SearchParameterInfo]]


def build(
    entries: Iterable[SearchParameterSource],
    url_lookup: UrlLookup,
    type_lookup: TypeLookup,
    model_info_provider: ModelInfoProvider,
    initial_status: SearchParameterStatus = SearchParameterStatus.ENABLED,
) -> None:
    """Validate entries and add them to the URL and resource type indexes.

    Existing index content is kept: new definitions may reference definitions
    that are already registered, and each resource type's flattened set is the
    union of what it had and what the new entries contribute.

    Args:
        entries: SearchParameter resources, as dicts or parsed entries.
        url_lookup: URL -> definition index, updated in place.
        type_lookup: Resource type -> code -> definition index, updated in place.
        model_info_provider: Source of resource type names and base types.
        initial_status: Status given to newly created definitions.

    Raises:
        DefinitionValidationError: If any entry is invalid. Neither index is
            modified in that case.
    """
    staged, by_base = _validate_and_get_flattened_list(
        list(entries), url_lookup, model_info_provider, initial_status
    )

    _inject_resource_type_parameter(staged, by_base, url_lookup, type_lookup)

    resolved = _build_type_lookup(by_base, type_lookup, model_info_provider)

    url_lookup.update(staged)
    for resource_type, parameters in resolved.items():
        type_lookup[resource_type] = parameters


def _parse_entry(raw: SearchParameterSource) -> SearchParameterEntry | None:
    """Parse a bundle entry, returning None if it is not a SearchParameter."""
    if isinstance(raw, SearchParameterEntry):
        entry = raw
    else:
        try:
            entry = SearchParameterEntry.model_validate(raw)
        except ValidationError:
            return None
    if entry.resource_type != KnownResourceTypes.SEARCH_PARAMETER:
        return None
    return entry


def is_absolute_url(url: str | None) -> bool:
    """Check that a definition URL is absolute (scheme and host, or a urn)."""
    if not url or any(ch.isspace() for ch in url):
        return False
    parsed = urlparse(url)
    if parsed.scheme == "urn":
        return bool(parsed.path)
    return bool(parsed.scheme) and bool(parsed.netloc)


def is_indexed_on(
    info: SearchParameterInfo, base: str, version: FhirSpecification
) -> bool:
    """Whether a validated definition is indexed on one of its base types."""
    if is_missing_expression(info.url, version):
        return False
    return not should_exclude_entry(base, info.name, version)


def _validate_and_get_flattened_list(
    entries: list[SearchParameterSource],
    url_lookup: UrlLookup,
    model_info_provider: ModelInfoProvider,
    initial_status: SearchParameterStatus,
) -> tuple[UrlLookup, dict[str, list[SearchParameterInfo]]]:
    """Run both validation passes.

    Returns:
        The new definitions keyed by URL, and the definitions grouped by the
        base resource type they are declared on.
    """
    issues: list[OperationOutcomeIssue] = []

    def add_issue(template: str, *args: Any) -> None:
        issues.append(
            OperationOutcomeIssue(
                severity=ISSUE_SEVERITY_FATAL,
                code=ISSUE_TYPE_INVALID,
                diagnostics=template.format(*args),
            )
        )

    def ensure_no_issues() -> None:
        if issues:
            raise DefinitionValidationError(DEFINITION_CONTAINS_INVALID_ENTRY, issues)

    parsed = [_parse_entry(raw) for raw in entries]

    # First pass: every entry is a SearchParameter with a unique absolute URL.
    staged: UrlLookup = {}
    for index, entry in enumerate(parsed):
        if entry is None:
            add_issue(INVALID_RESOURCE, index)
            continue
        if not is_absolute_url(entry.url):
            add_issue(INVALID_DEFINITION_URI, index)
            continue
        if entry.url in url_lookup or entry.url in staged:
            add_issue(DUPLICATED_ENTRY, entry.url)
            continue
        staged[entry.url] = SearchParameterInfo.from_entry(entry, initial_status)

    ensure_no_issues()

    def lookup(url: str | None) -> SearchParameterInfo | None:
        if not url:
            return None
        return staged.get(url) or url_lookup.get(url)

    version = model_info_provider.version
    by_base: dict[str, list[SearchParameterInfo]] = defaultdict(list)

    # Second pass: components resolve, bases and expressions are present.
    for info in staged.values():
        if is_missing_expression(info.url, version):
            logger.debug("Skipping search parameter %s with no published expression", info.url)
            continue

        if info.is_composite:
            if not info.component:
                add_issue(INVALID_COMPONENT, info.url)
                continue

            for component_index, component in enumerate(info.component):
                referenced = lookup(component.definition_url)
                if referenced is None:
                    add_issue(INVALID_COMPONENT_REFERENCE, info.url, component_index)
                    continue
                if referenced.is_composite:
                    add_issue(COMPONENT_REFERENCE_CANNOT_BE_COMPOSITE, info.url, component_index)
                    continue
                if not (component.expression or "").strip():
                    add_issue(INVALID_COMPONENT_EXPRESSION, info.url, component_index)
                    continue
                component.resolved_search_parameter = referenced

        if not info.base_resource_types:
            add_issue(BASE_NOT_DEFINED, info.url)
            continue

        for base in info.base_resource_types:
            if not (base or "").strip():
                add_issue(INVALID_BASE, info.url)
                break
            if should_exclude_entry(base, info.name, version):
                continue
            if not (info.expression or "").strip():
                add_issue(INVALID_EXPRESSION, info.url)
                break
            by_base[base].append(info)

    ensure_no_issues()

    return staged, by_base


def _inject_resource_type_parameter(
    staged: UrlLookup,
    by_base: dict[str, list[SearchParameterInfo]],
    url_lookup: UrlLookup,
    type_lookup: TypeLookup,
) -> None:
    """Add the _type parameter on Resource if nothing provides it yet."""
    code = RESOURCE_TYPE_SEARCH_PARAMETER_CODE
    resource = KnownResourceTypes.RESOURCE

    if code in type_lookup.get(resource, {}):
        return
    if any(p.code == code for p in by_base.get(resource, ())):
        return

    url = RESOURCE_TYPE_SEARCH_PARAMETER_URL
    info = staged.get(url) or url_lookup.get(url)
    if info is None:
        info = resource_type_search_parameter()
        staged[url] = info

    by_base[resource].insert(0, info)


def _build_type_lookup(
    by_base: dict[str, list[SearchParameterInfo]],
    type_lookup: TypeLookup,
    model_info_provider: ModelInfoProvider,
) -> TypeLookup:
    """Flatten inheritance into one code -> definition map per resource type.

    Each resource type is resolved at most once per build. The result holds new
    dict objects; the caller swaps them into the index.
    """
    memo: TypeLookup = {}

    def resolve(resource_type: str) -> dict[str, SearchParameterInfo]:
        if resource_type in memo:
            return memo[resource_type]

        resolved: dict[str, SearchParameterInfo] = {}
        memo[resource_type] = resolved

        _merge(resolved, type_lookup.get(resource_type, {}).values(), resource_type)

        base_type = model_info_provider.get_base_type(resource_type)
        if base_type is not None:
            _merge(resolved, resolve(base_type).values(), resource_type)

        _merge(resolved, by_base.get(resource_type, ()), resource_type)
        return resolved

    for resource_type in model_info_provider.get_resource_type_names():
        resolve(resource_type)

    for resource_type in by_base:
        if not model_info_provider.is_known_resource(resource_type):
            logger.warning(
                "Search parameter base type %s is not a known resource type", resource_type
            )
        resolve(resource_type)

    return memo


def _merge(
    resolved: dict[str, SearchParameterInfo],
    parameters: Iterable[SearchParameterInfo],
    resource_type: str,
) -> None:
    """Union parameters into resolved, keeping the first definition per code."""
    for parameter in parameters:
        existing = resolved.get(parameter.code)
        if existing is None:
            resolved[parameter.code] = parameter
        elif existing != parameter:
            logger.warning(
                "Search parameter %s on %s has the same code %s as %s; keeping %s",
                parameter.url,
                resource_type,
                parameter.code,
                existing.url,
                existing.url,
            )
