"""In-memory search parameter definitions.

A SearchParameterInfo is created once per URL and shared: the URL index, every
resource type index and every composite component that references it all hold
the same object, so a status change is visible everywhere at once.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fhir_registry.definitions.constants import (
    RESOURCE_TYPE_SEARCH_PARAMETER_CODE,
    RESOURCE_TYPE_SEARCH_PARAMETER_EXPRESSION,
    RESOURCE_TYPE_SEARCH_PARAMETER_URL,
)
from fhir_registry.definitions.model_info import KnownResourceTypes
from fhir_registry.schemas.search_parameter import (
    SearchParameterEntry,
    SearchParameterStatus,
    SearchParamType,
)


@dataclass(eq=False)
class SearchParameterComponentInfo:
    """A composite component: the referenced definition and its sub-expression."""

    definition_url: str | None
    expression: str | None
    resolved_search_parameter: SearchParameterInfo | None = None


@dataclass(eq=False)
class SearchParameterInfo:
    """A searchable field definition, identified by its absolute URL."""

    url: str
    code: str
    type: SearchParamType
    name: str | None = None
    expression: str | None = None
    description: str | None = None
    base_resource_types: list[str] = field(default_factory=list)
    target_resource_types: list[str] = field(default_factory=list)
    component: list[SearchParameterComponentInfo] = field(default_factory=list)
    status: SearchParameterStatus = SearchParameterStatus.ENABLED

    @classmethod
    def from_entry(
        cls,
        entry: SearchParameterEntry,
        status: SearchParameterStatus = SearchParameterStatus.ENABLED,
    ) -> SearchParameterInfo:
        """Create a definition from a validated bundle entry.

        Args:
            entry: Parsed SearchParameter resource.
            status: Initial lifecycle status.

        Returns:
            New SearchParameterInfo with unresolved components.
        """
        param_type = entry.type
        if entry.code == "_profile" and param_type == SearchParamType.REFERENCE:
            # _profile points at external canonical URLs, not at resources
            param_type = SearchParamType.URI

        return cls(
            url=entry.url,
            code=entry.code,
            type=param_type,
            name=entry.name or entry.code,
            expression=entry.expression,
            description=entry.description,
            base_resource_types=list(entry.base),
            target_resource_types=list(entry.target),
            component=[
                SearchParameterComponentInfo(c.definition, c.expression)
                for c in entry.component
            ],
            status=status,
        )

    @property
    def is_supported(self) -> bool:
        return self.status in (SearchParameterStatus.SUPPORTED, SearchParameterStatus.ENABLED)

    @property
    def is_searchable(self) -> bool:
        return self.status == SearchParameterStatus.ENABLED

    @property
    def is_composite(self) -> bool:
        return self.type == SearchParamType.COMPOSITE

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchParameterInfo):
            return NotImplemented
        return self.url == other.url

    def __hash__(self) -> int:
        return hash(self.url)

    def __repr__(self) -> str:
        return f"<SearchParameterInfo(code={self.code}, type={self.type.value}, url={self.url})>"


def resource_type_search_parameter() -> SearchParameterInfo:
    """Create the _type parameter the published bundles leave out."""
    return SearchParameterInfo(
        url=RESOURCE_TYPE_SEARCH_PARAMETER_URL,
        code=RESOURCE_TYPE_SEARCH_PARAMETER_CODE,
        name=RESOURCE_TYPE_SEARCH_PARAMETER_CODE,
        type=SearchParamType.TOKEN,
        expression=RESOURCE_TYPE_SEARCH_PARAMETER_EXPRESSION,
        description="The type of the resource.",
        base_resource_types=[KnownResourceTypes.RESOURCE],
    )
