"""Error types raised by the search parameter and compartment registries.

Build-time problems are aggregated into a single DefinitionValidationError
carrying OperationOutcome-style issues. Runtime lookup misses raise typed,
recoverable errors that the API layer maps onto HTTP responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fhir_registry.schemas.search_parameter import SearchParameterStatus


@dataclass(frozen=True)
class OperationOutcomeIssue:
    """A single validation issue, shaped like a FHIR OperationOutcome.issue."""

    severity: str
    code: str
    diagnostics: str

    def to_fhir(self) -> dict[str, str]:
        return {
            "severity": self.severity,
            "code": self.code,
            "diagnostics": self.diagnostics,
        }


class FhirRegistryError(Exception):
    """Base class for all registry errors."""


class DefinitionValidationError(FhirRegistryError):
    """One or more definition entries in a bundle are invalid.

    Raised by the builders before any index is mutated, so a failed build never
    leaves a partially populated registry behind.
    """

    def __init__(self, message: str, issues: list[OperationOutcomeIssue]):
        self.issues = list(issues)
        details = "; ".join(issue.diagnostics for issue in self.issues)
        super().__init__(f"{message} {details}".strip())

    def to_operation_outcome(self) -> dict:
        return {
            "resourceType": "OperationOutcome",
            "issue": [issue.to_fhir() for issue in self.issues],
        }


class ResourceTypeNotSupportedError(FhirRegistryError):
    """The resource type is unknown to the registry."""

    def __init__(self, resource_type: str):
        self.resource_type = resource_type
        super().__init__(f"Resource type '{resource_type}' is not supported.")


class SearchParameterNotSupportedError(FhirRegistryError):
    """No (visible) search parameter matches the lookup."""

    def __init__(
        self,
        resource_type: str | None = None,
        code: str | None = None,
        url: str | None = None,
    ):
        self.resource_type = resource_type
        self.code = code
        self.url = url
        if url is not None:
            message = f"Search parameter '{url}' is not supported."
        else:
            message = (
                f"Search parameter '{code}' is not supported for resource type "
                f"'{resource_type}'."
            )
        super().__init__(message)


class SearchParameterNotFoundError(FhirRegistryError):
    """A custom search parameter with the given URL does not exist."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Custom search parameter '{url}' was not found.")


class UnsupportedStatusTransitionError(FhirRegistryError):
    """The requested lifecycle transition is not defined."""

    def __init__(
        self,
        url: str,
        current: SearchParameterStatus,
        desired: SearchParameterStatus,
    ):
        self.url = url
        self.current = current
        self.desired = desired
        super().__init__(
            f"Search parameter '{url}' cannot move from '{current.value}' "
            f"to '{desired.value}'."
        )


class TransientLoadError(FhirRegistryError):
    """A persisted custom search parameter could not be loaded.

    Used to tag per-entry failures during initialization; the loader logs and
    skips them so one bad entry never blocks the batch.
    """

    def __init__(self, url: str | None, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not load search parameter '{url}': {reason}")


class CompartmentNotDefinedError(FhirRegistryError):
    """No CompartmentDefinition was loaded for the compartment type."""

    def __init__(self, compartment_type: str):
        self.compartment_type = compartment_type
        super().__init__(f"Compartment '{compartment_type}' is not defined.")
