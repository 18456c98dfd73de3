"""Search parameter definitions: model info, builder, registry and views."""

from fhir_registry.definitions.filtered_managers import (
    SearchableSearchParameterDefinitionManager,
    SupportedSearchParameterDefinitionManager,
)
from fhir_registry.definitions.model_info import (
    FhirSpecification,
    KnownResourceTypes,
    ModelInfoProvider,
)
from fhir_registry.definitions.search_parameter_info import (
    SearchParameterComponentInfo,
    SearchParameterInfo,
)
from fhir_registry.definitions.search_parameter_manager import (
    SearchParameterDefinitionManager,
    register_notification_handlers,
)

__all__ = [
    "FhirSpecification",
    "KnownResourceTypes",
    "ModelInfoProvider",
    "SearchParameterComponentInfo",
    "SearchParameterDefinitionManager",
    "SearchParameterInfo",
    "SearchableSearchParameterDefinitionManager",
    "SupportedSearchParameterDefinitionManager",
    "register_notification_handlers",
]
