"""Read-only lookups over the compartment definitions."""

import logging
from collections.abc import Iterable

from fhir_registry.compartments.compartment_builder import CompartmentSource, build
from fhir_registry.exceptions import CompartmentNotDefinedError
from fhir_registry.schemas.compartment import CompartmentDefinitionEntry, CompartmentType

logger = logging.getLogger(__name__)


class CompartmentDefinitionManager:
    """Answers which search parameters tie a resource type to a compartment.

    Built once at startup; there is no runtime mutation.
    """

    def __init__(self, compartment_definitions: Iterable[CompartmentSource] = ()):
        """Build the lookups.

        Raises:
            DefinitionValidationError: If any CompartmentDefinition is invalid.
        """
        self._compartment_lookup, self._resource_type_lookup = build(compartment_definitions)

        resource_types: dict[CompartmentType, set[str]] = {}
        for resource_type, by_compartment in self._resource_type_lookup.items():
            for compartment_type in by_compartment:
                resource_types.setdefault(compartment_type, set()).add(resource_type)
        self._compartment_resource_types = {
            compartment_type: frozenset(types) for compartment_type, types in resource_types.items()
        }

        logger.info(
            "Loaded %d compartment definitions covering %d resource types",
            len(self._compartment_lookup),
            len(self._resource_type_lookup),
        )

    @property
    def compartment_types(self) -> list[CompartmentType]:
        return list(self._compartment_lookup)

    def try_get_search_params(
        self, resource_type: str, compartment_type: CompartmentType
    ) -> frozenset[str] | None:
        """Codes placing resource_type in the compartment, or None if it is not a member."""
        return self._resource_type_lookup.get(resource_type, {}).get(compartment_type)

    def try_get_resource_types(self, compartment_type: CompartmentType) -> frozenset[str] | None:
        return self._compartment_resource_types.get(compartment_type)

    def get_compartment_definition(
        self, compartment_type: CompartmentType
    ) -> CompartmentDefinitionEntry:
        """The CompartmentDefinition for a compartment type.

        Raises:
            CompartmentNotDefinedError: If none was loaded.
        """
        definition = self._compartment_lookup.get(compartment_type)
        if definition is None:
            raise CompartmentNotDefinedError(CompartmentType(compartment_type).value)
        return definition

    @staticmethod
    def compartment_type_to_resource_type(compartment_type: CompartmentType) -> str:
        """The resource type that owns a compartment; each shares its name."""
        return CompartmentType(compartment_type).value

    @staticmethod
    def resource_type_to_compartment_type(resource_type: str) -> CompartmentType:
        """The compartment owned by a resource type.

        Raises:
            ValueError: If the resource type does not own a compartment.
        """
        try:
            return CompartmentType(resource_type)
        except ValueError:
            raise ValueError(f"Resource type '{resource_type}' does not define a compartment") from None
