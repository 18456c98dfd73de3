"""Wires the registry together from settings.

Usage:
    python -m fhir_registry.bootstrap

Reads the configured specification bundles, creates the custom search
parameter tables, loads persisted custom parameters and prints a summary.
"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from fhir_registry import config
from fhir_registry.compartments import CompartmentDefinitionManager, CompartmentIndexer
from fhir_registry.config import Settings
from fhir_registry.database import create_engine, create_session_maker, create_tables
from fhir_registry.definitions import (
    ModelInfoProvider,
    SearchableSearchParameterDefinitionManager,
    SearchParameterDefinitionManager,
    SupportedSearchParameterDefinitionManager,
    register_notification_handlers,
)
from fhir_registry.repositories import DataStoreFactory, search_parameter_store_scope
from fhir_registry.services.notifications import (
    NotificationMediator,
    StorageInitializedNotification,
)
from fhir_registry.utils.bundles import load_bundle_resources

logger = logging.getLogger(__name__)


@dataclass
class Registry:
    """Everything the storage and search layers need from the registry."""

    model_info_provider: ModelInfoProvider
    search_parameter_definition_manager: SearchParameterDefinitionManager
    supported_search_parameters: SupportedSearchParameterDefinitionManager
    searchable_search_parameters: SearchableSearchParameterDefinitionManager
    compartment_definition_manager: CompartmentDefinitionManager
    compartment_indexer: CompartmentIndexer
    mediator: NotificationMediator


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_data_store_factory(database_url: str, echo: bool = False) -> tuple[AsyncEngine, DataStoreFactory]:
    """Create the engine and a store factory for custom search parameters."""
    engine = create_engine(database_url, echo=echo)
    return engine, search_parameter_store_scope(create_session_maker(engine))


def create_registry(
    settings: Settings,
    mediator: NotificationMediator | None = None,
    data_store_factory: DataStoreFactory | None = None,
) -> Registry:
    """Build the registry from the configured bundles.

    Args:
        settings: Registry settings.
        mediator: Notification mediator; a new one is created if omitted.
        data_store_factory: Store of custom search parameters. Without one,
            initialization loads nothing beyond the bundles.

    Raises:
        DefinitionValidationError: If a bundle is invalid.
    """
    model_info_provider = ModelInfoProvider(settings.fhir_version)
    mediator = mediator or NotificationMediator()

    search_parameters = []
    if settings.search_parameters_path is not None:
        search_parameters = load_bundle_resources(settings.search_parameters_path)
    else:
        logger.warning("No search parameter bundle configured")

    compartment_definitions = []
    if settings.compartment_definitions_path is not None:
        compartment_definitions = load_bundle_resources(settings.compartment_definitions_path)
    else:
        logger.warning("No compartment definition bundle configured")

    manager = SearchParameterDefinitionManager(
        model_info_provider,
        search_parameters,
        data_store_factory=data_store_factory,
        mediator=mediator,
        page_size=settings.initialization_page_size,
        retry_count=settings.notification_retry_count,
    )
    register_notification_handlers(mediator, manager)

    compartment_manager = CompartmentDefinitionManager(compartment_definitions)

    logger.info(
        "Registry built for FHIR %s with %d search parameters",
        settings.fhir_version.value,
        len(manager.all_search_parameters),
    )

    return Registry(
        model_info_provider=model_info_provider,
        search_parameter_definition_manager=manager,
        supported_search_parameters=SupportedSearchParameterDefinitionManager(manager),
        searchable_search_parameters=SearchableSearchParameterDefinitionManager(manager),
        compartment_definition_manager=compartment_manager,
        compartment_indexer=CompartmentIndexer(compartment_manager),
        mediator=mediator,
    )


async def initialize_registry(settings: Settings) -> Registry:
    """Build the registry and load persisted custom search parameters."""
    engine, data_store_factory = create_data_store_factory(settings.database_url, echo=settings.debug)
    try:
        await create_tables(engine)
        registry = create_registry(settings, data_store_factory=data_store_factory)
        await registry.mediator.publish(StorageInitializedNotification())
        await registry.mediator.drain()
    finally:
        await engine.dispose()
    return registry


def main() -> None:
    """Main entry point: build the registry and print a summary."""
    settings = config.settings
    configure_logging(settings.log_level)
    registry = asyncio.run(initialize_registry(settings))

    manager = registry.search_parameter_definition_manager
    print("=" * 50)
    print("FHIR Registry")
    print("=" * 50)
    print(f"  FHIR version: {settings.fhir_version.value}")
    print(f"  Initialized: {manager.is_initialized}")
    print(f"  Search parameters: {len(manager.all_search_parameters)}")
    print(
        "  Requiring reindex: "
        f"{len(registry.supported_search_parameters.get_search_parameters_requiring_reindexing())}"
    )
    print(f"  Compartments: {len(registry.compartment_definition_manager.compartment_types)}")


if __name__ == "__main__":
    main()
