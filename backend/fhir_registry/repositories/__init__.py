"""Repository layer for data access.

Repositories encapsulate database operations and provide a clean interface
for the registry's persisted state.
"""

from fhir_registry.repositories.search_parameter import (
    DataStoreFactory,
    SearchParameterDataStore,
    SearchParameterPage,
    SearchParameterRepository,
    SearchParameterStatusEntry,
    StoredSearchParameter,
    search_parameter_store_scope,
)

__all__ = [
    "DataStoreFactory",
    "SearchParameterDataStore",
    "SearchParameterPage",
    "SearchParameterRepository",
    "SearchParameterStatusEntry",
    "StoredSearchParameter",
    "search_parameter_store_scope",
]
