"""The live search parameter registry.

One SearchParameterDefinitionManager is created at startup and shared by every
request. It owns the URL index, the per-resource-type index and the hash map,
and is the only component that mutates them. All access goes through one
re-entrant lock; readers copy what they need while holding it, so they never
see a half-applied build.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable, Mapping

from fhir_registry.definitions.hashing import calculate_search_parameter_hash
from fhir_registry.definitions.model_info import ModelInfoProvider
from fhir_registry.definitions.search_parameter_builder import (
    SearchParameterSource,
    build,
    is_indexed_on,
)
from fhir_registry.definitions.search_parameter_info import SearchParameterInfo
from fhir_registry.exceptions import (
    DefinitionValidationError,
    ResourceTypeNotSupportedError,
    SearchParameterNotFoundError,
    SearchParameterNotSupportedError,
    TransientLoadError,
    UnsupportedStatusTransitionError,
)
from fhir_registry.repositories.search_parameter import (
    DataStoreFactory,
    SearchParameterDataStore,
    StoredSearchParameter,
)
from fhir_registry.schemas.search_parameter import SearchParameterStatus
from fhir_registry.services.notifications import (
    NotificationMediator,
    ReindexJobCompletedNotification,
    SearchParameterDefinitionManagerInitialized,
    SearchParameterDefinitionsUpdated,
    SearchParametersUpdatedNotification,
    StorageInitializedNotification,
)

logger = logging.getLogger(__name__)

# Lifecycle transitions accepted by update_search_parameter_status
ALLOWED_STATUS_TRANSITIONS = frozenset(
    {
        (SearchParameterStatus.SUPPORTED, SearchParameterStatus.ENABLED),
        (SearchParameterStatus.ENABLED, SearchParameterStatus.PENDING_DELETE),
        (SearchParameterStatus.ENABLED, SearchParameterStatus.DISABLED),
    }
)


class SearchParameterDefinitionManager:
    """Registry of search parameter definitions.

    Built-in definitions come from the specification bundle and start Enabled.
    Custom definitions added at runtime start Supported and become Enabled when
    a reindex job completes.
    """

    def __init__(
        self,
        model_info_provider: ModelInfoProvider,
        search_parameters: Iterable[SearchParameterSource] = (),
        data_store_factory: DataStoreFactory | None = None,
        mediator: NotificationMediator | None = None,
        page_size: int = 10,
        retry_count: int = 3,
    ):
        """Build the registry from the specification bundle.

        Args:
            model_info_provider: Resource types and their inheritance.
            search_parameters: SearchParameter resources from the bundle.
            data_store_factory: Opens the store of custom search parameters.
                Without one, initialization loads nothing.
            mediator: Receives definitions-updated and initialized notifications.
            page_size: Page size used when loading custom search parameters.
            retry_count: Attempts per inbound notification before giving up.

        Raises:
            DefinitionValidationError: If the bundle is invalid.
        """
        self._model_info_provider = model_info_provider
        self._data_store_factory = data_store_factory
        self._mediator = mediator
        self._page_size = page_size
        self._retry_count = retry_count

        self._lock = threading.RLock()
        self._url_lookup: dict[str, SearchParameterInfo] = {}
        self._type_lookup: dict[str, dict[str, SearchParameterInfo]] = {}
        self._hash_map: dict[str, str] = {}
        self._initialized = False

        build(
            search_parameters,
            self._url_lookup,
            self._type_lookup,
            self._model_info_provider,
        )

    # =========================================================================
    # Read API
    # =========================================================================

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def url_lookup(self) -> dict[str, SearchParameterInfo]:
        """Snapshot of the URL index."""
        with self._lock:
            return dict(self._url_lookup)

    @property
    def type_lookup(self) -> dict[str, dict[str, SearchParameterInfo]]:
        """Snapshot of the resource type index."""
        with self._lock:
            return {rt: dict(params) for rt, params in self._type_lookup.items()}

    @property
    def all_search_parameters(self) -> list[SearchParameterInfo]:
        with self._lock:
            return list(self._url_lookup.values())

    @property
    def search_parameter_hash_map(self) -> dict[str, str]:
        """Copy of resource type -> hash, for drift detection by storage."""
        with self._lock:
            return dict(self._hash_map)

    def ensure_initialized(self) -> None:
        if not self._initialized:
            logger.warning("Search parameters are not initialized.")

    def get_search_parameters(self, resource_type: str) -> list[SearchParameterInfo]:
        """Every definition available on a resource type, inherited ones included.

        Raises:
            ResourceTypeNotSupportedError: If the resource type is unknown.
        """
        self.ensure_initialized()
        with self._lock:
            parameters = self._type_lookup.get(resource_type)
            if parameters is None:
                raise ResourceTypeNotSupportedError(resource_type)
            return list(parameters.values())

    def get_search_parameter(self, resource_type: str, code: str) -> SearchParameterInfo:
        """Definition for a code on a resource type.

        Raises:
            SearchParameterNotSupportedError: If there is none.
        """
        parameter = self.try_get_search_parameter(resource_type, code)
        if parameter is None:
            raise SearchParameterNotSupportedError(resource_type=resource_type, code=code)
        return parameter

    def try_get_search_parameter(
        self,
        resource_type: str,
        code: str,
        exclude_pending_delete: bool = False,
    ) -> SearchParameterInfo | None:
        self.ensure_initialized()
        with self._lock:
            parameter = self._type_lookup.get(resource_type, {}).get(code)
        return _exclude_pending_delete(parameter, exclude_pending_delete)

    def get_search_parameter_by_url(self, url: str) -> SearchParameterInfo:
        """Definition for an absolute URL.

        Raises:
            SearchParameterNotSupportedError: If there is none.
        """
        parameter = self.try_get_search_parameter_by_url(url)
        if parameter is None:
            raise SearchParameterNotSupportedError(url=url)
        return parameter

    def try_get_search_parameter_by_url(
        self, url: str, exclude_pending_delete: bool = False
    ) -> SearchParameterInfo | None:
        self.ensure_initialized()
        with self._lock:
            parameter = self._url_lookup.get(url)
        return _exclude_pending_delete(parameter, exclude_pending_delete)

    def get_search_parameter_hash_for_resource_type(self, resource_type: str) -> str | None:
        """Last computed hash for a resource type, or None if never computed."""
        self.ensure_initialized()
        if not resource_type or not resource_type.strip():
            raise ValueError("resource_type must not be empty")
        with self._lock:
            return self._hash_map.get(resource_type)

    # =========================================================================
    # Mutations
    # =========================================================================

    def update_search_parameter_hash_map(self, updated_hash_map: Mapping[str, str]) -> None:
        """Merge hashes computed elsewhere (e.g. by the storage layer)."""
        with self._lock:
            self._hash_map.update(updated_hash_map)

    def add_new_search_parameters(
        self,
        search_parameters: Iterable[SearchParameterSource],
        calculate_hash: bool = True,
    ) -> None:
        """Register custom search parameters.

        New definitions start Supported and may reference definitions that are
        already registered.

        Raises:
            DefinitionValidationError: If any entry is invalid; nothing is added.
        """
        with self._lock:
            build(
                search_parameters,
                self._url_lookup,
                self._type_lookup,
                self._model_info_provider,
                initial_status=SearchParameterStatus.SUPPORTED,
            )

        if calculate_hash:
            self._notify_definitions_updated(self._calculate_search_parameter_hash())

    def delete_search_parameter(self, url: str, calculate_hash: bool = True) -> None:
        """Remove a definition from the URL index and every resource type using it.

        Raises:
            SearchParameterNotFoundError: If no definition has this URL.
        """
        with self._lock:
            parameter = self._url_lookup.pop(url, None)
            if parameter is None:
                raise SearchParameterNotFoundError(url)

            resource_types = self._model_info_provider.get_derived_resource_types(
                parameter.base_resource_types
            )
            removed_from = []
            for resource_type in sorted(resource_types):
                parameters = self._type_lookup.get(resource_type)
                if not parameters or parameter.code not in parameters:
                    continue

                existing = parameters[parameter.code]
                if existing.url.casefold() != url.casefold():
                    logger.error(
                        "Failed to remove a search parameter from the type index: "
                        "%s, %s, %s is registered for %s",
                        url,
                        resource_type,
                        parameter.code,
                        existing.url,
                    )
                    continue

                self._type_lookup[resource_type] = {
                    code: p for code, p in parameters.items() if code != parameter.code
                }
                removed_from.append(resource_type)

            # Base types first, so a derived type can inherit what its base regained
            removed_from.sort(key=lambda rt: len(self._model_info_provider.get_type_hierarchy(rt)))
            for resource_type in removed_from:
                self._restore_shadowed(resource_type, parameter.code)

            updated = bool(removed_from)

        if calculate_hash and updated:
            self._notify_definitions_updated(self._calculate_search_parameter_hash())

    def update_search_parameter_status(
        self,
        url: str,
        status: SearchParameterStatus,
        calculate_hash: bool = True,
    ) -> None:
        """Move a definition to a new lifecycle status.

        Raises:
            SearchParameterNotFoundError: If no definition has this URL.
            UnsupportedStatusTransitionError: If the transition is not defined.
        """
        with self._lock:
            parameter = self._url_lookup.get(url)
            if parameter is None:
                raise SearchParameterNotFoundError(url)
            if parameter.status == status:
                return
            if (parameter.status, status) not in ALLOWED_STATUS_TRANSITIONS:
                raise UnsupportedStatusTransitionError(url, parameter.status, status)
            parameter.status = status

        if calculate_hash:
            self._notify_definitions_updated(self._calculate_search_parameter_hash())

    def _restore_shadowed(self, resource_type: str, code: str) -> None:
        """Fill a code slot emptied by a deletion. Caller holds the lock.

        The inherited definition wins over one declared on the type itself, the
        same order a build merges them in. An unknown type left with no
        definitions is dropped from the index.
        """
        replacement = None
        base_type = self._model_info_provider.get_base_type(resource_type)
        if base_type is not None:
            replacement = self._type_lookup.get(base_type, {}).get(code)

        if replacement is None:
            version = self._model_info_provider.version
            replacement = next(
                (
                    p
                    for p in self._url_lookup.values()
                    if p.code == code
                    and resource_type in p.base_resource_types
                    and is_indexed_on(p, resource_type, version)
                ),
                None,
            )

        parameters = self._type_lookup[resource_type]
        if replacement is not None:
            logger.info(
                "Search parameter %s now provides %s on %s", replacement.url, code, resource_type
            )
            self._type_lookup[resource_type] = {**parameters, code: replacement}
        elif not parameters and not self._model_info_provider.is_known_resource(resource_type):
            del self._type_lookup[resource_type]
            self._hash_map.pop(resource_type, None)

    def _calculate_search_parameter_hash(self) -> list[str]:
        """Recompute hashes from a snapshot; returns the types whose hash changed."""
        with self._lock:
            snapshot = {rt: list(params.values()) for rt, params in self._type_lookup.items()}

        changed = []
        for resource_type, parameters in snapshot.items():
            if not parameters:
                continue
            search_parameter_hash = calculate_search_parameter_hash(parameters)
            with self._lock:
                if self._hash_map.get(resource_type) != search_parameter_hash:
                    self._hash_map[resource_type] = search_parameter_hash
                    changed.append(resource_type)
        return changed

    def _notify_definitions_updated(self, resource_types: list[str]) -> None:
        if self._mediator is not None:
            self._mediator.publish_nowait(SearchParameterDefinitionsUpdated(tuple(resource_types)))

    async def _publish(self, notification: object) -> None:
        if self._mediator is not None:
            await self._mediator.publish(notification)

    # =========================================================================
    # Initialization
    # =========================================================================

    async def ensure_initialized_async(self) -> None:
        """Load previously persisted custom search parameters.

        A malformed stored parameter is logged and skipped. If the load is
        cancelled or fails, the indexes are restored to their pre-load state
        and the manager stays uninitialized.
        """
        snapshot = self._snapshot()
        self._initialized = True
        try:
            if self._data_store_factory is not None:
                await self._load_search_params_from_data_store()
        except asyncio.CancelledError:
            self._restore(snapshot)
            self._initialized = False
            logger.warning("Loading search parameters from the data store was cancelled")
            raise
        except Exception:
            self._restore(snapshot)
            self._initialized = False
            raise

        changed = self._calculate_search_parameter_hash()
        await self._publish(SearchParameterDefinitionsUpdated(tuple(changed)))
        await self._publish(SearchParameterDefinitionManagerInitialized())

    async def _load_search_params_from_data_store(self) -> None:
        async with self._data_store_factory() as store:
            statuses = {s.url: s.status for s in await store.get_search_parameter_statuses()}
            pending_delete_urls = {
                url.casefold()
                for url, status in statuses.items()
                if status == SearchParameterStatus.PENDING_DELETE
            }
            logger.info(
                "Found %d search parameters with PendingDelete status in the status store",
                len(pending_delete_urls),
            )

            total_loaded = 0
            total_pending_delete = 0
            continuation_token = None
            while True:
                page = await store.search(continuation_token, self._page_size)

                for stored in page.results:
                    try:
                        if stored.is_deleted:
                            if await self._load_pending_delete(store, stored, pending_delete_urls):
                                total_loaded += 1
                                total_pending_delete += 1
                        elif self._load_stored(stored):
                            total_loaded += 1
                    except TransientLoadError as exc:
                        logger.warning("Skipping search parameter from the data store. %s", exc)

                continuation_token = page.continuation_token
                if continuation_token is None:
                    break

        self._apply_statuses(statuses)
        logger.info(
            "Loaded %d active and %d PendingDelete search parameters from data store",
            total_loaded - total_pending_delete,
            total_pending_delete,
        )

    def _load_stored(self, stored: StoredSearchParameter) -> bool:
        """Add one stored parameter; False if it is already registered."""
        url = stored.url
        with self._lock:
            if url and url in self._url_lookup:
                logger.debug("Search parameter %s is already registered", url)
                return False
        try:
            self.add_new_search_parameters([stored.data], calculate_hash=False)
        except DefinitionValidationError as exc:
            raise TransientLoadError(
                url, "; ".join(issue.diagnostics for issue in exc.issues)
            ) from exc
        except Exception as exc:
            logger.exception("Error loading search parameter %s from data store.", url)
            raise TransientLoadError(url, type(exc).__name__) from exc
        return True

    async def _load_pending_delete(
        self,
        store: SearchParameterDataStore,
        stored: StoredSearchParameter,
        pending_delete_urls: set[str],
    ) -> bool:
        """Restore a soft-deleted parameter whose deletion is still pending."""
        if stored.version <= 1:
            logger.warning(
                "Soft-deleted SearchParameter %s has no earlier version (version %s)",
                stored.resource_id,
                stored.version,
            )
            return False

        try:
            previous = await store.get_version(stored.resource_id, stored.version - 1)
        except Exception as exc:
            raise TransientLoadError(stored.url, f"could not read previous version: {exc}") from exc

        if previous is None:
            logger.warning(
                "Could not retrieve last version for soft-deleted SearchParameter %s",
                stored.resource_id,
            )
            return False

        url = previous.url
        if not url:
            logger.warning(
                "Could not retrieve valid URL for soft-deleted SearchParameter %s",
                stored.resource_id,
            )
            return False
        if url.casefold() not in pending_delete_urls:
            logger.debug(
                "Skipping soft-deleted SearchParameter %s with URL %s - not in PendingDelete status",
                stored.resource_id,
                url,
            )
            return False

        if not self._load_stored(previous):
            return False

        with self._lock:
            parameter = self._url_lookup.get(url)
            if parameter is not None:
                parameter.status = SearchParameterStatus.PENDING_DELETE
        logger.info("Loaded PendingDelete search parameter from last version before deletion: %s", url)
        return True

    def _apply_statuses(self, statuses: Mapping[str, SearchParameterStatus]) -> None:
        # Restores persisted state, so transitions are not validated here
        with self._lock:
            for url, status in statuses.items():
                parameter = self._url_lookup.get(url)
                if parameter is not None:
                    parameter.status = status

    def _snapshot(self) -> tuple:
        with self._lock:
            return (
                dict(self._url_lookup),
                {rt: dict(params) for rt, params in self._type_lookup.items()},
                dict(self._hash_map),
                {url: p.status for url, p in self._url_lookup.items()},
            )

    def _restore(self, snapshot: tuple) -> None:
        url_lookup, type_lookup, hash_map, statuses = snapshot
        with self._lock:
            self._url_lookup = url_lookup
            self._type_lookup = type_lookup
            self._hash_map = hash_map
            for url, status in statuses.items():
                url_lookup[url].status = status

    # =========================================================================
    # Notification handlers
    # =========================================================================

    async def handle_storage_initialized(self, notification: StorageInitializedNotification) -> None:
        logger.info("SearchParameterDefinitionManager: Storage initialized")
        await self._with_retries("initializing search parameters", self.ensure_initialized_async)

    async def handle_reindex_job_completed(self, notification: ReindexJobCompletedNotification) -> None:
        logger.info("SearchParameterDefinitionManager: Reindex job completed")

        async def enable_reindexed() -> None:
            for url in notification.urls:
                parameter = self.try_get_search_parameter_by_url(url)
                if parameter is None:
                    logger.warning("Reindexed search parameter %s is not registered", url)
                    continue
                if parameter.status == SearchParameterStatus.SUPPORTED:
                    self.update_search_parameter_status(
                        url, SearchParameterStatus.ENABLED, calculate_hash=False
                    )
            changed = self._calculate_search_parameter_hash()
            await self._publish(SearchParameterDefinitionsUpdated(tuple(changed)))

        await self._with_retries("enabling reindexed search parameters", enable_reindexed)

    async def handle_search_parameters_updated(
        self, notification: SearchParametersUpdatedNotification
    ) -> None:
        logger.info("SearchParameterDefinitionManager: Search parameters updated")

        async def recalculate() -> None:
            changed = self._calculate_search_parameter_hash()
            await self._publish(SearchParameterDefinitionsUpdated(tuple(changed)))

        await self._with_retries("calculating search parameter hash", recalculate)

    async def _with_retries(self, description: str, action: Callable[[], Awaitable[None]]) -> bool:
        """Run action up to retry_count times without backoff."""
        for attempt in range(self._retry_count):
            try:
                await action()
                return True
            except Exception:
                logger.exception("Error %s. Retry %d", description, attempt)
        logger.error("Giving up %s after %d attempts", description, self._retry_count)
        return False


def _exclude_pending_delete(
    parameter: SearchParameterInfo | None, exclude_pending_delete: bool
) -> SearchParameterInfo | None:
    if (
        parameter is not None
        and exclude_pending_delete
        and parameter.status == SearchParameterStatus.PENDING_DELETE
    ):
        return None
    return parameter


def register_notification_handlers(
    mediator: NotificationMediator, manager: SearchParameterDefinitionManager
) -> None:
    """Subscribe the manager to the notifications it reacts to."""
    mediator.subscribe(StorageInitializedNotification, manager.handle_storage_initialized)
    mediator.subscribe(ReindexJobCompletedNotification, manager.handle_reindex_job_completed)
    mediator.subscribe(SearchParametersUpdatedNotification, manager.handle_search_parameters_updated)
