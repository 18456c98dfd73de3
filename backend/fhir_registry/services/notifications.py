"""In-process notifications between the registry and its collaborators.

The registry consumes storage-initialized and reindex-completed signals and
produces definitions-updated and manager-initialized signals. Delivery is a
small mediator: handlers subscribe per notification type and a failing handler
is logged without affecting the publisher or other handlers.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Awaitable[None] | None]


# =============================================================================
# Notification Types
# =============================================================================


@dataclass(frozen=True)
class StorageInitializedNotification:
    """The custom search parameter store is ready to be read."""


@dataclass(frozen=True)
class ReindexJobCompletedNotification:
    """A reindex job finished indexing the listed search parameters."""

    urls: tuple[str, ...] = ()


@dataclass(frozen=True)
class SearchParametersUpdatedNotification:
    """Search parameter statuses changed outside the registry."""


@dataclass(frozen=True)
class SearchParameterDefinitionsUpdated:
    """Hashes were recomputed for the listed resource types."""

    resource_types: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SearchParameterDefinitionManagerInitialized:
    """Persisted custom search parameters have been loaded."""


# =============================================================================
# Mediator
# =============================================================================


class NotificationMediator:
    """Dispatches notifications to handlers subscribed to their type."""

    def __init__(self):
        self._handlers: dict[type, list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, notification_type: type, handler: Handler) -> None:
        """Register a sync or async handler for a notification type."""
        self._handlers[notification_type].append(handler)

    def unsubscribe(self, notification_type: type, handler: Handler) -> None:
        handlers = self._handlers.get(notification_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, notification: Any) -> None:
        """Deliver a notification and wait for every handler to finish."""
        for handler in list(self._handlers.get(type(notification), [])):
            try:
                result = handler(notification)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Notification handler %s failed for %s",
                    getattr(handler, "__qualname__", handler),
                    type(notification).__name__,
                )

    def publish_nowait(self, notification: Any) -> None:
        """Deliver a notification from synchronous code.

        Inside a running event loop delivery is scheduled as a task; call
        drain() to wait for it. Outside of one, handlers run to completion
        before this returns.
        """
        if not self._handlers.get(type(notification)):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self.publish(notification))
            return

        task = loop.create_task(self.publish(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for notifications scheduled by publish_nowait."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
