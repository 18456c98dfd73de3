"""Custom SearchParameter repository.

Persists SearchParameter resources created at runtime together with their
registry status, and serves them back page by page when the registry
initializes. The registry depends only on the SearchParameterDataStore protocol;
SearchParameterRepository is the SQLAlchemy implementation.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fhir_registry.models.search_parameter import (
    SearchParameterResource,
    SearchParameterStatusRecord,
)
from fhir_registry.schemas.search_parameter import SearchParameterStatus


@dataclass(frozen=True)
class StoredSearchParameter:
    """A stored version of a custom SearchParameter resource."""

    resource_id: str
    version: int
    is_deleted: bool
    data: dict[str, Any]

    @property
    def url(self) -> str | None:
        return self.data.get("url")


@dataclass(frozen=True)
class SearchParameterStatusEntry:
    """Persisted registry status for one search parameter URL."""

    url: str
    status: SearchParameterStatus


@dataclass(frozen=True)
class SearchParameterPage:
    """One page of search results and the token for the next page."""

    results: list[StoredSearchParameter]
    continuation_token: str | None = None


class SearchParameterDataStore(Protocol):
    """Read side of the custom search parameter store used by the registry."""

    async def get_search_parameter_statuses(self) -> list[SearchParameterStatusEntry]: ...

    async def search(
        self, continuation_token: str | None, page_size: int
    ) -> SearchParameterPage: ...

    async def get_version(
        self, resource_id: str, version: int
    ) -> StoredSearchParameter | None: ...


DataStoreFactory = Callable[[], AbstractAsyncContextManager[SearchParameterDataStore]]


def _to_stored(row: SearchParameterResource) -> StoredSearchParameter:
    return StoredSearchParameter(
        resource_id=row.resource_id,
        version=row.version,
        is_deleted=row.is_deleted,
        data=dict(row.data),
    )


class SearchParameterRepository:
    """SQLAlchemy store for custom SearchParameter resources and statuses.

    Searches return the latest version of every resource, including soft
    deleted ones, ordered by surrogate id. The continuation token is the last
    surrogate id of the page.
    """

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session.

        Args:
            db: Async SQLAlchemy session.
        """
        self.db = db

    async def upsert(self, data: dict[str, Any]) -> StoredSearchParameter:
        """Save a new version of a SearchParameter resource.

        Args:
            data: SearchParameter resource JSON. An id is assigned if missing.

        Returns:
            The stored version.
        """
        resource_id = data.get("id") or str(uuid.uuid4())
        data = {**data, "id": resource_id}

        current = await self._get_latest(resource_id)
        version = 1
        if current is not None:
            current.is_history = True
            version = current.version + 1

        row = SearchParameterResource(
            resource_id=resource_id,
            version=version,
            url=data.get("url"),
            data=data,
            is_deleted=False,
            is_history=False,
        )
        self.db.add(row)
        await self.db.flush()
        return _to_stored(row)

    async def soft_delete(self, resource_id: str) -> StoredSearchParameter | None:
        """Mark a SearchParameter resource deleted, keeping its history.

        Args:
            resource_id: Resource id of the SearchParameter.

        Returns:
            The deleted version, or None if there was nothing to delete.
        """
        current = await self._get_latest(resource_id)
        if current is None or current.is_deleted:
            return None

        current.is_history = True
        row = SearchParameterResource(
            resource_id=resource_id,
            version=current.version + 1,
            url=current.url,
            data=dict(current.data),
            is_deleted=True,
            is_history=False,
        )
        self.db.add(row)
        await self.db.flush()
        return _to_stored(row)

    async def set_status(self, url: str, status: SearchParameterStatus) -> None:
        """Create or update the registry status of a search parameter."""
        record = await self.db.get(SearchParameterStatusRecord, url)
        if record is None:
            self.db.add(SearchParameterStatusRecord(url=url, status=status))
        else:
            record.status = status
        await self.db.flush()

    async def get_search_parameter_statuses(self) -> list[SearchParameterStatusEntry]:
        result = await self.db.execute(
            select(SearchParameterStatusRecord).order_by(SearchParameterStatusRecord.url)
        )
        return [
            SearchParameterStatusEntry(url=record.url, status=record.status)
            for record in result.scalars().all()
        ]

    async def search(
        self, continuation_token: str | None, page_size: int
    ) -> SearchParameterPage:
        """Get a page of the latest SearchParameter versions.

        Args:
            continuation_token: Token from the previous page, None for the first.
            page_size: Maximum number of results.

        Returns:
            The page, with a continuation token if more results remain.

        Raises:
            ValueError: If the continuation token is malformed.
        """
        query = (
            select(SearchParameterResource)
            .where(SearchParameterResource.is_history.is_(False))
            .order_by(SearchParameterResource.surrogate_id)
            .limit(page_size + 1)
        )
        if continuation_token is not None:
            try:
                last_id = int(continuation_token)
            except ValueError as exc:
                raise ValueError(f"Invalid continuation token: {continuation_token!r}") from exc
            query = query.where(SearchParameterResource.surrogate_id > last_id)

        result = await self.db.execute(query)
        rows = list(result.scalars().all())

        has_more = len(rows) > page_size
        rows = rows[:page_size]
        next_token = str(rows[-1].surrogate_id) if has_more and rows else None
        return SearchParameterPage(
            results=[_to_stored(row) for row in rows],
            continuation_token=next_token,
        )

    async def get_version(
        self, resource_id: str, version: int
    ) -> StoredSearchParameter | None:
        result = await self.db.execute(
            select(SearchParameterResource).where(
                SearchParameterResource.resource_id == resource_id,
                SearchParameterResource.version == version,
            )
        )
        row = result.scalar_one_or_none()
        return _to_stored(row) if row is not None else None

    async def _get_latest(self, resource_id: str) -> SearchParameterResource | None:
        result = await self.db.execute(
            select(SearchParameterResource).where(
                SearchParameterResource.resource_id == resource_id,
                SearchParameterResource.is_history.is_(False),
            )
        )
        return result.scalar_one_or_none()


def search_parameter_store_scope(
    session_maker: async_sessionmaker[AsyncSession],
) -> DataStoreFactory:
    """Build a factory yielding a repository bound to a fresh session.

    The session commits when the scope exits normally and rolls back on error.
    """

    @asynccontextmanager
    async def scope() -> AsyncIterator[SearchParameterRepository]:
        async with session_maker() as session:
            try:
                yield SearchParameterRepository(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return scope
