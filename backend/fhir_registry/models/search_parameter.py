"""SQLAlchemy models for custom SearchParameter resources.

Every write of a custom SearchParameter adds a row; earlier versions are kept
as history rows so a soft-deleted parameter can be restored from the version
before its deletion. Registry statuses live in their own table keyed by URL.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from fhir_registry.database import Base
from fhir_registry.schemas.search_parameter import SearchParameterStatus

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class SearchParameterResource(Base):
    """One version of a custom SearchParameter resource."""

    __tablename__ = "search_parameter_resources"

    # Monotonic surrogate key, used for keyset pagination
    surrogate_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identifiers
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    url: Mapped[str | None] = mapped_column(String(512), nullable=True, index=True)

    # The SearchParameter resource as posted
    data: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False)

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_history: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_search_parameter_resource_version", "resource_id", "version", unique=True),
        Index("idx_search_parameter_latest", "is_history", "surrogate_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SearchParameterResource(resource_id={self.resource_id}, "
            f"version={self.version}, deleted={self.is_deleted})>"
        )


class SearchParameterStatusRecord(Base):
    """Registry status of a search parameter, keyed by its URL."""

    __tablename__ = "search_parameter_statuses"

    url: Mapped[str] = mapped_column(String(512), primary_key=True)
    status: Mapped[SearchParameterStatus] = mapped_column(
        Enum(
            SearchParameterStatus,
            name="search_parameter_status",
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<SearchParameterStatusRecord(url={self.url}, status={self.status.value})>"
