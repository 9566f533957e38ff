"""Persistence models for the report queue.

The ``report_queue`` table is the only shared mutable resource in the
service. ``organization_members`` answers the membership lookup behind every
authorization check, and ``report_deletions`` keeps a tombstone per deleted
report so a repeated delete can be answered without leaking existence to
other tenants.
"""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ
import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from siteproof.common.time import utcnow
from siteproof.storage.errors import TimezoneAwareRequiredError
from siteproof.storage.policies import apply_report_queue_policies

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class ReportStatus(enum.StrEnum):
    """Lifecycle states of a queued report."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ReportType(enum.StrEnum):
    """Kinds of report the worker knows how to produce."""

    PROJECT_SUMMARY = "project_summary"
    DAILY_DIARY_EXPORT = "daily_diary_export"
    INSPECTION_SUMMARY = "inspection_summary"
    NCR_REPORT = "ncr_report"
    FINANCIAL_SUMMARY = "financial_summary"
    SAFETY_REPORT = "safety_report"
    QUALITY_REPORT = "quality_report"
    ITP_REPORT = "itp_report"
    CUSTOM = "custom"


class ReportFormat(enum.StrEnum):
    """Output file formats."""

    PDF = "pdf"
    EXCEL = "excel"
    CSV = "csv"
    JSON = "json"

    @property
    def mime_type(self) -> str:
        """Return the MIME type served for this format."""
        return _FORMAT_MIME_TYPES[self]

    @property
    def extension(self) -> str:
        """Return the file extension, including the leading dot."""
        return _FORMAT_EXTENSIONS[self]


_FORMAT_MIME_TYPES: dict[ReportFormat, str] = {
    ReportFormat.PDF: "application/pdf",
    ReportFormat.EXCEL: (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ),
    ReportFormat.CSV: "text/csv",
    ReportFormat.JSON: "application/json",
}

_FORMAT_EXTENSIONS: dict[ReportFormat, str] = {
    ReportFormat.PDF: ".pdf",
    ReportFormat.EXCEL: ".xlsx",
    ReportFormat.CSV: ".csv",
    ReportFormat.JSON: ".json",
}


class OrganizationRole(enum.StrEnum):
    """Roles a user can hold inside one organization."""

    OWNER = "owner"
    ADMIN = "admin"
    PROJECT_MANAGER = "project_manager"
    SITE_FOREMAN = "site_foreman"
    FINANCE_MANAGER = "finance_manager"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"


class Base(DeclarativeBase):
    """Declarative base for siteproof tables."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Reject naive datetimes and store everything else as UTC."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError("timestamp column")
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Attach UTC to values read back from drivers that drop tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


def _enum_column(enum_cls: type[enum.StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
        length=32,
    )


def _new_id() -> str:
    return str(uuid.uuid4())


class ReportQueueEntry(Base):
    """One requested report artifact and its generation state."""

    __tablename__ = "report_queue"
    __table_args__ = (
        Index("ix_report_queue_org", "organization_id"),
        Index("ix_report_queue_status", "status"),
        Index("ix_report_queue_requested_by", "requested_by"),
        Index("ix_report_queue_queued_at", "queued_at"),
        Index("ix_report_queue_expires_at", "expires_at"),
        CheckConstraint(
            "progress >= 0 AND progress <= 100", name="ck_report_queue_progress"
        ),
        CheckConstraint(
            "retry_count >= 0 AND retry_count <= max_retries",
            name="ck_report_queue_retry_ceiling",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    requested_by: Mapped[str] = mapped_column(String(36), nullable=False)

    report_type: Mapped[ReportType] = mapped_column(
        _enum_column(ReportType), nullable=False
    )
    report_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), default=None)
    format: Mapped[ReportFormat] = mapped_column(
        _enum_column(ReportFormat), nullable=False, default=ReportFormat.PDF
    )
    parameters: Mapped[dict[str, typ.Any]] = mapped_column(
        JSON, default=dict, nullable=False
    )

    status: Mapped[ReportStatus] = mapped_column(
        _enum_column(ReportStatus), nullable=False, default=ReportStatus.QUEUED
    )
    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_step: Mapped[str | None] = mapped_column(Text(), default=None)
    error_message: Mapped[str | None] = mapped_column(Text(), default=None)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    file_url: Mapped[str | None] = mapped_column(Text(), default=None)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, default=None)
    file_name: Mapped[str | None] = mapped_column(String(255), default=None)
    mime_type: Mapped[str | None] = mapped_column(String(100), default=None)

    queued_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    started_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)
    completed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    failed_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)
    expires_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)

    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False
    )


class OrganizationMembership(Base):
    """A user's role inside one organization."""

    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "user_id", name="uq_organization_members_org_user"
        ),
        Index("ix_organization_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    role: Mapped[OrganizationRole] = mapped_column(
        _enum_column(OrganizationRole), nullable=False
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )


class ReportDeletion(Base):
    """Tombstone recorded when a report row is deleted."""

    __tablename__ = "report_deletions"
    __table_args__ = (Index("ix_report_deletions_org", "organization_id"),)

    report_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False)
    requested_by: Mapped[str] = mapped_column(String(36), nullable=False)
    deleted_by: Mapped[str] = mapped_column(String(36), nullable=False)
    deleted_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, nullable=False
    )


async def init_storage(engine: AsyncEngine) -> None:
    """Create the report queue tables if absent and install the row policies."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await apply_report_queue_policies(engine)
