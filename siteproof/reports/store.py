"""SQLAlchemy access to the report queue tables.

A :class:`ReportQueueStore` wraps one ``AsyncSession`` inside an open
transaction. Status changes go through :meth:`ReportQueueStore.transition`,
a conditional ``UPDATE`` guarded by the expected status, so a concurrent
delete or a duplicate worker delivery shows up as ``False`` instead of a
lost update.
"""

from __future__ import annotations

import typing as typ

from sqlalchemy import delete, select, update
from sqlalchemy.exc import DBAPIError

from siteproof.common.time import utcnow
from siteproof.reports.permissions import AuthorizationContext, Membership
from siteproof.storage.errors import StoragePermissionDeniedError
from siteproof.storage.models import (
    OrganizationMembership,
    OrganizationRole,
    ReportDeletion,
    ReportQueueEntry,
    ReportStatus,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession

INSUFFICIENT_PRIVILEGE: typ.Final[str] = "42501"


def is_permission_denied(exc: DBAPIError) -> bool:
    """Return True when *exc* carries PostgreSQL's ``insufficient_privilege``."""
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == INSUFFICIENT_PRIVILEGE


class ReportQueueStore:
    """Report queue queries bound to a single session."""

    def __init__(self, session: AsyncSession) -> None:
        """Bind the store to *session*; the caller owns the transaction."""
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Return the underlying session."""
        return self._session

    async def get(self, report_id: str) -> ReportQueueEntry | None:
        """Load *report_id* fresh from the database."""
        return await self._session.get(
            ReportQueueEntry, report_id, populate_existing=True
        )

    async def authorization_context(self, user_id: str) -> AuthorizationContext:
        """Load every membership *user_id* holds."""
        rows = await self._session.execute(
            select(OrganizationMembership.organization_id, OrganizationMembership.role)
            .where(OrganizationMembership.user_id == user_id)
            .order_by(OrganizationMembership.organization_id)
        )
        memberships = tuple(
            Membership(organization_id=org_id, role=OrganizationRole(role))
            for org_id, role in rows
        )
        return AuthorizationContext(user_id=user_id, memberships=memberships)

    async def insert(self, **values: typ.Any) -> ReportQueueEntry:  # noqa: ANN401
        """Insert a new entry and flush so its ID and defaults are populated."""
        entry = ReportQueueEntry(**values)
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def transition(
        self,
        report_id: str,
        *,
        expected: ReportStatus,
        values: cabc.Mapping[str, typ.Any],
        retry_count: int | None = None,
    ) -> bool:
        """Apply *values* only while the row is still in *expected* status.

        Parameters
        ----------
        report_id
            Target entry.
        expected
            Status the row must hold for the update to apply.
        values
            Column assignments, normally from :mod:`siteproof.reports.state`.
        retry_count
            When given, the row must also still carry this retry count.

        Returns
        -------
        bool
            True when exactly one row changed.

        """
        conditions = [
            ReportQueueEntry.id == report_id,
            ReportQueueEntry.status == expected,
        ]
        if retry_count is not None:
            conditions.append(ReportQueueEntry.retry_count == retry_count)
        result = await self._session.execute(
            update(ReportQueueEntry)
            .where(*conditions)
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete(self, report_id: str) -> int:
        """Delete *report_id* and return the number of rows removed.

        Raises
        ------
        StoragePermissionDeniedError
            If the database's row policy refuses the statement outright.

        """
        try:
            result = await self._session.execute(
                delete(ReportQueueEntry)
                .where(ReportQueueEntry.id == report_id)
                .execution_options(synchronize_session=False)
            )
        except DBAPIError as exc:
            if is_permission_denied(exc):
                raise StoragePermissionDeniedError("delete", report_id) from exc
            raise
        return result.rowcount

    async def record_deletion(
        self, entry: ReportQueueEntry, *, deleted_by: str
    ) -> ReportDeletion:
        """Write the tombstone for a deleted entry."""
        tombstone = ReportDeletion(
            report_id=entry.id,
            organization_id=entry.organization_id,
            requested_by=entry.requested_by,
            deleted_by=deleted_by,
            deleted_at=utcnow(),
        )
        self._session.add(tombstone)
        await self._session.flush()
        return tombstone

    async def find_tombstone(self, report_id: str) -> ReportDeletion | None:
        """Return the tombstone for *report_id*, if it was deleted."""
        return await self._session.get(ReportDeletion, report_id)

    async def list_for_organizations(
        self,
        organization_ids: cabc.Collection[str],
        *,
        status: ReportStatus | None = None,
        limit: int = 50,
    ) -> list[ReportQueueEntry]:
        """Return entries owned by *organization_ids*, newest first."""
        if not organization_ids:
            return []
        stmt = select(ReportQueueEntry).where(
            ReportQueueEntry.organization_id.in_(sorted(organization_ids))
        )
        if status is not None:
            stmt = stmt.where(ReportQueueEntry.status == status)
        stmt = stmt.order_by(
            ReportQueueEntry.queued_at.desc(), ReportQueueEntry.id
        ).limit(limit)
        return list((await self._session.scalars(stmt)).all())

    async def delete_expired(self, now: dt.datetime) -> int:
        """Delete entries whose ``expires_at`` is at or before *now*."""
        result = await self._session.execute(
            delete(ReportQueueEntry)
            .where(
                ReportQueueEntry.expires_at.is_not(None),
                ReportQueueEntry.expires_at <= now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_tombstones_before(self, cutoff: dt.datetime) -> int:
        """Delete tombstones recorded before *cutoff* and return how many."""
        result = await self._session.execute(
            delete(ReportDeletion)
            .where(ReportDeletion.deleted_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


__all__ = ["INSUFFICIENT_PRIVILEGE", "ReportQueueStore", "is_permission_denied"]
