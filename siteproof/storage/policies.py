"""PostgreSQL row policies for the report queue.

These policies are the second authorization layer: the application checks
membership and roles first, and the database independently enforces the
same rules for every statement issued with ``app.current_user_id`` set.
SELECT and DELETE visibility are deliberately aligned so a user can never
see a report that the database then refuses to delete for visibility
reasons; the delete policy additionally requires the requester or an
elevated role, mirroring :func:`siteproof.reports.permissions.can_delete`.

SQLite has no row policies; :func:`apply_report_queue_policies` is a no-op
there.
"""

from __future__ import annotations

import typing as typ

from sqlalchemy import text

from siteproof.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

logger = get_logger(__name__)

CURRENT_USER_SETTING = "app.current_user_id"

_CURRENT_USER = f"current_setting('{CURRENT_USER_SETTING}', true)"

_MEMBER_ORGS = (
    "SELECT om.organization_id FROM organization_members om "
    f"WHERE om.user_id = {_CURRENT_USER}"
)


def _member_orgs_with_roles(roles: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{role}'" for role in roles)
    return f"{_MEMBER_ORGS} AND om.role IN ({quoted})"


REPORT_QUEUE_POLICY_STATEMENTS: tuple[str, ...] = (
    "ALTER TABLE report_queue ENABLE ROW LEVEL SECURITY",
    "DROP POLICY IF EXISTS report_queue_select ON report_queue",
    "DROP POLICY IF EXISTS report_queue_insert ON report_queue",
    "DROP POLICY IF EXISTS report_queue_update ON report_queue",
    "DROP POLICY IF EXISTS report_queue_delete ON report_queue",
    (
        "CREATE POLICY report_queue_select ON report_queue FOR SELECT "
        f"USING (organization_id IN ({_MEMBER_ORGS}))"
    ),
    (
        "CREATE POLICY report_queue_insert ON report_queue FOR INSERT "
        f"WITH CHECK (organization_id IN ({_MEMBER_ORGS}) "
        f"AND requested_by = {_CURRENT_USER})"
    ),
    (
        "CREATE POLICY report_queue_update ON report_queue FOR UPDATE "
        f"USING (requested_by = {_CURRENT_USER} OR organization_id IN "
        f"({_member_orgs_with_roles(('owner', 'admin'))}))"
    ),
    (
        "CREATE POLICY report_queue_delete ON report_queue FOR DELETE "
        f"USING (organization_id IN ({_MEMBER_ORGS}) AND "
        f"(requested_by = {_CURRENT_USER} OR organization_id IN "
        f"({_member_orgs_with_roles(('owner', 'admin', 'project_manager'))})))"
    ),
)


def is_postgresql(dialect_name: str) -> bool:
    """Return True when *dialect_name* supports row-level security."""
    return dialect_name == "postgresql"


async def apply_report_queue_policies(engine: AsyncEngine) -> list[str]:
    """Install the report queue row policies and return executed statements.

    Returns an empty list on dialects without row-level security.
    """
    if not is_postgresql(engine.dialect.name):
        return []

    async with engine.begin() as conn:
        for statement in REPORT_QUEUE_POLICY_STATEMENTS:
            await conn.execute(text(statement))
    log_info(
        logger,
        "Applied %d report_queue row policy statements",
        len(REPORT_QUEUE_POLICY_STATEMENTS),
    )
    return list(REPORT_QUEUE_POLICY_STATEMENTS)


async def bind_current_user(session: AsyncSession, user_id: str) -> bool:
    """Expose *user_id* to row policies for the current transaction.

    Returns True when the setting was applied, False on dialects without
    row-level security.
    """
    if not is_postgresql(session.get_bind().dialect.name):
        return False
    await session.execute(
        text("SELECT set_config(:name, :value, true)"),
        {"name": CURRENT_USER_SETTING, "value": user_id},
    )
    return True
