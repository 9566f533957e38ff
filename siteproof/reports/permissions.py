"""Authorization predicates for report queue operations.

An :class:`AuthorizationContext` is computed per request from the caller's
organization memberships. A user may belong to several organizations with
an independent role in each, so every check is resolved against the
organization that owns the report, never against a single "current"
membership.

These predicates are the primary authorization layer. The database row
policies in :mod:`siteproof.storage.policies` enforce the same rules a
second time and may still veto a statement.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from siteproof.storage.models import OrganizationRole, ReportType

RETRY_ROLES: typ.Final[frozenset[OrganizationRole]] = frozenset(
    {OrganizationRole.OWNER, OrganizationRole.ADMIN}
)
DELETE_ROLES: typ.Final[frozenset[OrganizationRole]] = frozenset(
    {
        OrganizationRole.OWNER,
        OrganizationRole.ADMIN,
        OrganizationRole.PROJECT_MANAGER,
    }
)
FINANCIAL_ROLES: typ.Final[frozenset[OrganizationRole]] = frozenset(
    {
        OrganizationRole.OWNER,
        OrganizationRole.ADMIN,
        OrganizationRole.FINANCE_MANAGER,
        OrganizationRole.ACCOUNTANT,
    }
)


class OwnedReport(typ.Protocol):
    """The ownership attributes every predicate needs."""

    organization_id: str
    requested_by: str


@dc.dataclass(frozen=True, slots=True)
class Membership:
    """A caller's role inside one organization."""

    organization_id: str
    role: OrganizationRole


@dc.dataclass(frozen=True, slots=True)
class AuthorizationContext:
    """The acting user and every organization membership they hold."""

    user_id: str
    memberships: tuple[Membership, ...] = ()

    @property
    def organization_ids(self) -> frozenset[str]:
        """Return the IDs of every organization the caller belongs to."""
        return frozenset(m.organization_id for m in self.memberships)

    def role_in(self, organization_id: str) -> OrganizationRole | None:
        """Return the caller's role in *organization_id*, if any."""
        for membership in self.memberships:
            if membership.organization_id == organization_id:
                return membership.role
        return None

    def is_member(self, organization_id: str) -> bool:
        """Return True when the caller belongs to *organization_id*."""
        return self.role_in(organization_id) is not None

    def has_role(
        self,
        organization_id: str,
        roles: typ.Collection[OrganizationRole],
    ) -> bool:
        """Return True when the caller holds one of *roles* in *organization_id*."""
        role = self.role_in(organization_id)
        return role is not None and role in roles


def can_view(ctx: AuthorizationContext, report: OwnedReport) -> bool:
    """A report is visible to every member of its owning organization."""
    return ctx.is_member(report.organization_id)


def _is_requester(ctx: AuthorizationContext, report: OwnedReport) -> bool:
    return report.requested_by == ctx.user_id


def can_retry(ctx: AuthorizationContext, report: OwnedReport) -> bool:
    """Requesters, owners and admins may retry a visible report."""
    return can_view(ctx, report) and (
        _is_requester(ctx, report)
        or ctx.has_role(report.organization_id, RETRY_ROLES)
    )


def can_delete(ctx: AuthorizationContext, report: OwnedReport) -> bool:
    """Requesters, owners, admins and project managers may delete."""
    return can_view(ctx, report) and (
        _is_requester(ctx, report)
        or ctx.has_role(report.organization_id, DELETE_ROLES)
    )


def can_request(
    ctx: AuthorizationContext,
    organization_id: str,
    report_type: ReportType,
) -> bool:
    """Any member may request reports; financial ones need a finance role."""
    if not ctx.is_member(organization_id):
        return False
    if report_type is ReportType.FINANCIAL_SUMMARY:
        return ctx.has_role(organization_id, FINANCIAL_ROLES)
    return True


__all__ = [
    "DELETE_ROLES",
    "FINANCIAL_ROLES",
    "RETRY_ROLES",
    "AuthorizationContext",
    "Membership",
    "OwnedReport",
    "can_delete",
    "can_request",
    "can_retry",
    "can_view",
]
