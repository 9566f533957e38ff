"""Storage primitives: report queue tables and row policies."""

from __future__ import annotations

from .errors import (
    StorageError,
    StoragePermissionDeniedError,
    TimezoneAwareRequiredError,
)
from .models import (
    Base,
    OrganizationMembership,
    OrganizationRole,
    ReportDeletion,
    ReportFormat,
    ReportQueueEntry,
    ReportStatus,
    ReportType,
    UTCDateTime,
    init_storage,
)
from .policies import apply_report_queue_policies, bind_current_user

__all__ = [
    "Base",
    "OrganizationMembership",
    "OrganizationRole",
    "ReportDeletion",
    "ReportFormat",
    "ReportQueueEntry",
    "ReportStatus",
    "ReportType",
    "StorageError",
    "StoragePermissionDeniedError",
    "TimezoneAwareRequiredError",
    "UTCDateTime",
    "apply_report_queue_policies",
    "bind_current_user",
    "init_storage",
]
