"""Report queue: intake, state machine, retry, deletion and download.

Actors live in :mod:`siteproof.reports.actor` and are not imported here so
that importing the service never declares Dramatiq actors.
"""

from __future__ import annotations

from .artifacts import FilesystemArtifactStore, ReportArtifactStore, StoredArtifact
from .config import ReportQueueConfig
from .dispatch import DramatiqReportDispatcher, ReportDispatcher
from .errors import (
    InvalidReportRequestError,
    InvalidReportStateError,
    InvalidTransitionError,
    ReportDispatchError,
    ReportErrorKind,
    ReportFileUnavailableError,
    ReportForbiddenError,
    ReportNotFoundError,
    ReportQueueError,
    RetryLimitReachedError,
    UnexpectedReportError,
    UnsupportedFormatError,
)
from .models import (
    DeletionOutcome,
    DownloadInfo,
    ReportDispatch,
    ReportRequest,
    ReportView,
    RetryOutcome,
)
from .observability import ReportQueueEventLogger, ReportQueueEventType
from .permissions import AuthorizationContext, Membership
from .renderer import ManifestRenderer, RenderedReport, ReportRenderer
from .service import ReportQueueService, ReportQueueServiceDependencies
from .worker import ReportWorker, ReportWorkerDependencies

__all__ = [
    "AuthorizationContext",
    "DeletionOutcome",
    "DownloadInfo",
    "DramatiqReportDispatcher",
    "FilesystemArtifactStore",
    "InvalidReportRequestError",
    "InvalidReportStateError",
    "InvalidTransitionError",
    "ManifestRenderer",
    "Membership",
    "RenderedReport",
    "ReportArtifactStore",
    "ReportDispatch",
    "ReportDispatchError",
    "ReportDispatcher",
    "ReportErrorKind",
    "ReportFileUnavailableError",
    "ReportForbiddenError",
    "ReportNotFoundError",
    "ReportQueueConfig",
    "ReportQueueError",
    "ReportQueueEventLogger",
    "ReportQueueEventType",
    "ReportQueueService",
    "ReportQueueServiceDependencies",
    "ReportRenderer",
    "ReportRequest",
    "ReportView",
    "ReportWorker",
    "ReportWorkerDependencies",
    "RetryLimitReachedError",
    "RetryOutcome",
    "StoredArtifact",
    "UnexpectedReportError",
    "UnsupportedFormatError",
]
