"""Siteproof: report queue backend for construction quality management.

The package is organised in layers:

``siteproof.storage``
    SQLAlchemy models for the report queue, organization memberships and
    deletion tombstones, plus the optional PostgreSQL row policies.
``siteproof.reports``
    The report lifecycle: state machine, permission predicates, the
    storage-facing queue store, the Dramatiq dispatcher and worker, and the
    ``ReportQueueService`` that implements intake, retry, deletion and
    download resolution.
``siteproof.api``
    The Falcon ASGI surface.
"""

__all__: list[str] = []
