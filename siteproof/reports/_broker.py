"""Dramatiq broker set-up for report queue actors.

The worker notification is a Dramatiq message. Production deployments
configure a real broker before the first send; test runs, and local runs
that opt in with ``SITEPROOF_ALLOW_STUB_BROKER``, fall back to Dramatiq's
in-memory ``StubBroker``.
"""

from __future__ import annotations

import os
import sys
import threading

import dramatiq
from dramatiq.brokers.stub import StubBroker

_BROKER_LOCK = threading.Lock()
_broker_configured = False

_TRUTHY = frozenset({"1", "true", "yes"})
_PYTEST_ENV_VARS = ("PYTEST_CURRENT_TEST", "PYTEST_XDIST_WORKER", "PYTEST_ADDOPTS")


def _is_running_tests() -> bool:
    """Return True when the process was started by pytest."""
    return "pytest" in sys.modules or any(key in os.environ for key in _PYTEST_ENV_VARS)


def stub_broker_allowed() -> bool:
    """Return True when a ``StubBroker`` may stand in for a real broker."""
    allow_stub = os.environ.get("SITEPROOF_ALLOW_STUB_BROKER", "")
    return allow_stub.strip().lower() in _TRUTHY or _is_running_tests()


def ensure_broker_configured() -> None:
    """Make sure a Dramatiq broker exists before sending or running a job.

    Idempotent and thread-safe. Called at send and execution time rather than
    at import so importing the actors never mutates global broker state.

    Raises
    ------
    RuntimeError
        If no broker is configured and a stub broker is not allowed.

    """
    global _broker_configured

    if _broker_configured:
        return

    with _BROKER_LOCK:
        if _broker_configured:
            return

        try:
            current_broker = dramatiq.get_broker()
        except (ImportError, LookupError):
            # RabbitMQ client missing, or nothing configured yet
            current_broker = None

        if current_broker is None:
            if not stub_broker_allowed():
                message = (
                    "No Dramatiq broker configured. "
                    "Set SITEPROOF_ALLOW_STUB_BROKER=1 for local/test runs "
                    "or configure a real broker."
                )
                raise RuntimeError(message)
            dramatiq.set_broker(StubBroker())

        _broker_configured = True


__all__ = ["ensure_broker_configured", "stub_broker_allowed"]
