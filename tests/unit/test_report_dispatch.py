"""Unit tests for the Dramatiq report dispatcher and broker set-up."""

from __future__ import annotations

from unittest import mock

import dramatiq
import pytest
from dramatiq.brokers.stub import StubBroker
from dramatiq.errors import ConnectionClosed

from siteproof.reports import _broker
from siteproof.reports.dispatch import DramatiqReportDispatcher
from siteproof.reports.errors import ReportDispatchError
from siteproof.reports.models import ReportDispatch
from siteproof.storage.models import ReportFormat, ReportType

DATABASE_URL = "sqlite+aiosqlite:///reports.db"

MESSAGE = ReportDispatch(
    report_id="r-1",
    report_type=ReportType.NCR_REPORT,
    format=ReportFormat.CSV,
    parameters={"project_id": "p-1"},
    organization_id="org-a",
    requested_by="u-1",
)


class TestDramatiqReportDispatcher:
    """Tests for ``DramatiqReportDispatcher``."""

    @pytest.mark.asyncio
    async def test_sends_database_url_and_payload(self) -> None:
        """The actor receives the database URL and a builtin payload."""
        actor = mock.Mock()
        dispatcher = DramatiqReportDispatcher(DATABASE_URL, actor=actor)

        await dispatcher.dispatch(MESSAGE)

        actor.send.assert_called_once_with(
            DATABASE_URL,
            {
                "report_id": "r-1",
                "report_type": "ncr_report",
                "format": "csv",
                "parameters": {"project_id": "p-1"},
                "organization_id": "org-a",
                "requested_by": "u-1",
            },
        )

    @pytest.mark.parametrize(
        "error",
        [
            ConnectionClosed(OSError("connection reset")),
            OSError("network unreachable"),
            RuntimeError("No Dramatiq broker configured"),
        ],
    )
    @pytest.mark.asyncio
    async def test_send_failures_become_dispatch_errors(
        self, error: Exception
    ) -> None:
        """Broker failures are wrapped with the report ID."""
        actor = mock.Mock()
        actor.send.side_effect = error
        dispatcher = DramatiqReportDispatcher(DATABASE_URL, actor=actor)

        with pytest.raises(ReportDispatchError) as excinfo:
            await dispatcher.dispatch(MESSAGE)

        assert excinfo.value.report_id == "r-1"
        assert excinfo.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_default_actor_enqueues_on_broker(self) -> None:
        """Without an explicit actor the generation job is used."""
        from siteproof.reports.actor import generate_report_job

        broker = generate_report_job.broker
        broker.flush_all()
        dispatcher = DramatiqReportDispatcher(DATABASE_URL)

        await dispatcher.dispatch(MESSAGE)

        queue = broker.queues[generate_report_job.queue_name]
        assert queue.qsize() == 1, "expected one enqueued generation message"
        broker.flush_all()


class TestEnsureBrokerConfigured:
    """Tests for ``ensure_broker_configured``."""

    @pytest.fixture(autouse=True)
    def unconfigured(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Pretend no broker has been configured yet."""
        monkeypatch.setattr(_broker, "_broker_configured", False)
        monkeypatch.setattr(dramatiq, "get_broker", lambda: None)

    def test_installs_stub_broker_when_allowed(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test runs fall back to the in-memory stub broker."""
        installed: list[object] = []
        monkeypatch.setattr(dramatiq, "set_broker", installed.append)

        _broker.ensure_broker_configured()

        assert len(installed) == 1
        assert isinstance(installed[0], StubBroker)
        assert _broker._broker_configured is True

    def test_refuses_without_broker(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Production runs without a broker fail loudly."""
        monkeypatch.setattr(_broker, "stub_broker_allowed", lambda: False)

        with pytest.raises(RuntimeError, match="No Dramatiq broker configured"):
            _broker.ensure_broker_configured()

    @pytest.mark.parametrize("value", ["1", "true", "YES"])
    def test_env_var_allows_stub(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        """``SITEPROOF_ALLOW_STUB_BROKER`` opts local runs into the stub."""
        monkeypatch.setattr(_broker, "_is_running_tests", lambda: False)
        monkeypatch.setenv("SITEPROOF_ALLOW_STUB_BROKER", value)
        assert _broker.stub_broker_allowed() is True

    def test_stub_not_allowed_by_default(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Outside tests the stub must be requested explicitly."""
        monkeypatch.setattr(_broker, "_is_running_tests", lambda: False)
        monkeypatch.delenv("SITEPROOF_ALLOW_STUB_BROKER", raising=False)
        assert _broker.stub_broker_allowed() is False
