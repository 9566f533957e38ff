"""Configuration for the report queue and worker.

Usage
-----
Create a configuration with defaults:

>>> config = ReportQueueConfig()
>>> config.max_retries
3

Or load from environment variables:

>>> import os
>>> os.environ["SITEPROOF_REPORT_MAX_RETRIES"] = "5"
>>> ReportQueueConfig.from_env().max_retries
5

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import os
from pathlib import Path


@dc.dataclass(frozen=True, slots=True)
class ReportQueueConfig:
    """Settings shared by intake, retry and the report worker.

    Attributes
    ----------
    max_retries
        Retry ceiling stamped onto each new entry. Changing it never affects
        rows that already exist. Default is 3.
    retention_days
        Days after queueing at which an entry becomes eligible for purge.
        Default is 30.
    artifact_root
        Directory the worker writes rendered reports to. When ``None`` the
        worker cannot store artifacts and every generation fails.
    artifact_base_url
        Public base URL for stored artifacts. Defaults to a ``file://`` URL
        of ``artifact_root``.

    """

    max_retries: int = 3
    retention_days: int = 30
    artifact_root: Path | None = None
    artifact_base_url: str | None = None

    @property
    def retention(self) -> dt.timedelta:
        """Return the retention period as a timedelta."""
        return dt.timedelta(days=self.retention_days)

    @staticmethod
    def _parse_int(env_var: str, default: int, *, minimum: int) -> int:
        """Read an integer env var no smaller than *minimum*."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ValueError(msg) from exc
        if value < minimum:
            msg = f"{env_var} must be at least {minimum}, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls) -> ReportQueueConfig:
        """Create configuration from environment variables.

        Reads the following environment variables:

        - ``SITEPROOF_REPORT_MAX_RETRIES``: retry ceiling for new entries.
          Zero disables retries.
        - ``SITEPROOF_REPORT_RETENTION_DAYS``: positive number of days.
        - ``SITEPROOF_ARTIFACT_ROOT``: optional artifact directory.
        - ``SITEPROOF_ARTIFACT_BASE_URL``: optional public base URL.

        Raises
        ------
        ValueError
            If an integer variable is malformed or out of range.

        """
        max_retries = cls._parse_int("SITEPROOF_REPORT_MAX_RETRIES", 3, minimum=0)
        retention_days = cls._parse_int(
            "SITEPROOF_REPORT_RETENTION_DAYS", 30, minimum=1
        )

        artifact_root: Path | None = None
        raw_root = os.environ.get("SITEPROOF_ARTIFACT_ROOT", "")
        if raw_root.strip():
            artifact_root = Path(raw_root.strip())

        raw_base_url = os.environ.get("SITEPROOF_ARTIFACT_BASE_URL", "").strip()

        return cls(
            max_retries=max_retries,
            retention_days=retention_days,
            artifact_root=artifact_root,
            artifact_base_url=raw_base_url or None,
        )


__all__ = ["ReportQueueConfig"]
