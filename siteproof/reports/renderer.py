r"""Rendering of report artifacts.

The worker hands each entry to a :class:`ReportRenderer`. The bundled
:class:`ManifestRenderer` produces a machine-readable manifest of the
request in JSON or CSV; document engines for PDF and spreadsheet output
plug in behind the same protocol.

Usage
-----
>>> renderer = ManifestRenderer()
>>> rendered = renderer.render(entry, generated_at=now)
>>> rendered.file_name
'site-4-ncr-summary.json'

"""

from __future__ import annotations

import csv
import dataclasses as dc
import io
import typing as typ

import msgspec

from siteproof.common.slug import file_slug
from siteproof.reports.errors import UnsupportedFormatError
from siteproof.storage.models import ReportFormat

if typ.TYPE_CHECKING:
    import datetime as dt

    from siteproof.storage.models import ReportQueueEntry


@dc.dataclass(frozen=True, slots=True)
class RenderedReport:
    """Bytes produced for one report, ready to be stored."""

    content: bytes
    file_name: str
    mime_type: str

    @property
    def size_bytes(self) -> int:
        """Return the artifact size."""
        return len(self.content)


class ReportRenderer(typ.Protocol):
    """Turns a processing entry into artifact bytes."""

    def render(
        self, entry: ReportQueueEntry, *, generated_at: dt.datetime
    ) -> RenderedReport:
        """Render *entry* or raise ``UnsupportedFormatError``."""
        ...


def _manifest(
    entry: ReportQueueEntry, generated_at: dt.datetime
) -> dict[str, typ.Any]:
    return {
        "report_id": entry.id,
        "organization_id": entry.organization_id,
        "requested_by": entry.requested_by,
        "report_type": str(entry.report_type),
        "report_name": entry.report_name,
        "description": entry.description,
        "format": str(entry.format),
        "retry_count": entry.retry_count,
        "generated_at": generated_at.isoformat(),
        "parameters": dict(entry.parameters or {}),
    }


def _render_csv(manifest: dict[str, typ.Any]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["field", "value"])
    for key, value in manifest.items():
        if key == "parameters":
            continue
        writer.writerow([key, "" if value is None else value])
    # Parameter values may be nested; keep them as JSON text.
    for key in sorted(manifest["parameters"]):
        encoded = msgspec.json.encode(manifest["parameters"][key]).decode("utf-8")
        writer.writerow([f"parameters.{key}", encoded])
    return buffer.getvalue().encode("utf-8")


class ManifestRenderer:
    """Render a manifest of the request as JSON or CSV."""

    supported_formats: typ.ClassVar[frozenset[ReportFormat]] = frozenset(
        {ReportFormat.JSON, ReportFormat.CSV}
    )

    def render(
        self, entry: ReportQueueEntry, *, generated_at: dt.datetime
    ) -> RenderedReport:
        """Render *entry* in its requested format.

        Raises
        ------
        UnsupportedFormatError
            For PDF and Excel output.

        """
        report_format = ReportFormat(entry.format)
        if report_format not in self.supported_formats:
            raise UnsupportedFormatError(report_format.value)

        manifest = _manifest(entry, generated_at)
        if report_format is ReportFormat.JSON:
            content = msgspec.json.encode(manifest)
        else:
            content = _render_csv(manifest)

        return RenderedReport(
            content=content,
            file_name=f"{file_slug(entry.report_name)}{report_format.extension}",
            mime_type=report_format.mime_type,
        )


__all__ = ["ManifestRenderer", "RenderedReport", "ReportRenderer"]
