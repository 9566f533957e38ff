r"""Filesystem storage for rendered report artifacts.

Artifacts are written with a predictable layout::

    {root}/{organization_id}/{report_id}/{file_name}

and addressed by ``{base_url}/{organization_id}/{report_id}/{file_name}``.
Without a base URL the ``file://`` URI of the written file is used.

Usage
-----
>>> import asyncio
>>> from pathlib import Path
>>> store = FilesystemArtifactStore(
...     Path("/var/lib/siteproof/reports"),
...     base_url="https://files.example.test/reports",
... )
>>> artifact = asyncio.run(
...     store.store(organization_id="org-1", report_id="r-1", rendered=rendered)
... )
>>> artifact.url
'https://files.example.test/reports/org-1/r-1/summary.json'

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import typing as typ
from urllib.parse import quote

if typ.TYPE_CHECKING:
    from pathlib import Path

    from siteproof.reports.renderer import RenderedReport


@dc.dataclass(frozen=True, slots=True)
class StoredArtifact:
    """Location and size of a stored artifact."""

    url: str
    size_bytes: int


class ReportArtifactStore(typ.Protocol):
    """Persists rendered reports and returns where they can be fetched."""

    async def store(
        self,
        *,
        organization_id: str,
        report_id: str,
        rendered: RenderedReport,
    ) -> StoredArtifact:
        """Persist *rendered* for the given report."""
        ...

    async def remove(
        self, *, organization_id: str, report_id: str, file_name: str
    ) -> None:
        """Delete a stored artifact; a missing artifact is not an error."""
        ...

class FilesystemArtifactStore:
    """Write artifacts beneath a local directory.

    Parameters
    ----------
    root
        Base directory. Per-report subdirectories are created on demand.
    base_url
        Optional public URL prefix mirroring *root*.

    """

    def __init__(self, root: Path, *, base_url: str | None = None) -> None:
        """Initialise the store with its root directory and URL prefix."""
        self._root = root
        self._base_url = base_url.rstrip("/") if base_url else None

    def path_for(self, organization_id: str, report_id: str, file_name: str) -> Path:
        """Return the on-disk path for an artifact."""
        return self._root / organization_id / report_id / file_name

    def url_for(self, organization_id: str, report_id: str, file_name: str) -> str:
        """Return the URL handed to callers for an artifact."""
        if self._base_url is None:
            path = self.path_for(organization_id, report_id, file_name)
            return path.resolve().as_uri()
        parts = "/".join(
            quote(part, safe="") for part in (organization_id, report_id, file_name)
        )
        return f"{self._base_url}/{parts}"

    async def store(
        self,
        *,
        organization_id: str,
        report_id: str,
        rendered: RenderedReport,
    ) -> StoredArtifact:
        """Write *rendered* and return its URL and size."""
        path = self.path_for(organization_id, report_id, rendered.file_name)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(path.write_bytes, rendered.content)
        return StoredArtifact(
            url=self.url_for(organization_id, report_id, rendered.file_name),
            size_bytes=rendered.size_bytes,
        )

    async def remove(
        self, *, organization_id: str, report_id: str, file_name: str
    ) -> None:
        """Delete an artifact and its report directory once empty."""
        path = self.path_for(organization_id, report_id, file_name)
        await asyncio.to_thread(_discard, path)


def _discard(path: Path) -> None:
    path.unlink(missing_ok=True)
    directory = path.parent
    if directory.is_dir() and not any(directory.iterdir()):
        directory.rmdir()


__all__ = ["FilesystemArtifactStore", "ReportArtifactStore", "StoredArtifact"]
