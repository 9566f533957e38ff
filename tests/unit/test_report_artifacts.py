"""Unit tests for FilesystemArtifactStore."""

from __future__ import annotations

import asyncio
import typing as typ

from siteproof.reports.artifacts import FilesystemArtifactStore, StoredArtifact
from siteproof.reports.renderer import RenderedReport

if typ.TYPE_CHECKING:
    from pathlib import Path

RENDERED = RenderedReport(
    content=b'{"report_id": "r-1"}',
    file_name="weekly summary.json",
    mime_type="application/json",
)


class TestFilesystemArtifactStore:
    """Tests for the filesystem artifact store."""

    def test_store_writes_under_org_and_report(self, tmp_path: Path) -> None:
        """Artifacts land in root/organization/report/file."""
        store = FilesystemArtifactStore(tmp_path)

        artifact = asyncio.run(
            store.store(organization_id="org-a", report_id="r-1", rendered=RENDERED)
        )

        path = tmp_path / "org-a" / "r-1" / "weekly summary.json"
        assert path.read_bytes() == RENDERED.content
        assert artifact == StoredArtifact(
            url=path.resolve().as_uri(), size_bytes=len(RENDERED.content)
        )

    def test_base_url_is_used_and_quoted(self, tmp_path: Path) -> None:
        """A base URL replaces the file URI and path parts are quoted."""
        store = FilesystemArtifactStore(
            tmp_path, base_url="https://files.example.test/reports/"
        )

        artifact = asyncio.run(
            store.store(organization_id="org-a", report_id="r-1", rendered=RENDERED)
        )

        assert artifact.url == (
            "https://files.example.test/reports/org-a/r-1/weekly%20summary.json"
        )

    def test_store_overwrites_previous_attempt(self, tmp_path: Path) -> None:
        """A retried report replaces the artifact of the failed attempt."""
        store = FilesystemArtifactStore(tmp_path)
        stale = RenderedReport(
            content=b"stale", file_name=RENDERED.file_name, mime_type="text/plain"
        )

        asyncio.run(store.store(organization_id="o", report_id="r", rendered=stale))
        asyncio.run(store.store(organization_id="o", report_id="r", rendered=RENDERED))

        path = store.path_for("o", "r", RENDERED.file_name)
        assert path.read_bytes() == RENDERED.content

    def test_remove_deletes_file_and_empty_directory(self, tmp_path: Path) -> None:
        """Removing the only artifact also drops the report directory."""
        store = FilesystemArtifactStore(tmp_path)
        asyncio.run(store.store(organization_id="o", report_id="r", rendered=RENDERED))

        asyncio.run(
            store.remove(
                organization_id="o", report_id="r", file_name=RENDERED.file_name
            )
        )

        assert not (tmp_path / "o" / "r").exists()

    def test_remove_keeps_other_files(self, tmp_path: Path) -> None:
        """The report directory stays while it still holds other files."""
        store = FilesystemArtifactStore(tmp_path)
        other = RenderedReport(
            content=b"a,b\n", file_name="r.csv", mime_type="text/csv"
        )
        for rendered in (RENDERED, other):
            asyncio.run(
                store.store(organization_id="o", report_id="r", rendered=rendered)
            )

        asyncio.run(
            store.remove(
                organization_id="o", report_id="r", file_name=RENDERED.file_name
            )
        )

        assert not store.path_for("o", "r", RENDERED.file_name).exists()
        assert store.path_for("o", "r", "r.csv").read_bytes() == b"a,b\n"

    def test_remove_missing_artifact_is_quiet(self, tmp_path: Path) -> None:
        """Removing an artifact that was never written does nothing."""
        store = FilesystemArtifactStore(tmp_path)

        asyncio.run(store.remove(organization_id="o", report_id="r", file_name="x"))

        assert list(tmp_path.iterdir()) == []
