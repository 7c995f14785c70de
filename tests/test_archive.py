"""Tests for archive creation."""

import zipfile

import pytest

from conftest import write_files
from packforge.build.archive import ArchiveSource, create_archive
from packforge.build.context import CancellationToken
from packforge.core.exceptions import ArchiveError, BuildCancelledError
from packforge.core.models import ArchiveOptions


class TestCreateArchive:

    @pytest.mark.asyncio
    async def test_sources_at_root_and_named(self, tmp_path):
        write_files(tmp_path / "bp", {"manifest.json": "{}", "scripts/main.js": "x"})
        write_files(tmp_path / "rp", {"manifest.json": "{}"})
        out_file = tmp_path / "dist" / "out.zip"

        size = await create_archive(
            [ArchiveSource(tmp_path / "bp", ""), ArchiveSource(tmp_path / "rp", "RP")],
            ArchiveOptions(out_file=out_file, compression_level=5),
        )

        assert size == out_file.stat().st_size
        with zipfile.ZipFile(out_file) as zf:
            assert sorted(zf.namelist()) == ["RP/manifest.json", "manifest.json", "scripts/main.js"]
            assert zf.read("scripts/main.js") == b"x"

    @pytest.mark.asyncio
    async def test_already_cancelled_leaves_existing_file(self, tmp_path):
        write_files(tmp_path / "rp", {"a.txt": "a"})
        out_file = tmp_path / "out.zip"
        out_file.write_bytes(b"previous")
        token = CancellationToken()
        token.cancel()

        with pytest.raises(BuildCancelledError):
            await create_archive([ArchiveSource(tmp_path / "rp", "")], ArchiveOptions(out_file=out_file), token)

        assert out_file.read_bytes() == b"previous"

    @pytest.mark.asyncio
    async def test_cancelled_mid_write_removes_partial_file(self, tmp_path):
        write_files(tmp_path / "rp", {f"f{i}.txt": str(i) for i in range(5)})
        out_file = tmp_path / "out.zip"

        class CancelAfter(CancellationToken):
            def __init__(self, checks):
                super().__init__()
                self.checks = checks

            def raise_if_cancelled(self):
                self.checks -= 1
                if self.checks <= 0:
                    self.cancel()
                super().raise_if_cancelled()

        with pytest.raises(BuildCancelledError):
            await create_archive([ArchiveSource(tmp_path / "rp", "")], ArchiveOptions(out_file=out_file), CancelAfter(3))

        assert not out_file.exists()

    @pytest.mark.asyncio
    async def test_unwritable_destination(self, tmp_path):
        write_files(tmp_path / "rp", {"a.txt": "a"})
        (tmp_path / "blocker").write_text("not a directory")

        with pytest.raises(ArchiveError):
            await create_archive(
                [ArchiveSource(tmp_path / "rp", "")],
                ArchiveOptions(out_file=tmp_path / "blocker" / "out.zip"),
            )
