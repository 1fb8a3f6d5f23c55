"""Tests for the direct OS filesystem adapter."""

import errno
import os
import time
from unittest.mock import patch

import pytest

from filedeck.errors import (
    AlreadyExists,
    InvalidPath,
    IsADirectory,
    NotADirectory,
    NotFound,
    PermissionDenied,
    StorageIOError,
)
from filedeck.services.entries import FileKind
from filedeck.services.local_fs import LocalFileSystem, translate_os_error


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


@pytest.fixture
def tree(root):
    (root / "docs").mkdir()
    (root / "docs" / "report.txt").write_text("hello")
    (root / "docs" / "photo.JPG").write_bytes(b"\xff\xd8")
    (root / "empty").mkdir()
    return root


class TestReads:
    @pytest.mark.asyncio
    async def test_list(self, local_fs, tree):
        entries = {e.name: e for e in await local_fs.list("docs")}
        assert set(entries) == {"report.txt", "photo.JPG"}
        report = entries["report.txt"]
        assert report.path == "docs/report.txt"
        assert report.size == 5
        assert report.kind is FileKind.TEXT
        assert not report.is_directory
        assert entries["photo.JPG"].kind is FileKind.IMAGE

    @pytest.mark.asyncio
    async def test_list_root_reports_dirs_with_zero_size(self, local_fs, tree):
        entries = {e.name: e for e in await local_fs.list("/")}
        assert entries["docs"].is_directory
        assert entries["docs"].size == 0
        assert entries["docs"].kind is FileKind.DIR

    @pytest.mark.asyncio
    async def test_list_skips_symlinks(self, local_fs, tree):
        os.symlink(tree / "docs" / "report.txt", tree / "docs" / "link.txt")
        names = {e.name for e in await local_fs.list("docs")}
        assert "link.txt" not in names

    @pytest.mark.asyncio
    async def test_list_missing(self, local_fs, tree):
        with pytest.raises(NotFound):
            await local_fs.list("nope")

    @pytest.mark.asyncio
    async def test_list_file_is_not_a_directory(self, local_fs, tree):
        with pytest.raises(NotADirectory):
            await local_fs.list("docs/report.txt")

    @pytest.mark.asyncio
    async def test_stat_and_exists(self, local_fs, tree):
        entry = await local_fs.stat("docs/report.txt")
        assert entry.name == "report.txt"
        assert await local_fs.exists("docs")
        assert not await local_fs.exists("docs/missing.txt")

    @pytest.mark.asyncio
    async def test_read_stream_in_chunks(self, local_fs, tree):
        chunks = [c async for c in local_fs.read_stream("docs/report.txt", chunk_size=2)]
        assert chunks == [b"he", b"ll", b"o"]

    @pytest.mark.asyncio
    async def test_timeout_raises_deadline(self, local_fs, tree):
        def _slow(rel):
            time.sleep(0.3)
            return []

        with patch.object(local_fs, "_list_sync", side_effect=_slow):
            with pytest.raises(StorageIOError) as exc_info:
                await local_fs.list("docs", timeout=0.05)
        assert exc_info.value.is_deadline
        assert exc_info.value.to_dict()["cause"] == "deadline"


class TestWrites:
    @pytest.mark.asyncio
    async def test_write_stream_reports_progress(self, local_fs, root):
        seen = []
        written = await local_fs.write_stream("out.bin", _chunks(b"abc", b"de"), on_progress=seen.append)
        assert written == 5
        assert seen == [3, 5]
        assert (root / "out.bin").read_bytes() == b"abcde"
        assert not list(root.glob(".*.part"))

    @pytest.mark.asyncio
    async def test_write_stream_replaces_existing(self, local_fs, tree):
        await local_fs.write_stream("docs/report.txt", _chunks(b"new"))
        assert (tree / "docs" / "report.txt").read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_write_stream_missing_parent(self, local_fs, root):
        with pytest.raises(NotFound):
            await local_fs.write_stream("missing/out.bin", _chunks(b"x"))
        assert not any(p.name.endswith(".part") for p in root.rglob("*"))

    @pytest.mark.asyncio
    async def test_write_stream_failure_removes_temp_file(self, local_fs, root):
        async def _broken():
            yield b"partial"
            raise RuntimeError("client went away")

        with pytest.raises(RuntimeError):
            await local_fs.write_stream("out.bin", _broken())
        assert list(root.iterdir()) == []

    @pytest.mark.asyncio
    async def test_write_to_root_rejected(self, local_fs, root):
        with pytest.raises(InvalidPath):
            await local_fs.write_stream("/", _chunks(b"x"))

    @pytest.mark.asyncio
    async def test_mkdir(self, local_fs, root):
        entry = await local_fs.mkdir("a/b")
        assert entry.is_directory
        assert entry.path == "a/b"
        assert (root / "a" / "b").is_dir()
        with pytest.raises(AlreadyExists):
            await local_fs.mkdir("a/b")

    @pytest.mark.asyncio
    async def test_rename(self, local_fs, tree):
        entry = await local_fs.rename("docs/report.txt", "docs/final.txt")
        assert entry.name == "final.txt"
        assert (tree / "docs" / "final.txt").exists()
        assert not (tree / "docs" / "report.txt").exists()

    @pytest.mark.asyncio
    async def test_rename_conflicts(self, local_fs, tree):
        with pytest.raises(AlreadyExists):
            await local_fs.rename("docs/report.txt", "docs/photo.JPG")
        with pytest.raises(NotFound):
            await local_fs.rename("docs/missing.txt", "docs/x.txt")

    @pytest.mark.asyncio
    async def test_remove(self, local_fs, tree):
        await local_fs.remove("docs/report.txt")
        assert not (tree / "docs" / "report.txt").exists()
        await local_fs.remove("empty")
        assert not (tree / "empty").exists()

    @pytest.mark.asyncio
    async def test_remove_non_empty_requires_recursive(self, local_fs, tree):
        with pytest.raises(StorageIOError, match="not empty"):
            await local_fs.remove("docs")
        await local_fs.remove("docs", recursive=True)
        assert not (tree / "docs").exists()

    @pytest.mark.asyncio
    async def test_remove_root_rejected(self, local_fs, tree):
        with pytest.raises(InvalidPath):
            await local_fs.remove("", recursive=True)
        assert tree.exists()

    @pytest.mark.asyncio
    async def test_copy(self, local_fs, tree):
        await local_fs.copy("docs/report.txt", "empty/report.txt")
        assert (tree / "empty" / "report.txt").read_text() == "hello"
        assert (tree / "docs" / "report.txt").exists()

    @pytest.mark.asyncio
    async def test_copy_directory_requires_recursive(self, local_fs, tree):
        with pytest.raises(IsADirectory):
            await local_fs.copy("docs", "docs2")
        entry = await local_fs.copy("docs", "docs2", recursive=True)
        assert entry.is_directory
        assert (tree / "docs2" / "report.txt").read_text() == "hello"

    @pytest.mark.asyncio
    async def test_move_into_itself_rejected(self, local_fs, tree):
        with pytest.raises(InvalidPath):
            await local_fs.move("docs", "docs/inner")

    @pytest.mark.asyncio
    async def test_move(self, local_fs, tree):
        await local_fs.move("docs", "empty/docs")
        assert (tree / "empty" / "docs" / "report.txt").exists()
        assert not (tree / "docs").exists()

    @pytest.mark.asyncio
    async def test_move_across_devices_falls_back_to_copy(self, local_fs, tree):
        cross_device = OSError(errno.EXDEV, "Invalid cross-device link")
        with patch("filedeck.services.local_fs.os.rename", side_effect=cross_device):
            await local_fs.move("docs", "moved")
        assert (tree / "moved" / "report.txt").read_text() == "hello"
        assert not (tree / "docs").exists()


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "code, expected",
        [
            (errno.ENOENT, NotFound),
            (errno.EEXIST, AlreadyExists),
            (errno.EACCES, PermissionDenied),
            (errno.EPERM, PermissionDenied),
            (errno.ENOTDIR, NotADirectory),
            (errno.EISDIR, IsADirectory),
            (errno.EIO, StorageIOError),
        ],
    )
    def test_errno_mapping(self, code, expected):
        error = translate_os_error(OSError(code, os.strerror(code)), "x")
        assert type(error) is expected
        assert error.path == "x"


def test_adapter_exposes_resolver(local_fs, root):
    assert isinstance(local_fs, LocalFileSystem)
    assert local_fs.resolver.root == root.resolve()
