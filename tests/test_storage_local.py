from unittest.mock import AsyncMock, patch

import pytest

from bucketfs.errors import ObjectNotFoundError, PathEscapeError, TransportError
from bucketfs.location import LocalLocation
from bucketfs.stat import FileKind
from bucketfs.storage.local import LocalFileSystem


class TestLocalFileSystemInit:
    def test_accepts_location(self, temp_root):
        fs = LocalFileSystem(LocalLocation(root=str(temp_root)))
        assert fs.root == temp_root.resolve()
        assert fs.current_directory() == "/"

    def test_accepts_path(self, temp_root):
        assert LocalFileSystem(temp_root).root == temp_root.resolve()


class TestLocalFileSystemWriteAndStat:
    @pytest.mark.asyncio
    async def test_write_then_stat_and_list(self, local_fs):
        await local_fs.write_file("/a/b.txt", b"hello")

        stat = await local_fs.get("/a/b.txt")
        assert stat.kind == FileKind.FILE
        assert stat.size == 5
        assert stat.name == "b.txt"

        listing = await local_fs.list("/a")
        assert [entry.name for entry in listing] == ["b.txt"]

    @pytest.mark.asyncio
    async def test_directory_stat(self, local_fs, temp_root):
        (temp_root / "media").mkdir()

        stat = await local_fs.stat("/media")

        assert stat.is_directory()
        assert stat.size == 0

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, local_fs):
        with pytest.raises(ObjectNotFoundError):
            await local_fs.get("/missing.txt")

    @pytest.mark.asyncio
    async def test_channel_reports_resolved_key(self, local_fs):
        channel = await local_fs.write("/docs/report.csv")
        await channel.write(b"a,b\n")
        await channel.close()

        assert channel.client_path == "docs/report.csv"

    @pytest.mark.asyncio
    async def test_append(self, local_fs, temp_root):
        await local_fs.write_file("/log.txt", b"one\n")

        channel = await local_fs.write("/log.txt", append=True)
        await channel.write(b"two\n")
        await channel.close()

        assert (temp_root / "log.txt").read_bytes() == b"one\ntwo\n"

    @pytest.mark.asyncio
    async def test_write_at_offset(self, local_fs, temp_root):
        await local_fs.write_file("/data.bin", b"0123456789")

        channel = await local_fs.write("/data.bin", start=4)
        await channel.write(b"ab")
        await channel.close()

        assert (temp_root / "data.bin").read_bytes() == b"0123ab6789"


class TestLocalFileSystemRead:
    @pytest.mark.asyncio
    async def test_round_trip(self, local_fs):
        content = bytes(range(256)) * 1000
        await local_fs.write_file("/blob.bin", content)

        assert await local_fs.read_file("/blob.bin") == content

    @pytest.mark.asyncio
    async def test_range_read(self, local_fs):
        await local_fs.write_file("/blob.bin", b"hello world")

        stream = await local_fs.read("/blob.bin", start=6)

        assert await stream.read() == b"world"
        assert stream.client_path == "blob.bin"

    @pytest.mark.asyncio
    async def test_read_missing_raises(self, local_fs):
        with pytest.raises(ObjectNotFoundError):
            await local_fs.read("/nope.bin")

    @pytest.mark.asyncio
    async def test_failed_seek_closes_file(self, local_fs, temp_root):
        (temp_root / "a.txt").write_bytes(b"hello")
        handle = AsyncMock()
        handle.seek = AsyncMock(side_effect=OSError("Invalid argument"))

        with patch("aiofiles.open", AsyncMock(return_value=handle)):
            with pytest.raises(TransportError):
                await local_fs.read("/a.txt", start=3)
            with pytest.raises(TransportError):
                await local_fs.write("/a.txt", start=3)

        assert handle.close.await_count == 2


class TestLocalFileSystemDirectories:
    @pytest.mark.asyncio
    async def test_chdir_and_relative_paths(self, local_fs):
        await local_fs.ensure_dir("/projects/demo")

        assert await local_fs.chdir("projects") == "/projects"
        await local_fs.write_file("demo/readme.md", b"# demo")

        assert local_fs.current_directory() == "/projects"
        assert (await local_fs.get("/projects/demo/readme.md")).size == 6

    @pytest.mark.asyncio
    async def test_chdir_to_missing_directory_raises(self, local_fs):
        with pytest.raises(ObjectNotFoundError):
            await local_fs.chdir("/missing")
        assert local_fs.current_directory() == "/"

    @pytest.mark.asyncio
    async def test_chdir_to_file_raises(self, local_fs):
        await local_fs.write_file("/file.txt", b"x")
        with pytest.raises(ObjectNotFoundError):
            await local_fs.chdir("/file.txt")

    @pytest.mark.asyncio
    async def test_ensure_dir_rejects_relative_names(self, local_fs):
        with pytest.raises(PathEscapeError):
            await local_fs.ensure_dir("../outside")
        with pytest.raises(PathEscapeError):
            await local_fs.ensure_dir("./inside")

    @pytest.mark.asyncio
    async def test_ensure_dir_creates_nested(self, local_fs, temp_root):
        await local_fs.ensure_dir("/x/y/z")
        assert (temp_root / "x" / "y" / "z").is_dir()

    @pytest.mark.asyncio
    async def test_traversal_outside_root_is_rejected(self, local_fs):
        with pytest.raises(PathEscapeError):
            await local_fs.get("../../etc/passwd")

    @pytest.mark.asyncio
    async def test_list_missing_directory_raises(self, local_fs):
        with pytest.raises(ObjectNotFoundError):
            await local_fs.list("/nowhere")


class TestLocalFileSystemDelete:
    @pytest.mark.asyncio
    async def test_delete_file(self, local_fs, temp_root):
        await local_fs.write_file("/a.txt", b"x")

        await local_fs.delete("/a.txt")

        assert not (temp_root / "a.txt").exists()

    @pytest.mark.asyncio
    async def test_delete_missing_raises(self, local_fs):
        with pytest.raises(ObjectNotFoundError):
            await local_fs.delete("/a.txt")

    @pytest.mark.asyncio
    async def test_recursively_delete_nested_tree(self, local_fs, temp_root):
        await local_fs.write_file("/tree/a.txt", b"a")
        await local_fs.write_file("/tree/sub/b.txt", b"b")
        await local_fs.write_file("/tree/sub/deeper/c.txt", b"c")
        await local_fs.ensure_dir("/tree/empty")
        await local_fs.write_file("/keep.txt", b"k")

        await local_fs.recursively_delete("/tree")

        with pytest.raises(ObjectNotFoundError):
            await local_fs.list("/tree")
        assert (temp_root / "keep.txt").exists()

    @pytest.mark.asyncio
    async def test_recursively_delete_root_keeps_root(self, local_fs, temp_root):
        await local_fs.write_file("/sub/a.txt", b"a")

        await local_fs.recursively_delete("/")

        assert temp_root.exists()
        assert await local_fs.list("/") == []


class TestLocalFileSystemRename:
    @pytest.mark.asyncio
    async def test_rename(self, local_fs):
        await local_fs.write_file("/a/b.txt", b"hello")

        await local_fs.rename("/a/b.txt", "/a/c.txt")

        with pytest.raises(ObjectNotFoundError):
            await local_fs.get("/a/b.txt")
        assert (await local_fs.get("/a/c.txt")).size == 5

    @pytest.mark.asyncio
    async def test_rename_missing_raises(self, local_fs):
        with pytest.raises(ObjectNotFoundError):
            await local_fs.rename("/nope.txt", "/other.txt")


class TestLocalFileSystemSignedUrl:
    @pytest.mark.asyncio
    async def test_signed_urls_are_unsupported(self, local_fs):
        assert await local_fs.get_signed_url("/a.txt") is None
