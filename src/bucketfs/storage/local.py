import os
import stat as stat_module
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
from loguru import logger

from bucketfs.config import FileSystemSettings
from bucketfs.errors import (
    ObjectNotFoundError,
    PathEscapeError,
    TransportError,
)
from bucketfs.location import LocalLocation
from bucketfs.paths import basename
from bucketfs.stat import FileKind, FileStat
from bucketfs.storage.backend import FileSystem
from bucketfs.streams import ChannelReader, ReadStream, UploadChannel


@contextmanager
def _translate_errors(path: str):
    try:
        yield
    except (FileNotFoundError, NotADirectoryError) as e:
        raise ObjectNotFoundError(path) from e
    except OSError as e:
        raise TransportError(f"Filesystem operation on '{path}' failed: {e}") from e


class LocalFileSystem(FileSystem):
    confine_paths = True

    def __init__(
        self,
        location: LocalLocation | str | Path,
        settings: Optional[FileSystemSettings] = None,
    ):
        super().__init__(settings)
        root = location.root if isinstance(location, LocalLocation) else location
        self.root = Path(root).expanduser().resolve()

    def _local_path(self, key: str) -> Path:
        candidate = (self.root / key).resolve() if key else self.root
        try:
            candidate.relative_to(self.root)
        except ValueError as e:
            raise PathEscapeError(f"Path resolves outside root: /{key}") from e
        return candidate

    def _locate(self, path: str) -> tuple[str, Path]:
        key = self.resolve_path(path)
        return key, self._local_path(key)

    @staticmethod
    def _build_stat(name: str, st: os.stat_result) -> FileStat:
        is_dir = stat_module.S_ISDIR(st.st_mode)
        return FileStat(
            name=name,
            kind=FileKind.DIRECTORY if is_dir else FileKind.FILE,
            mode=st.st_mode,
            size=0 if is_dir else st.st_size,
            ctime=datetime.fromtimestamp(st.st_ctime, tz=timezone.utc),
            mtime=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            atime=datetime.fromtimestamp(st.st_atime, tz=timezone.utc),
        )

    @staticmethod
    async def _seek_or_close(f, key: str, start: int) -> None:
        try:
            with _translate_errors(f"/{key}"):
                await f.seek(start)
        except Exception:
            await f.close()
            raise

    async def chdir(self, path: str) -> str:
        entry = await self.get(path)
        if not entry.is_directory():
            raise ObjectNotFoundError(f"{self.absolute_path(path)} (not a directory)")
        return self._paths.chdir(path)

    async def get(self, path: str) -> FileStat:
        key, local_path = self._locate(path)
        with _translate_errors(f"/{key}"):
            st = await aiofiles.os.stat(local_path)
        return self._build_stat(basename(key) or "/", st)

    async def list(self, path: str = ".") -> list[FileStat]:
        key, local_path = self._locate(path)
        with _translate_errors(f"/{key}"):
            names = await aiofiles.os.listdir(local_path)

        result = []
        for name in sorted(names):
            try:
                st = await aiofiles.os.stat(local_path / name)
            except FileNotFoundError:
                # Removed since listdir
                continue
            result.append(self._build_stat(name, st))
        return result

    async def read(self, path: str, start: int | None = None) -> ReadStream:
        key, local_path = self._locate(path)
        with _translate_errors(f"/{key}"):
            f = await aiofiles.open(local_path, "rb")
        if start:
            await self._seek_or_close(f, key, start)

        chunk_size = self.settings.read_chunk_size

        async def chunks():
            while True:
                data = await f.read(chunk_size)
                if not data:
                    break
                yield data

        return ReadStream(key, chunks(), f.close)

    async def write(
        self, path: str, append: bool = False, start: int | None = None
    ) -> UploadChannel:
        key, local_path = self._locate(path)
        if append:
            mode = "ab"
        elif start:
            mode = "r+b"
        else:
            mode = "wb"

        with _translate_errors(f"/{key}"):
            await aiofiles.os.makedirs(local_path.parent, exist_ok=True)
            f = await aiofiles.open(local_path, mode)
        if start and not append:
            await self._seek_or_close(f, key, start)

        async def persist(reader: ChannelReader) -> None:
            try:
                async for chunk in reader:
                    await f.write(chunk)
            finally:
                await f.close()

        return self._open_channel(key, persist)

    async def delete(self, path: str) -> None:
        key, local_path = self._locate(path)
        with _translate_errors(f"/{key}"):
            if await aiofiles.os.path.isdir(local_path):
                await aiofiles.os.rmdir(local_path)
            else:
                await aiofiles.os.remove(local_path)
        logger.info(f"Deleted {local_path}")

    async def rename(self, source: str, destination: str) -> None:
        source_key, source_path = self._locate(source)
        _, destination_path = self._locate(destination)
        with _translate_errors(f"/{source_key}"):
            await aiofiles.os.rename(source_path, destination_path)
        logger.info(f"Renamed {source_path} to {destination_path}")

    async def _remove_directory(self, key: str) -> None:
        if not key:
            return
        with _translate_errors(f"/{key}"):
            await aiofiles.os.rmdir(self._local_path(key))

    async def ensure_dir(self, path: str) -> None:
        if path.startswith("."):
            raise PathEscapeError(f"No relative paths allowed: {path}")

        key, local_path = self._locate(path)
        with _translate_errors(f"/{key}"):
            await aiofiles.os.makedirs(local_path, exist_ok=True)
