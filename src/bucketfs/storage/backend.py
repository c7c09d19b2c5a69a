from typing import Awaitable, Callable, Optional

from loguru import logger

from bucketfs.config import FileSystemSettings
from bucketfs.errors import UnsupportedOperationError
from bucketfs.paths import PathResolver, join
from bucketfs.stat import FileStat
from bucketfs.streams import ChannelReader, ReadStream, UploadChannel


def merge_page(result: list[FileStat], seen: set[str], entries: list[FileStat]) -> None:
    """Append one listing page, dropping names already returned by earlier pages."""
    for entry in entries:
        if not entry.name or entry.name in seen:
            continue
        seen.add(entry.name)
        result.append(entry)


class FileSystem:
    """Directory/file model shared by every storage backend.

    Each instance belongs to one client session and owns its working
    directory. Paths handed to any operation are resolved against it into a
    root-relative key first.
    """

    confine_paths = False

    def __init__(self, settings: Optional[FileSystemSettings] = None):
        self.settings = settings or FileSystemSettings()
        self._paths = PathResolver(confine=self.confine_paths)

    def resolve_path(self, path: str | None = None) -> str:
        return self._paths.resolve(path)

    def absolute_path(self, path: str | None = None) -> str:
        return self._paths.absolute(path)

    def current_directory(self) -> str:
        return self._paths.cwd

    async def chdir(self, path: str) -> str:
        return self._paths.chdir(path)

    async def get(self, path: str) -> FileStat:
        raise NotImplementedError

    async def stat(self, path: str) -> FileStat:
        return await self.get(path)

    async def list(self, path: str = ".") -> list[FileStat]:
        raise NotImplementedError

    async def read(self, path: str, start: int | None = None) -> ReadStream:
        raise NotImplementedError

    async def write(
        self, path: str, append: bool = False, start: int | None = None
    ) -> UploadChannel:
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError

    async def rename(self, source: str, destination: str) -> None:
        raise UnsupportedOperationError(f"{type(self).__name__} does not support rename")

    async def ensure_dir(self, path: str) -> None:
        pass

    async def get_signed_url(self, path: str) -> str | None:
        return None

    async def recursively_delete(self, path: str) -> None:
        root = self.resolve_path(path)
        pending = [root]
        visited = []

        while pending:
            key = pending.pop()
            visited.append(key)
            for entry in await self.list(f"/{key}"):
                child = join(key, entry.name)
                if entry.is_directory():
                    pending.append(child)
                else:
                    await self.delete(f"/{child}")

        for key in reversed(visited):
            await self._remove_directory(key)
        logger.info(f"Recursively deleted '/{root}' ({len(visited)} directories)")

    async def _remove_directory(self, key: str) -> None:
        pass

    async def read_file(self, path: str) -> bytes:
        stream = await self.read(path)
        return await stream.read()

    async def write_file(self, path: str, content: bytes) -> None:
        channel = await self.write(path)
        async with channel:
            await channel.write(content)

    def _reject_partial_write(self, path: str, append: bool, start: int | None) -> None:
        if append or start:
            raise UnsupportedOperationError(
                f"{type(self).__name__} cannot append or write at an offset: {path}"
            )

    def _open_channel(
        self, key: str, persist: Callable[[ChannelReader], Awaitable[None]]
    ) -> UploadChannel:
        return UploadChannel(key, persist, queue_size=self.settings.upload_queue_size)
