import time
from contextlib import AsyncExitStack, contextmanager
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from bucketfs.cache import ListingCache
from bucketfs.config import FileSystemSettings
from bucketfs.errors import (
    ObjectNotFoundError,
    TransportError,
    UnsupportedOperationError,
)
from bucketfs.location import BunnyCDNLocation
from bucketfs.paths import basename, directory_prefix, parent
from bucketfs.stat import FileStat
from bucketfs.storage.backend import FileSystem
from bucketfs.streams import ChannelReader, ReadStream, UploadChannel


@contextmanager
def _translate_errors(path: str):
    try:
        yield
    except httpx.HTTPStatusError as e:
        if e.response.status_code == 404:
            raise ObjectNotFoundError(path) from e
        raise TransportError(
            f"BunnyCDN request for '{path}' failed with HTTP {e.response.status_code}"
        ) from e
    except httpx.HTTPError as e:
        raise TransportError(f"BunnyCDN request for '{path}' failed: {e}") from e


def _request_path(key: str) -> str:
    return quote(key, safe="/")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse the API's ``2023-04-01T12:00:00.123`` timestamps (UTC, no offset)."""
    if not value:
        return None
    head, _, fraction = value.partition(".")
    if fraction:
        head = f"{head}.{fraction[:6].ljust(6, '0')}"
    parsed = datetime.fromisoformat(head)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class BunnyCDNFileSystem(FileSystem):
    """BunnyCDN edge storage zone over its REST API.

    The API has no single-object metadata call, so ``get`` looks the name up
    in a listing of the parent directory. Listings are cached for
    ``listing_cache_ttl`` seconds and are not invalidated by writes: a file
    written within that window may not be visible to ``get`` yet.
    """

    def __init__(
        self,
        location: BunnyCDNLocation,
        settings: Optional[FileSystemSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(settings)
        self.location = location
        self.storage_zone = location.storage_zone
        self.base_url = f"https://{location.storage_host}/{location.storage_zone}/"
        self._transport = transport
        self._listing_cache = ListingCache(self.settings.listing_cache_ttl, clock)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"AccessKey": self.location.access_key},
            transport=self._transport,
            timeout=None,
        )

    @staticmethod
    def _build_stat(entry: Optional[dict], name: Optional[str] = None) -> FileStat:
        if entry is None:
            return FileStat.directory(name or "")

        name = name or entry["ObjectName"]
        created = _parse_timestamp(entry.get("DateCreated"))
        modified = _parse_timestamp(entry.get("LastChanged"))
        if entry.get("IsDirectory"):
            stat = FileStat.directory(name)
            stat.ctime = created or stat.ctime
            stat.mtime = modified or stat.mtime
            return stat
        return FileStat.file(name, entry.get("Length"), created=created, modified=modified)

    async def get(self, path: str) -> FileStat:
        key = self.resolve_path(path)
        if not key:
            return self._build_stat(None, "/")

        directory = parent(key)
        listing = self._listing_cache.get(directory)
        if listing is None:
            listing = await self.list(f"/{directory}")

        name = basename(key)
        for entry in listing:
            if entry.name == name:
                return entry
        raise ObjectNotFoundError(f"/{key}")

    async def list(self, path: str = ".") -> list[FileStat]:
        key = self.resolve_path(path)
        async with self._client() as client:
            with _translate_errors(f"/{key}"):
                response = await client.get(_request_path(directory_prefix(key)))
                response.raise_for_status()

        result = [self._build_stat(entry) for entry in response.json()]
        self._listing_cache.set(key, result)
        logger.debug(f"Listed {len(result)} entries under {self.storage_zone}/{key}")
        return result

    async def read(self, path: str, start: int | None = None) -> ReadStream:
        key = self.resolve_path(path)
        headers = {"Range": f"bytes={start}-"} if start else {}

        async with AsyncExitStack() as stack:
            client = await stack.enter_async_context(self._client())
            with _translate_errors(f"/{key}"):
                request = client.build_request("GET", _request_path(key), headers=headers)
                response = await client.send(request, stream=True)
                stack.push_async_callback(response.aclose)
                response.raise_for_status()
            if start and response.status_code != 206:
                raise UnsupportedOperationError(
                    f"Range request for '/{key}' was not honored (HTTP {response.status_code})"
                )
            cleanup = stack.pop_all()

        return ReadStream(
            key, response.aiter_bytes(self.settings.read_chunk_size), cleanup.aclose
        )

    async def write(
        self, path: str, append: bool = False, start: int | None = None
    ) -> UploadChannel:
        self._reject_partial_write(path, append, start)
        key = self.resolve_path(path)

        async def persist(reader: ChannelReader) -> None:
            async with self._client() as client:
                with _translate_errors(f"/{key}"):
                    response = await client.put(_request_path(key), content=reader)
                    response.raise_for_status()
            logger.debug(f"Uploaded {self.storage_zone}/{key}")

        return self._open_channel(key, persist)

    async def delete(self, path: str) -> None:
        key = self.resolve_path(path)
        async with self._client() as client:
            with _translate_errors(f"/{key}"):
                response = await client.delete(_request_path(key))
                response.raise_for_status()
        logger.info(f"Deleted {self.storage_zone}/{key}")

    async def recursively_delete(self, path: str) -> None:
        key = self.resolve_path(path)
        if not key:
            # The zone root cannot be deleted in one request
            await super().recursively_delete(path)
            return

        async with self._client() as client:
            with _translate_errors(f"/{key}"):
                response = await client.delete(_request_path(directory_prefix(key)))
                response.raise_for_status()
        logger.info(f"Recursively deleted {self.storage_zone}/{key}/")

    async def _remove_directory(self, key: str) -> None:
        if not key:
            return

        try:
            async with self._client() as client:
                with _translate_errors(f"/{key}"):
                    response = await client.delete(_request_path(directory_prefix(key)))
                    response.raise_for_status()
        except ObjectNotFoundError:
            # Implicit directories vanish with their last file
            return
        logger.debug(f"Removed directory {self.storage_zone}/{key}/")
