import asyncio
from contextlib import AsyncExitStack, contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

from azure.core.credentials import AzureNamedKeyCredential
from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobProperties, BlobSasPermissions, generate_blob_sas
from azure.storage.blob.aio import ContainerClient
from loguru import logger

from bucketfs.config import AZURE_BLOB_HOST, DELIMITER, FileSystemSettings
from bucketfs.errors import (
    FileSystemError,
    ObjectNotFoundError,
    PartialRenameError,
    TransportError,
)
from bucketfs.location import AzureLocation
from bucketfs.paths import basename, directory_prefix
from bucketfs.stat import FileStat
from bucketfs.storage.backend import FileSystem, merge_page
from bucketfs.streams import ChannelReader, ReadStream, UploadChannel


@contextmanager
def _translate_errors(path: str):
    try:
        yield
    except ResourceNotFoundError as e:
        raise ObjectNotFoundError(path) from e
    except AzureError as e:
        raise TransportError(f"Azure request for '{path}' failed: {e}") from e


class AzureFileSystem(FileSystem):
    """Azure blob container presented as a directory tree.

    Like S3, directories are blob-name prefixes ending in ``/``. Listing pages
    are chained by the opaque marker Azure returns with each segment.

    Stat never reports a missing blob: when the properties call fails for any
    reason the path is assumed to be an emulated directory. A path that does
    not exist at all therefore looks like an empty directory.
    """

    def __init__(
        self, location: AzureLocation, settings: Optional[FileSystemSettings] = None
    ):
        super().__init__(settings)
        self.location = location
        self.account = location.account
        self.container = location.container
        self.account_url = f"https://{location.account}.{AZURE_BLOB_HOST}"
        self._credential = AzureNamedKeyCredential(
            location.account, location.account_key
        )

    def _container_client(self) -> ContainerClient:
        return ContainerClient(
            self.account_url,
            self.container,
            credential=self._credential,
            max_block_size=self.settings.azure_block_size,
        )

    @staticmethod
    def _build_stat(name: str, properties: Optional[BlobProperties] = None) -> FileStat:
        if properties is None:
            return FileStat.directory(name)
        return FileStat.file(
            name,
            properties.size,
            created=properties.creation_time,
            modified=properties.last_modified,
        )

    async def _list_segment(
        self, container: ContainerClient, prefix: str, marker: Optional[str]
    ) -> tuple[list[Any], Optional[str]]:
        pages = container.walk_blobs(
            name_starts_with=prefix or None, delimiter=DELIMITER
        ).by_page(continuation_token=marker)
        async for page in pages:
            items = [item async for item in page]
            return items, pages.continuation_token
        return [], None

    async def get(self, path: str) -> FileStat:
        key = self.resolve_path(path)
        if not key:
            return FileStat.directory("/")

        async with self._container_client() as container:
            try:
                properties = await container.get_blob_client(key).get_blob_properties()
            except AzureError as e:
                logger.debug(
                    f"No properties for blob '{key}' ({type(e).__name__}), treating it as a directory"
                )
                properties = None

        return self._build_stat(basename(key), properties)

    async def list(self, path: str = ".") -> list[FileStat]:
        key = self.resolve_path(path)
        prefix = directory_prefix(key)
        result: list[FileStat] = []
        seen: set[str] = set()
        marker = None
        pages = 0

        async with self._container_client() as container:
            while True:
                with _translate_errors(f"/{key}"):
                    items, marker = await self._list_segment(container, prefix, marker)
                pages += 1

                prefixes = [i for i in items if not isinstance(i, BlobProperties)]
                blobs = [i for i in items if isinstance(i, BlobProperties)]
                entries = [self._build_stat(basename(p.name)) for p in prefixes]
                entries.extend(
                    self._build_stat(basename(b.name), b) for b in blobs if b.name != prefix
                )
                merge_page(result, seen, entries)

                if not marker:
                    break

        logger.debug(
            f"Listed {len(result)} entries under {self.container}/{prefix} ({pages} page(s))"
        )
        return result

    async def read(self, path: str, start: int | None = None) -> ReadStream:
        key = self.resolve_path(path)
        logger.debug(f"Reading {self.container}/{key}")

        async with AsyncExitStack() as stack:
            container = await stack.enter_async_context(self._container_client())
            with _translate_errors(f"/{key}"):
                downloader = await container.get_blob_client(key).download_blob(
                    offset=start or None
                )
            cleanup = stack.pop_all()

        return ReadStream(key, downloader.chunks(), cleanup.aclose)

    async def write(
        self, path: str, append: bool = False, start: int | None = None
    ) -> UploadChannel:
        self._reject_partial_write(path, append, start)
        key = self.resolve_path(path)

        async def body(reader: ChannelReader):
            async for chunk in reader:
                yield chunk

        async def persist(reader: ChannelReader) -> None:
            async with self._container_client() as container:
                with _translate_errors(f"/{key}"):
                    await container.get_blob_client(key).upload_blob(
                        body(reader),
                        overwrite=True,
                        max_concurrency=self.settings.azure_upload_concurrency,
                    )
            logger.debug(f"Uploaded {self.container}/{key}")

        return self._open_channel(key, persist)

    async def delete(self, path: str) -> None:
        key = self.resolve_path(path)
        async with self._container_client() as container:
            with _translate_errors(f"/{key}"):
                await container.get_blob_client(key).delete_blob()
        logger.info(f"Deleted {self.container}/{key}")

    async def rename(self, source: str, destination: str) -> None:
        source_key = self.resolve_path(source)
        destination_key = self.resolve_path(destination)
        logger.info(f"Renaming {source_key} to {destination_key}")

        async with self._container_client() as container:
            source_blob = container.get_blob_client(source_key)
            destination_blob = container.get_blob_client(destination_key)

            with _translate_errors(f"/{source_key}"):
                copy = await destination_blob.start_copy_from_url(source_blob.url)
                status = copy.get("copy_status")
                while status == "pending":
                    await asyncio.sleep(self.settings.azure_copy_poll_seconds)
                    properties = await destination_blob.get_blob_properties()
                    status = properties.copy.status

            if status != "success":
                raise TransportError(
                    f"Copy of '{source_key}' to '{destination_key}' ended with status '{status}'"
                )

            try:
                with _translate_errors(f"/{source_key}"):
                    await source_blob.delete_blob()
            except FileSystemError as e:
                logger.warning(
                    f"Copied {source_key} to {destination_key} but could not delete the source"
                )
                raise PartialRenameError(source_key, destination_key, e) from e

    async def _remove_directory(self, key: str) -> None:
        if not key:
            return

        marker = directory_prefix(key)
        try:
            async with self._container_client() as container:
                with _translate_errors(f"/{key}"):
                    await container.get_blob_client(marker).delete_blob()
        except ObjectNotFoundError:
            # No marker blob: the directory was only a prefix
            return
        logger.debug(f"Deleted directory marker {self.container}/{marker}")

    async def get_signed_url(self, path: str) -> str | None:
        key = self.resolve_path(path)
        expiry = datetime.now(timezone.utc) + timedelta(
            hours=self.settings.signed_url_ttl_hours
        )
        sas = generate_blob_sas(
            account_name=self.account,
            container_name=self.container,
            blob_name=key,
            account_key=self.location.account_key,
            permission=BlobSasPermissions(read=True),
            expiry=expiry,
            protocol="https",
        )
        return f"{self.account_url}/{self.container}/{quote(key)}?{sas}"
