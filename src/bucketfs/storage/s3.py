from contextlib import AsyncExitStack, contextmanager
from typing import AsyncIterator, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from bucketfs.config import DELIMITER, S3_DELETE_BATCH_SIZE, FileSystemSettings
from bucketfs.errors import (
    FileSystemError,
    ObjectNotFoundError,
    PartialRenameError,
    TransportError,
)
from bucketfs.location import S3Location
from bucketfs.paths import basename, directory_prefix
from bucketfs.stat import FileStat
from bucketfs.storage.backend import FileSystem, merge_page
from bucketfs.streams import ChannelReader, ReadStream, UploadChannel

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_not_found(e: ClientError) -> bool:
    return e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


@contextmanager
def _translate_errors(path: str):
    try:
        yield
    except ClientError as e:
        if _is_not_found(e):
            raise ObjectNotFoundError(path) from e
        raise TransportError(f"S3 request for '{path}' failed: {e}") from e
    except BotoCoreError as e:
        raise TransportError(f"S3 request for '{path}' failed: {e}") from e


class S3FileSystem(FileSystem):
    """S3 bucket presented as a directory tree.

    Directories do not exist in S3: they are key prefixes ending in ``/``,
    discovered by listing with a ``/`` delimiter. A new client is opened per
    operation from one ``aioboto3.Session``.
    """

    def __init__(
        self, location: S3Location, settings: Optional[FileSystemSettings] = None
    ):
        super().__init__(settings)
        self.location = location
        self.bucket = location.bucket
        self.region = location.region
        self.endpoint_url = location.endpoint_url
        self._session = aioboto3.Session()

    def _get_client_kwargs(self) -> dict:
        kwargs = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.location.access_key_id:
            kwargs["aws_access_key_id"] = self.location.access_key_id
            kwargs["aws_secret_access_key"] = self.location.secret_access_key
        return kwargs

    def _client(self):
        return self._session.client("s3", **self._get_client_kwargs())

    @staticmethod
    def _build_stat(name: str, properties: Optional[dict] = None) -> FileStat:
        if properties is None:
            return FileStat.directory(name)
        size = properties.get("Size", properties.get("ContentLength"))
        return FileStat.file(name, size, modified=properties.get("LastModified"))

    async def _iter_pages(
        self, s3, path: str, prefix: str, delimiter: Optional[str] = DELIMITER
    ) -> AsyncIterator[dict]:
        kwargs = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter

        while True:
            with _translate_errors(path):
                response = await s3.list_objects_v2(**kwargs)
            yield response

            if not response.get("IsTruncated"):
                break
            kwargs["ContinuationToken"] = response["NextContinuationToken"]

    async def get(self, path: str) -> FileStat:
        key = self.resolve_path(path)
        if not key:
            return FileStat.directory("/")

        async with self._client() as s3:
            try:
                with _translate_errors(f"/{key}"):
                    response = await s3.head_object(Bucket=self.bucket, Key=key)
                return self._build_stat(basename(key), response)
            except ObjectNotFoundError:
                logger.debug(f"No object at s3://{self.bucket}/{key}, probing prefix")

            with _translate_errors(f"/{key}"):
                response = await s3.list_objects_v2(
                    Bucket=self.bucket, Prefix=directory_prefix(key), MaxKeys=1
                )

        if response.get("KeyCount") or response.get("Contents"):
            return self._build_stat(basename(key))
        raise ObjectNotFoundError(f"/{key}")

    async def list(self, path: str = ".") -> list[FileStat]:
        key = self.resolve_path(path)
        prefix = directory_prefix(key)
        result: list[FileStat] = []
        seen: set[str] = set()
        pages = 0

        async with self._client() as s3:
            async for page in self._iter_pages(s3, f"/{key}", prefix):
                pages += 1
                entries = [
                    self._build_stat(basename(common["Prefix"]))
                    for common in page.get("CommonPrefixes", [])
                ]
                entries.extend(
                    self._build_stat(basename(obj["Key"]), obj)
                    for obj in page.get("Contents", [])
                    if obj["Key"] != prefix
                )
                merge_page(result, seen, entries)

        logger.debug(
            f"Listed {len(result)} entries under s3://{self.bucket}/{prefix} ({pages} page(s))"
        )
        return result

    async def read(self, path: str, start: int | None = None) -> ReadStream:
        key = self.resolve_path(path)
        kwargs = {"Bucket": self.bucket, "Key": key}
        if start:
            kwargs["Range"] = f"bytes={start}-"

        async with AsyncExitStack() as stack:
            s3 = await stack.enter_async_context(self._client())
            with _translate_errors(f"/{key}"):
                response = await s3.get_object(**kwargs)
            body = await stack.enter_async_context(response["Body"])
            cleanup = stack.pop_all()

        return ReadStream(
            key, body.iter_chunks(self.settings.read_chunk_size), cleanup.aclose
        )

    async def write(
        self, path: str, append: bool = False, start: int | None = None
    ) -> UploadChannel:
        self._reject_partial_write(path, append, start)
        key = self.resolve_path(path)

        async def persist(reader: ChannelReader) -> None:
            async with self._client() as s3:
                with _translate_errors(f"/{key}"):
                    await s3.upload_fileobj(reader, self.bucket, key)
            logger.debug(f"Uploaded s3://{self.bucket}/{key}")

        return self._open_channel(key, persist)

    async def delete(self, path: str) -> None:
        key = self.resolve_path(path)
        async with self._client() as s3:
            with _translate_errors(f"/{key}"):
                await s3.delete_object(Bucket=self.bucket, Key=key)
        logger.info(f"Deleted s3://{self.bucket}/{key}")

    async def rename(self, source: str, destination: str) -> None:
        source_key = self.resolve_path(source)
        destination_key = self.resolve_path(destination)

        async with self._client() as s3:
            with _translate_errors(f"/{source_key}"):
                await s3.copy_object(
                    Bucket=self.bucket,
                    Key=destination_key,
                    CopySource={"Bucket": self.bucket, "Key": source_key},
                )

            try:
                with _translate_errors(f"/{source_key}"):
                    await s3.delete_object(Bucket=self.bucket, Key=source_key)
            except FileSystemError as e:
                logger.warning(
                    f"Copied {source_key} to {destination_key} but could not delete the source"
                )
                raise PartialRenameError(source_key, destination_key, e) from e

        logger.info(f"Renamed s3://{self.bucket}/{source_key} to {destination_key}")

    async def recursively_delete(self, path: str) -> None:
        key = self.resolve_path(path)
        prefix = directory_prefix(key)

        async with self._client() as s3:
            objects_to_delete = []
            async for page in self._iter_pages(s3, f"/{key}", prefix, delimiter=None):
                for obj in page.get("Contents", []):
                    objects_to_delete.append({"Key": obj["Key"]})

            for i in range(0, len(objects_to_delete), S3_DELETE_BATCH_SIZE):
                batch = objects_to_delete[i : i + S3_DELETE_BATCH_SIZE]
                with _translate_errors(f"/{key}"):
                    response = await s3.delete_objects(
                        Bucket=self.bucket, Delete={"Objects": batch}
                    )
                errors = response.get("Errors") or []
                if errors:
                    raise TransportError(
                        f"Failed to delete {len(errors)} object(s) under '/{key}', "
                        f"first: {errors[0].get('Key')} ({errors[0].get('Code')})"
                    )

        logger.info(
            f"Deleted {len(objects_to_delete)} objects under s3://{self.bucket}/{prefix}"
        )
