from typing import Optional

from loguru import logger

from bucketfs.config import FileSystemSettings
from bucketfs.errors import InvalidLocationError
from bucketfs.location import (
    AzureLocation,
    BunnyCDNLocation,
    LocalLocation,
    S3Location,
    StorageLocation,
    parse_location,
)
from bucketfs.storage import (
    AzureFileSystem,
    BunnyCDNFileSystem,
    FileSystem,
    LocalFileSystem,
    S3FileSystem,
)

_BACKENDS: dict[type, type[FileSystem]] = {
    LocalLocation: LocalFileSystem,
    S3Location: S3FileSystem,
    AzureLocation: AzureFileSystem,
    BunnyCDNLocation: BunnyCDNFileSystem,
}


def file_system_from_location(
    location: StorageLocation, settings: Optional[FileSystemSettings] = None
) -> FileSystem:
    backend_class = _BACKENDS.get(type(location))
    if backend_class is None:
        raise InvalidLocationError(f"Unsupported location: {location!r}")
    logger.debug(f"Opening {backend_class.__name__} for {location.display_url}")
    return backend_class(location, settings=settings)


def file_system_from_url(
    url: str, settings: Optional[FileSystemSettings] = None
) -> FileSystem:
    """Build the backend a location descriptor points at.

    Unknown schemes fall back to a local directory rooted at the URL's path.
    """
    return file_system_from_location(parse_location(url), settings)
