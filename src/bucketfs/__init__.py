from bucketfs.config import FileSystemSettings
from bucketfs.errors import (
    FileSystemError,
    InvalidLocationError,
    ObjectNotFoundError,
    PartialRenameError,
    PathEscapeError,
    TransportError,
    UnsupportedOperationError,
    UploadError,
)
from bucketfs.factory import file_system_from_location, file_system_from_url
from bucketfs.location import (
    AzureLocation,
    BunnyCDNLocation,
    LocalLocation,
    S3Location,
    StorageLocation,
    parse_location,
)
from bucketfs.stat import FileKind, FileStat
from bucketfs.storage import (
    AzureFileSystem,
    BunnyCDNFileSystem,
    FileSystem,
    LocalFileSystem,
    S3FileSystem,
)
from bucketfs.streams import ReadStream, UploadChannel

__all__ = [
    "FileSystemSettings",
    "FileSystemError",
    "InvalidLocationError",
    "ObjectNotFoundError",
    "PartialRenameError",
    "PathEscapeError",
    "TransportError",
    "UnsupportedOperationError",
    "UploadError",
    "file_system_from_location",
    "file_system_from_url",
    "AzureLocation",
    "BunnyCDNLocation",
    "LocalLocation",
    "S3Location",
    "StorageLocation",
    "parse_location",
    "FileKind",
    "FileStat",
    "FileSystem",
    "LocalFileSystem",
    "S3FileSystem",
    "AzureFileSystem",
    "BunnyCDNFileSystem",
    "ReadStream",
    "UploadChannel",
]
