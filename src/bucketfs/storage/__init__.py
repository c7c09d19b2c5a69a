from bucketfs.storage.azure import AzureFileSystem
from bucketfs.storage.backend import FileSystem
from bucketfs.storage.bunnycdn import BunnyCDNFileSystem
from bucketfs.storage.local import LocalFileSystem
from bucketfs.storage.s3 import S3FileSystem

__all__ = [
    "FileSystem",
    "LocalFileSystem",
    "S3FileSystem",
    "AzureFileSystem",
    "BunnyCDNFileSystem",
]
