import os
from dataclasses import dataclass

DELIMITER = "/"

LISTING_CACHE_TTL_SECONDS = 60
SIGNED_URL_TTL_HOURS = 8

READ_CHUNK_SIZE = 64 * 1024
UPLOAD_QUEUE_SIZE = 16

AZURE_BLOB_HOST = "blob.core.windows.net"
AZURE_BLOCK_SIZE = 4 * 1024 * 1024
AZURE_UPLOAD_CONCURRENCY = 16
AZURE_COPY_POLL_SECONDS = 0.5

BUNNYCDN_STORAGE_HOST = "storage.bunnycdn.com"

S3_DEFAULT_REGION = "us-east-1"
S3_DELETE_BATCH_SIZE = 1000


@dataclass
class FileSystemSettings:
    listing_cache_ttl: float = LISTING_CACHE_TTL_SECONDS
    signed_url_ttl_hours: int = SIGNED_URL_TTL_HOURS
    read_chunk_size: int = READ_CHUNK_SIZE
    upload_queue_size: int = UPLOAD_QUEUE_SIZE
    azure_block_size: int = AZURE_BLOCK_SIZE
    azure_upload_concurrency: int = AZURE_UPLOAD_CONCURRENCY
    azure_copy_poll_seconds: float = AZURE_COPY_POLL_SECONDS

    @classmethod
    def from_env(cls) -> "FileSystemSettings":
        return cls(
            listing_cache_ttl=float(
                os.environ.get("BUCKETFS_LISTING_CACHE_TTL", LISTING_CACHE_TTL_SECONDS)
            ),
            signed_url_ttl_hours=int(
                os.environ.get("BUCKETFS_SIGNED_URL_TTL_HOURS", SIGNED_URL_TTL_HOURS)
            ),
            read_chunk_size=int(
                os.environ.get("BUCKETFS_READ_CHUNK_SIZE", READ_CHUNK_SIZE)
            ),
            upload_queue_size=int(
                os.environ.get("BUCKETFS_UPLOAD_QUEUE_SIZE", UPLOAD_QUEUE_SIZE)
            ),
            azure_block_size=int(
                os.environ.get("BUCKETFS_AZURE_BLOCK_SIZE", AZURE_BLOCK_SIZE)
            ),
            azure_upload_concurrency=int(
                os.environ.get(
                    "BUCKETFS_AZURE_UPLOAD_CONCURRENCY", AZURE_UPLOAD_CONCURRENCY
                )
            ),
            azure_copy_poll_seconds=float(
                os.environ.get("BUCKETFS_AZURE_COPY_POLL_SECONDS", AZURE_COPY_POLL_SECONDS)
            ),
        )
