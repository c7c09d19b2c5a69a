class FileSystemError(Exception):
    """Base class for every failure raised by a bucketfs backend."""


class ObjectNotFoundError(FileSystemError):
    def __init__(self, path: str):
        super().__init__(f"No such file or directory: {path}")
        self.path = path


class UnsupportedOperationError(FileSystemError):
    pass


class TransportError(FileSystemError):
    """A call to the underlying storage service failed (network, auth, quota)."""


class UploadError(FileSystemError):
    """The backend task persisting an upload channel failed."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"Upload of '{path}' failed: {cause}")
        self.path = path
        self.cause = cause


class PartialRenameError(FileSystemError):
    """The destination was written but the source could not be removed.

    Both objects exist afterwards. Nothing is rolled back; callers that need a
    single copy have to delete one of them themselves.
    """

    def __init__(self, source: str, destination: str, cause: BaseException):
        super().__init__(
            f"Copied '{source}' to '{destination}' but failed to delete the source: {cause}"
        )
        self.source = source
        self.destination = destination
        self.cause = cause


class PathEscapeError(FileSystemError):
    pass


class InvalidLocationError(FileSystemError, ValueError):
    pass
