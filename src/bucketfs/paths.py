from bucketfs.config import DELIMITER
from bucketfs.errors import PathEscapeError


class PathResolver:
    """Tracks a working directory and turns client paths into storage keys.

    Keys are relative to the storage root and never start with a separator;
    the root itself is the empty key. With ``confine`` set, a ``..`` that
    would climb above the root is an error instead of being clamped to ``/``.
    """

    def __init__(self, cwd: str = DELIMITER, confine: bool = False):
        self.confine = confine
        self.cwd = DELIMITER
        self.cwd = self.absolute(cwd)

    def resolve(self, path: str | None = None) -> str:
        path = path or "."
        if path.startswith(DELIMITER):
            segments = path.split(DELIMITER)
        else:
            segments = self.cwd.split(DELIMITER) + path.split(DELIMITER)

        parts: list[str] = []
        for segment in segments:
            if segment in ("", "."):
                continue
            if segment == "..":
                if parts:
                    parts.pop()
                elif self.confine:
                    raise PathEscapeError(f"Path escapes the storage root: {path}")
                continue
            parts.append(segment)
        return DELIMITER.join(parts)

    def absolute(self, path: str | None = None) -> str:
        return DELIMITER + self.resolve(path)

    def chdir(self, path: str) -> str:
        self.cwd = self.absolute(path)
        return self.cwd


def basename(key: str) -> str:
    return key.rstrip(DELIMITER).rsplit(DELIMITER, 1)[-1]


def parent(key: str) -> str:
    key = key.rstrip(DELIMITER)
    if DELIMITER not in key:
        return ""
    return key.rsplit(DELIMITER, 1)[0]


def join(key: str, name: str) -> str:
    return f"{key}{DELIMITER}{name}" if key else name


def directory_prefix(key: str) -> str:
    return f"{key}{DELIMITER}" if key else ""
