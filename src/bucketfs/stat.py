import stat as stat_module
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

READ_ONLY = stat_module.S_IRUSR | stat_module.S_IRGRP | stat_module.S_IROTH
TRAVERSABLE = stat_module.S_IXUSR | stat_module.S_IXGRP | stat_module.S_IXOTH

FILE_MODE = stat_module.S_IFREG | READ_ONLY
DIRECTORY_MODE = stat_module.S_IFDIR | READ_ONLY | TRAVERSABLE


class FileKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FileStat:
    name: str
    kind: FileKind
    mode: int
    size: int = 0
    ctime: datetime = field(default_factory=_now)
    mtime: datetime = field(default_factory=_now)
    atime: datetime = field(default_factory=_now)

    def is_directory(self) -> bool:
        return self.kind == FileKind.DIRECTORY

    def is_file(self) -> bool:
        return self.kind == FileKind.FILE

    @classmethod
    def directory(cls, name: str) -> "FileStat":
        """Stat for an emulated directory, which has no backing object."""
        return cls(name=name, kind=FileKind.DIRECTORY, mode=DIRECTORY_MODE)

    @classmethod
    def file(
        cls,
        name: str,
        size: int | None,
        created: datetime | None = None,
        modified: datetime | None = None,
    ) -> "FileStat":
        now = _now()
        return cls(
            name=name,
            kind=FileKind.FILE,
            mode=FILE_MODE,
            size=size or 0,
            ctime=created or modified or now,
            mtime=modified or now,
            atime=now,
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "mode": oct(self.mode),
            "size": self.size,
            "ctime": self.ctime.isoformat(),
            "mtime": self.mtime.isoformat(),
            "atime": self.atime.isoformat(),
        }
