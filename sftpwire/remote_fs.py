"""
Remote filesystem protocol definition.

Defines the two calls a directory walker needs, so that the walker can run
against SFTPClient or against any other object with the same shape (tests use
an in-memory tree).
"""

from __future__ import annotations

import stat
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from .packets import Attributes


@dataclass
class FileStats:
    """Standardized file statistics for one remote entry."""

    name: str
    size: int | None = None
    mode: int | None = None
    mtime: datetime | None = None
    uid: int | None = None
    gid: int | None = None

    @property
    def is_dir(self) -> bool:
        return self.mode is not None and stat.S_ISDIR(self.mode)

    @property
    def is_symlink(self) -> bool:
        return self.mode is not None and stat.S_ISLNK(self.mode)

    @property
    def is_file(self) -> bool:
        return self.mode is not None and stat.S_ISREG(self.mode)

    @classmethod
    def from_attrs(cls, name: str, attrs: Attributes) -> FileStats:
        mtime = datetime.fromtimestamp(attrs.mtime) if attrs.mtime is not None else None
        return cls(
            name=name,
            size=attrs.size,
            mode=attrs.permissions,
            mtime=mtime,
            uid=attrs.uid,
            gid=attrs.gid,
        )


@runtime_checkable
class RemoteFS(Protocol):
    """Protocol for the primitives a walker consumes."""

    def lstat(self, path: str) -> FileStats:
        """Get metadata for a single entry without following symlinks.

        Raises:
            FileNotFoundError: If path does not exist.
            PermissionError: If access denied.
        """
        ...

    def listdir(self, path: str) -> Iterable[FileStats]:
        """List the entries of a directory, excluding "." and "..".

        Entries may be produced lazily; errors can surface while iterating.
        """
        ...
