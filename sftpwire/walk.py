"""
Depth-first tree walker.

Works against anything satisfying remote_fs.RemoteFS: it only calls
lstat(path) and listdir(path). Entries are visited in lexical order, a
directory before its children.
"""

import logging
import posixpath
from collections.abc import Iterator
from dataclasses import dataclass

from .remote_fs import FileStats, RemoteFS

logger = logging.getLogger(__name__)


@dataclass
class WalkEntry:
    """
    One step of a walk.

    A directory whose listing fails is reported twice: once normally when it
    is reached, and once more with error set when the walker tries to
    descend into it. An unreadable root is reported once, with stats None.
    """

    path: str
    stats: FileStats | None
    error: Exception | None = None


class Walker:
    """
    Iterate over a remote tree.

    Args:
        fs: Object providing lstat() and listdir().
        root: Starting path.
        stop_on_error: Stop after yielding the first error entry instead of
            continuing with the rest of the tree. The error is kept in
            `error` either way.

    Call skip_dir() right after a directory entry is yielded to avoid
    descending into it.
    """

    def __init__(self, fs: RemoteFS, root: str, stop_on_error: bool = False):
        self.fs = fs
        self.root = root
        self.stop_on_error = stop_on_error
        self.error: Exception | None = None
        self.errors: list[Exception] = []
        self._skip = False

    def skip_dir(self) -> None:
        self._skip = True

    def __iter__(self) -> Iterator[WalkEntry]:
        try:
            root_stats = self.fs.lstat(self.root)
        except OSError as e:
            self._record(e)
            yield WalkEntry(self.root, None, e)
            return

        stack = [WalkEntry(self.root, root_stats)]
        while stack:
            entry = stack.pop()
            self._skip = False
            yield entry
            if entry.error is not None:
                if self.stop_on_error:
                    return
                continue
            if self._skip or not entry.stats.is_dir:
                continue

            try:
                children = sorted(self.fs.listdir(entry.path), key=lambda s: s.name)
            except OSError as e:
                logger.debug("Cannot list %s: %s", entry.path, e)
                self._record(e)
                stack.append(WalkEntry(entry.path, entry.stats, e))
                continue

            for child in reversed(children):
                stack.append(WalkEntry(posixpath.join(entry.path, child.name), child))

    def _record(self, error: Exception) -> None:
        self.errors.append(error)
        if self.error is None:
            self.error = error
