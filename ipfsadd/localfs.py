from __future__ import annotations

import os
from typing import BinaryIO, List, Tuple


class LocalFilesystem:
    """Filesystem collaborator used to build entries from local paths.

    The entry model never walks directories itself; it asks this object for
    stat metadata, child listings, file streams and symlink targets. Tests
    can substitute a fake with the same methods.

    All methods raise OSError on failure. Callers convert to EntryIOError.
    """

    def lstat(self, path: str) -> os.stat_result:
        return os.lstat(path)

    def scandir(self, path: str) -> List[Tuple[str, os.stat_result]]:
        """List a directory as (name, lstat) pairs ordered by encoded name."""

        out: List[Tuple[str, os.stat_result]] = []
        with os.scandir(path) as it:
            for de in it:
                out.append((de.name, de.stat(follow_symlinks=False)))
        out.sort(key=lambda pair: os.fsencode(pair[0]))
        return out

    def open_binary(self, path: str) -> BinaryIO:
        return open(path, "rb")

    def readlink(self, path: str) -> str:
        return os.readlink(path)

    def abspath(self, path: str) -> str:
        return os.path.abspath(path)
