from __future__ import annotations

import os
import stat as stat_mod
from dataclasses import dataclass
from typing import (
    BinaryIO,
    Callable,
    ClassVar,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from ipfsadd.errors import EntryIOError
from ipfsadd.localfs import LocalFilesystem

KIND_FILE = "file"
KIND_DIR = "dir"
KIND_SYMLINK = "symlink"


class Entry:
    """A node of an upload tree: a file, a directory or a symlink.

    Entry trees are built by the caller and are read-only to the encoder,
    except that a file's byte stream can be read exactly once.
    """

    kind: ClassVar[str] = ""

    @property
    def is_dir(self) -> bool:
        return self.kind == KIND_DIR


class FileEntry(Entry):
    """A regular file backed by a byte stream.

    The stream is produced by an opener so that files from disk are only
    opened when the encoder reaches them. Whoever calls open() owns the
    stream and must close it.
    """

    kind: ClassVar[str] = KIND_FILE

    def __init__(
        self,
        opener: Callable[[], BinaryIO],
        *,
        abs_path: Optional[str] = None,
        size: Optional[int] = None,
    ):
        if not callable(opener):
            raise TypeError("opener must be callable")
        self._opener = opener
        self._consumed = False
        self.abs_path = abs_path
        self.size = size

    @classmethod
    def from_stream(cls, stream: BinaryIO) -> "FileEntry":
        """Wrap an already-open readable binary stream."""

        if not hasattr(stream, "read"):
            raise TypeError("stream must have a read() method")
        return cls(lambda: stream)

    @classmethod
    def from_path(
        cls,
        path: str,
        *,
        fs: Optional[LocalFilesystem] = None,
        size: Optional[int] = None,
    ) -> "FileEntry":
        """Lazily opened local file."""

        fs = fs or LocalFilesystem()
        return cls(lambda: fs.open_binary(path), abs_path=fs.abspath(path), size=size)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def open(self) -> BinaryIO:
        """Hand out the byte stream. Allowed once."""

        if self._consumed:
            raise EntryIOError("file stream was already consumed", path=self.abs_path)
        self._consumed = True
        try:
            return self._opener()
        except OSError as e:
            raise EntryIOError(f"cannot open file: {e}", path=self.abs_path) from e

    def __repr__(self) -> str:
        return f"FileEntry(abs_path={self.abs_path!r}, consumed={self._consumed})"


@dataclass(frozen=True)
class SymlinkEntry(Entry):
    """A symbolic link. Only the target is uploaded; it is never followed."""

    kind: ClassVar[str] = KIND_SYMLINK

    target: str
    abs_path: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.target, str):
            raise TypeError("symlink target must be a string")


ChildPairs = Union[Mapping[str, Entry], Iterable[Tuple[str, Entry]]]


class DirectoryEntry(Entry):
    """A directory with named children.

    Children keep insertion order; names must be non-empty and unique.
    A directory built with from_path() lists its children lazily through
    the filesystem collaborator, in the order the collaborator reports.
    """

    kind: ClassVar[str] = KIND_DIR

    def __init__(self, children: Optional[ChildPairs] = None, *, abs_path: Optional[str] = None):
        pairs: List[Tuple[str, Entry]] = []
        seen = set()
        items = children.items() if isinstance(children, Mapping) else (children or ())
        for name, entry in items:
            if not isinstance(name, str) or not name:
                raise ValueError("child entry names must be non-empty strings")
            if name in seen:
                raise ValueError(f"duplicate child entry name: {name!r}")
            if not isinstance(entry, Entry):
                raise TypeError(f"child {name!r} is not an Entry")
            seen.add(name)
            pairs.append((name, entry))
        self._children = pairs
        self._lister: Optional[Callable[[], Iterator[Tuple[str, Entry]]]] = None
        self.abs_path = abs_path

    @classmethod
    def from_path(
        cls,
        path: str,
        *,
        fs: Optional[LocalFilesystem] = None,
        stat: Optional[os.stat_result] = None,
        hidden: bool = False,
    ) -> "DirectoryEntry":
        """Directory whose children are enumerated when first iterated.

        stat, when the caller already has it, must describe a directory.
        Dot-files are skipped unless hidden=True.
        """

        if stat is not None and not stat_mod.S_ISDIR(stat.st_mode):
            raise EntryIOError(f"not a directory: {path}", path=path)
        fs = fs or LocalFilesystem()
        d = cls(abs_path=fs.abspath(path))
        d._lister = lambda: _list_children(path, fs, hidden)
        return d

    @property
    def is_lazy(self) -> bool:
        return self._lister is not None

    def iter_children(self) -> Iterator[Tuple[str, Entry]]:
        if self._lister is not None:
            return self._lister()
        return iter(self._children)

    def __repr__(self) -> str:
        if self._lister is not None:
            return f"DirectoryEntry(abs_path={self.abs_path!r}, lazy=True)"
        return f"DirectoryEntry(children={[n for n, _ in self._children]!r})"


def entry_from_path(
    path: str,
    *,
    fs: Optional[LocalFilesystem] = None,
    hidden: bool = False,
) -> Entry:
    """lstat a local path and build the matching entry kind."""

    fs = fs or LocalFilesystem()
    try:
        st = fs.lstat(path)
    except OSError as e:
        raise EntryIOError(f"cannot stat path: {e}", path=path) from e
    return _entry_from_stat(path, st, fs, hidden)


def _entry_from_stat(path: str, st: os.stat_result, fs: LocalFilesystem, hidden: bool) -> Entry:
    mode = st.st_mode
    if stat_mod.S_ISDIR(mode):
        return DirectoryEntry.from_path(path, fs=fs, stat=st, hidden=hidden)
    if stat_mod.S_ISREG(mode):
        return FileEntry.from_path(path, fs=fs, size=int(st.st_size))
    if stat_mod.S_ISLNK(mode):
        try:
            target = fs.readlink(path)
        except OSError as e:
            raise EntryIOError(f"cannot read symlink: {e}", path=path) from e
        return SymlinkEntry(target=target, abs_path=fs.abspath(path))
    raise EntryIOError(f"unsupported file type for {path}: {stat_mod.filemode(mode)}", path=path)


def _list_children(path: str, fs: LocalFilesystem, hidden: bool) -> Iterator[Tuple[str, Entry]]:
    try:
        listing = fs.scandir(path)
    except OSError as e:
        raise EntryIOError(f"cannot list directory: {e}", path=path) from e
    for name, st in listing:
        if not hidden and name.startswith("."):
            continue
        yield name, _entry_from_stat(os.path.join(path, name), st, fs, hidden)
