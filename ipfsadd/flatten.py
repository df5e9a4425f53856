from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Set, Tuple

from ipfsadd.entries import DirectoryEntry, Entry
from ipfsadd.errors import EncodingError


@dataclass(frozen=True)
class FlatEntry:
    """One entry of a flattened upload tree.

    path is "/"-joined and relative to the upload; "" names an anonymous root.
    """

    path: str
    entry: Entry

    @property
    def kind(self) -> str:
        return self.entry.kind


def flatten(root: Entry, name: str = "") -> Iterator[FlatEntry]:
    """Walk an entry tree depth-first, directories before their children.

    Children are visited in insertion order. The walk is lazy: directory
    listings happen when the walk reaches them and file bytes are never
    read here.

    Raises:
      EncodingError: a name cannot be a single path segment, or a lazily
        listed directory reports the same child twice.
    """

    if not isinstance(root, Entry):
        raise TypeError("root must be an Entry")
    if name:
        _check_segment(name)

    yield FlatEntry(path=name, entry=root)
    if not isinstance(root, DirectoryEntry):
        return

    # Stack of (path prefix, children iterator, names seen in that directory).
    stack: List[Tuple[str, Iterator[Tuple[str, Entry]], Set[str]]] = [
        (name, root.iter_children(), set())
    ]
    while stack:
        prefix, children, seen = stack[-1]
        nxt = next(children, None)
        if nxt is None:
            stack.pop()
            continue

        child_name, child = nxt
        _check_segment(child_name)
        if child_name in seen:
            raise EncodingError(f"duplicate entry {child_name!r} in directory {prefix!r}")
        seen.add(child_name)

        path = f"{prefix}/{child_name}" if prefix else child_name
        yield FlatEntry(path=path, entry=child)
        if isinstance(child, DirectoryEntry):
            stack.append((path, child.iter_children(), set()))


def _check_segment(name: str) -> None:
    if not isinstance(name, str) or not name:
        raise EncodingError("entry names must be non-empty strings")
    if name in {".", ".."}:
        raise EncodingError(f"entry name {name!r} is not allowed")
    if "/" in name or "\x00" in name:
        raise EncodingError(f"entry name {name!r} must be a single path segment")
