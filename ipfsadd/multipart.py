from __future__ import annotations

import os
import re
import uuid
from typing import BinaryIO, Iterable, Iterator, Optional
from urllib.parse import quote, unquote_plus

from ipfsadd.config import DEFAULT_CHUNK_SIZE
from ipfsadd.entries import KIND_DIR, KIND_FILE, KIND_SYMLINK, Entry, FileEntry, SymlinkEntry
from ipfsadd.errors import EncodingError, EntryIOError
from ipfsadd.flatten import FlatEntry, flatten

CRLF = b"\r\n"

# Media types the node uses to tell entry kinds apart.
PART_CONTENT_TYPES = {
    KIND_FILE: "application/octet-stream",
    KIND_DIR: "application/x-directory",
    KIND_SYMLINK: "application/symlink",
}
KIND_BY_CONTENT_TYPE = {v: k for k, v in PART_CONTENT_TYPES.items()}

# RFC 2046 boundary: 1-70 bchars, last one not a space.
_BOUNDARY_RE = re.compile(r"[0-9A-Za-z'()+_,\-./:=? ]{0,69}[0-9A-Za-z'()+_,\-./:=?]")
_TSPECIALS = set('()<>@,;:\\"/[]?= ')


def escape_part_filename(path: str) -> str:
    """Percent-encode a path for the part's filename parameter.

    Every UTF-8 byte outside [A-Za-z0-9._~/-] is escaped, so the value never
    needs quoting rules of its own and survives the node's query-unescape.
    """

    try:
        return quote(path, safe="/", errors="strict")
    except UnicodeEncodeError as e:
        raise EncodingError(f"path {path!r} is not representable as UTF-8") from e


def decode_part_filename(value: str) -> str:
    """Inverse of escape_part_filename (query-unescape, like the node)."""

    try:
        return unquote_plus(value, errors="strict")
    except UnicodeDecodeError as e:
        raise EncodingError(f"filename {value!r} does not decode to UTF-8") from e


def new_boundary() -> str:
    return "----ipfsadd-" + uuid.uuid4().hex


class MultipartEncoder:
    """Pull-based multipart/form-data encoder for a flattened entry tree.

    Iterating the encoder yields the request body as bytes chunks. Nothing
    is read from a file until the consumer pulls the chunk that needs it,
    and at most chunk_size bytes of file data are held at a time.

    The stream is single-use: file streams are exhausted once it has been
    consumed. close() abandons the stream and closes any open file.

    Wire format per entry:

      --<boundary>
      [Abspath: <local path>]
      Content-Disposition: form-data; name="file"; filename="<escaped path>"
      Content-Type: application/octet-stream | application/x-directory | application/symlink

      <file bytes | nothing | symlink target>

    followed by --<boundary>-- after the last entry. Lines end in CRLF.
    """

    def __init__(
        self,
        entries: Iterable[FlatEntry],
        *,
        boundary: Optional[str] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        include_abspath: bool = False,
    ):
        if boundary is None:
            boundary = new_boundary()
        elif not isinstance(boundary, str) or not _BOUNDARY_RE.fullmatch(boundary):
            raise EncodingError(f"invalid multipart boundary: {boundary!r}")
        if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size <= 0:
            raise ValueError("chunk_size must be a positive integer")

        self._entries = entries
        self._boundary = boundary
        self._chunk_size = chunk_size
        self._include_abspath = bool(include_abspath)
        self._gen: Optional[Iterator[bytes]] = None
        self._started = False
        self._closed = False
        self.parts_sent = 0
        self.bytes_sent = 0

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def content_type(self) -> str:
        b = self._boundary
        if any(ch in _TSPECIALS for ch in b):
            b = f'"{b}"'
        return f"multipart/form-data; boundary={b}"

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[bytes]:
        if self._started:
            raise RuntimeError("multipart stream is not restartable")
        self._started = True
        self._gen = self._generate()
        return self._gen

    def close(self) -> None:
        """Stop the stream and release any file handle it holds."""

        self._started = True
        self._closed = True
        if self._gen is not None:
            self._gen.close()

    def __enter__(self) -> "MultipartEncoder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _generate(self) -> Iterator[bytes]:
        delim = b"--" + self._boundary.encode("ascii")
        first = True
        for fe in self._entries:
            head = delim + CRLF if first else CRLF + delim + CRLF
            first = False
            yield head + self._part_headers(fe)

            entry = fe.entry
            if isinstance(entry, FileEntry):
                stream = entry.open()
                try:
                    yield from self._read_stream(fe.path, stream)
                finally:
                    closer = getattr(stream, "close", None)
                    if closer is not None:
                        closer()
            elif isinstance(entry, SymlinkEntry):
                body = os.fsencode(entry.target)
                if body:
                    yield body
            self.parts_sent += 1

        if first:
            # No parts at all: a bare close delimiter is still a valid body.
            yield delim + b"--" + CRLF
        else:
            yield CRLF + delim + b"--" + CRLF
        self._closed = True

    def _part_headers(self, fe: FlatEntry) -> bytes:
        entry: Entry = fe.entry
        ctype = PART_CONTENT_TYPES.get(entry.kind)
        if ctype is None:
            raise EncodingError(f"unsupported entry type at {fe.path!r}: {type(entry).__name__}")

        lines = []
        abs_path = getattr(entry, "abs_path", None)
        if self._include_abspath and abs_path:
            if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in abs_path):
                raise EncodingError(f"absolute path of {fe.path!r} contains control characters")
            lines.append(f"Abspath: {abs_path}")
        filename = escape_part_filename(fe.path)
        lines.append(f'Content-Disposition: form-data; name="file"; filename="{filename}"')
        lines.append(f"Content-Type: {ctype}")
        block = "\r\n".join(lines) + "\r\n\r\n"
        try:
            return block.encode("utf-8")
        except UnicodeEncodeError as e:
            raise EncodingError(f"headers for {fe.path!r} are not representable as UTF-8") from e

    def _read_stream(self, path: str, stream: BinaryIO) -> Iterator[bytes]:
        while True:
            try:
                chunk = stream.read(self._chunk_size)
            except OSError as e:
                raise EntryIOError(f"error reading {path!r}: {e}", path=path) from e
            if not chunk:
                return
            if not isinstance(chunk, (bytes, bytearray, memoryview)):
                raise EncodingError(f"stream for {path!r} yielded {type(chunk).__name__}, not bytes")
            self.bytes_sent += len(chunk)
            yield bytes(chunk)


def encode_tree(
    root: Entry,
    name: str = "",
    *,
    boundary: Optional[str] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    include_abspath: bool = False,
) -> MultipartEncoder:
    """Flatten root under name and wrap the result in an encoder."""

    return MultipartEncoder(
        flatten(root, name),
        boundary=boundary,
        chunk_size=chunk_size,
        include_abspath=include_abspath,
    )
