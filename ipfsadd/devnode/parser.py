from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from ipfsadd.entries import KIND_FILE
from ipfsadd.errors import EncodingError
from ipfsadd.multipart import KIND_BY_CONTENT_TYPE, decode_part_filename


class MultipartBodyError(ValueError):
    """The request body is not a well-formed add upload."""


class UploadTooLarge(MultipartBodyError):
    """The upload exceeds the configured cap."""


@dataclass
class ReceivedPart:
    """One part of an add upload as the node sees it."""

    path: str
    kind: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def abspath(self) -> Optional[str]:
        return self.headers.get("abspath")


class AddBodyParser:
    """Incremental parser for add request bodies.

    Framing is done by python-multipart; this class rebuilds the ordered
    (path, kind, body) parts from it. Feed chunks as they arrive, then call
    close().
    """

    def __init__(self, boundary: str, *, max_body_bytes: Optional[int] = None):
        self.parts: List[ReceivedPart] = []
        self.max_body_bytes = max_body_bytes
        self.total_body_bytes = 0
        self._field = bytearray()
        self._value = bytearray()
        self._headers: Dict[str, str] = {}
        self._raw_headers: Dict[str, bytes] = {}
        self._body = bytearray()
        self._complete = False
        self._error: Optional[MultipartBodyError] = None

        callbacks = {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_end": self._on_end,
        }
        self._parser = MultipartParser(boundary.encode("latin-1"), callbacks)

    def feed(self, chunk: bytes) -> None:
        if self._complete:
            return
        try:
            self._parser.write(chunk)
        except MultipartParseError as e:
            raise MultipartBodyError(f"malformed multipart body: {e}") from e
        if self._error is not None:
            raise self._error

    def close(self) -> List[ReceivedPart]:
        """Finish parsing and return the parts in the order they were sent."""

        self._parser.finalize()
        if self._error is not None:
            raise self._error
        if not self._complete:
            raise MultipartBodyError("multipart body ended before the closing boundary")
        return self.parts

    def _on_part_begin(self) -> None:
        self._headers = {}
        self._raw_headers = {}
        self._body = bytearray()

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._value += data[start:end]

    def _on_header_end(self) -> None:
        name = bytes(self._field).decode("latin-1").strip().lower()
        raw = bytes(self._value).strip()
        self._raw_headers[name] = raw
        self._headers[name] = raw.decode("utf-8", errors="replace")
        self._field = bytearray()
        self._value = bytearray()

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        n = end - start
        self.total_body_bytes += n
        if self.max_body_bytes is not None and self.total_body_bytes > self.max_body_bytes:
            self._error = self._error or UploadTooLarge(
                f"upload exceeds {self.max_body_bytes} bytes"
            )
            return
        self._body += data[start:end]

    def _on_part_end(self) -> None:
        if self._error is not None:
            return
        # parse_options_header round-trips bytes through latin-1.
        _disp, opts = parse_options_header(self._raw_headers.get("content-disposition", b""))
        try:
            raw_name = opts.get(b"filename", b"").decode("utf-8")
            path = decode_part_filename(raw_name)
        except (UnicodeDecodeError, EncodingError) as e:
            self._error = MultipartBodyError(f"part filename is not valid UTF-8: {e}")
            return
        ctype, _ = parse_options_header(self._raw_headers.get("content-type", b""))
        kind = KIND_BY_CONTENT_TYPE.get(ctype.decode("latin-1"), KIND_FILE)
        self.parts.append(
            ReceivedPart(path=path, kind=kind, headers=dict(self._headers), body=bytes(self._body))
        )

    def _on_end(self) -> None:
        self._complete = True


def parse_add_body(
    boundary: str, chunks: Iterable[bytes], *, max_body_bytes: Optional[int] = None
) -> List[ReceivedPart]:
    """Parse a complete add body from an iterable of chunks."""

    parser = AddBodyParser(boundary, max_body_bytes=max_body_bytes)
    for chunk in chunks:
        parser.feed(chunk)
    return parser.close()
