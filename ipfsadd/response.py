from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ipfsadd.errors import DecodeError, TransportError


class AddedEntry(BaseModel):
    """One object of the node's add response stream."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str = Field(default="", alias="Name")
    cid: str = Field(alias="Hash", min_length=1)
    size: Optional[int] = Field(default=None, alias="Size")


class NodeErrorOut(BaseModel):
    """Error object the node writes into a response stream."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message: str = Field(default="", alias="Message")
    code: Optional[int] = Field(default=None, alias="Code")
    type: str = Field(default="error", alias="Type")


@dataclass(frozen=True)
class AddResult:
    """Outcome of a successful add."""

    cid: str
    name: str = ""
    size: Optional[int] = None
    entries: Tuple[AddedEntry, ...] = field(default_factory=tuple)


def iter_json_objects(text: str) -> List[Any]:
    """Split a stream of concatenated / newline-delimited JSON values."""

    dec = json.JSONDecoder()
    out: List[Any] = []
    i = 0
    n = len(text)
    while True:
        while i < n and text[i].isspace():
            i += 1
        if i >= n:
            return out
        try:
            obj, i = dec.raw_decode(text, i)
        except json.JSONDecodeError as e:
            raise DecodeError(f"invalid JSON in add response at offset {e.pos}: {e.msg}") from e
        out.append(obj)


def decode_add_response(body: bytes, *, root_name: Optional[str] = "") -> AddResult:
    """Decode the add endpoint's response body.

    The result is the entry named root_name, or the last entry the node
    reported when there is no such entry (or root_name is None). The node
    reports the root last.

    Raises:
      DecodeError: body is not JSON, an object is malformed, or nothing was added.
      TransportError: the node wrote an error object into the stream.
    """

    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError("add response is not valid UTF-8") from e

    entries: List[AddedEntry] = []
    for obj in iter_json_objects(text):
        if not isinstance(obj, dict):
            raise DecodeError(f"unexpected JSON value in add response: {type(obj).__name__}")
        if obj.get("Type") == "error":
            err = NodeErrorOut.model_validate(obj)
            raise TransportError(err.message or "node reported an error", code=err.code)
        if "Hash" not in obj and "Bytes" in obj:
            continue
        try:
            entries.append(AddedEntry.model_validate(obj))
        except ValidationError as e:
            raise DecodeError(f"malformed add response entry: {e.errors()[0].get('msg')}") from e

    if not entries:
        raise DecodeError("add response contained no entries")

    chosen = entries[-1]
    if root_name is not None:
        for e in reversed(entries):
            if e.name == root_name:
                chosen = e
                break
    return AddResult(cid=chosen.cid, name=chosen.name, size=chosen.size, entries=tuple(entries))


def decode_error_body(body: bytes) -> NodeErrorOut:
    """Best-effort decode of an error response body."""

    text = body.decode("utf-8", errors="replace").strip()
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        return NodeErrorOut(message=text)
    if isinstance(obj, dict):
        try:
            return NodeErrorOut.model_validate(obj)
        except ValidationError:
            return NodeErrorOut(message=text)
    return NodeErrorOut(message=text)
