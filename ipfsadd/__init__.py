"""Client for the add family of a content-addressed node's RPC API.

Local files, symlinks and directory trees are flattened and streamed as a
multipart body in the node's wire format; the reply is decoded into the
root's content identifier.

Notes:
- File contents are streamed, never buffered whole.
- Avoid printing or logging raw file bytes.
"""

from .entries import DirectoryEntry, Entry, FileEntry, SymlinkEntry, entry_from_path
from .errors import (
    AddError,
    DecodeError,
    EncodingError,
    EntryIOError,
    InvalidOption,
    TransportError,
)
from .flatten import FlatEntry, flatten
from .multipart import MultipartEncoder, encode_tree
from .request import AddOptions, AddRequest, OptionSet, assemble_add_request
from .response import AddedEntry, AddResult, decode_add_response
from .shell import Shell

__all__ = [
    "Entry",
    "FileEntry",
    "DirectoryEntry",
    "SymlinkEntry",
    "entry_from_path",
    "AddError",
    "EntryIOError",
    "EncodingError",
    "InvalidOption",
    "TransportError",
    "DecodeError",
    "FlatEntry",
    "flatten",
    "MultipartEncoder",
    "encode_tree",
    "AddOptions",
    "OptionSet",
    "AddRequest",
    "assemble_add_request",
    "AddedEntry",
    "AddResult",
    "decode_add_response",
    "Shell",
]
