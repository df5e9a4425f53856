from __future__ import annotations

import base64
import hashlib
from typing import Dict, List, Optional, Tuple

from ipfsadd.devnode.parser import ReceivedPart
from ipfsadd.entries import KIND_DIR, KIND_FILE

# Multicodec / multihash prefixes: CIDv1, raw or dag-pb, sha2-256, 32 bytes.
_CODEC_RAW = 0x55
_CODEC_DAG_PB = 0x70
_SHA2_256 = 0x12


def cid_v1(codec: int, digest: bytes) -> str:
    """CIDv1-shaped identifier in lower-case base32 multibase.

    The digests below are not the node's DAG hashes, so these identifiers
    only match a real node for single-block raw files.
    """

    raw = bytes([0x01, codec, _SHA2_256, len(digest)]) + digest
    return "b" + base64.b32encode(raw).decode("ascii").lower().rstrip("=")


def parent_path(path: str) -> Optional[str]:
    if not path:
        return None
    return path.rpartition("/")[0]


def is_under(path: str, dir_path: str) -> bool:
    if dir_path == "":
        return path != ""
    return path.startswith(dir_path + "/")


def assign_ids(parts: List[ReceivedPart]) -> Dict[str, Tuple[str, int]]:
    """Map each part path to (identifier, cumulative size)."""

    by_path = {p.path: p for p in parts}
    children: Dict[str, List[Tuple[str, str]]] = {}
    ids: Dict[str, Tuple[str, int]] = {}
    sizes: Dict[str, int] = {}

    # Children always follow their parent in the upload, so walking backwards
    # finishes every child before its directory.
    for p in reversed(parts):
        if p.kind == KIND_DIR:
            listing = sorted(children.get(p.path, []))
            h = hashlib.sha256()
            for name, cid in listing:
                h.update(name.encode("utf-8") + b"\x00" + cid.encode("ascii") + b"\n")
            cid = cid_v1(_CODEC_DAG_PB, h.digest())
            size = sizes.get(p.path, 0)
        elif p.kind == KIND_FILE:
            cid = cid_v1(_CODEC_RAW, hashlib.sha256(p.body).digest())
            size = len(p.body)
        else:
            cid = cid_v1(_CODEC_DAG_PB, hashlib.sha256(b"symlink\x00" + p.body).digest())
            size = len(p.body)
        ids[p.path] = (cid, size)

        parent = parent_path(p.path)
        if parent is not None and parent in by_path:
            children.setdefault(parent, []).append((p.path.rpartition("/")[2], cid))
            sizes[parent] = sizes.get(parent, 0) + size
    return ids


def wrapper_id(parts: List[ReceivedPart], ids: Dict[str, Tuple[str, int]]) -> Tuple[str, int]:
    """Identifier of a synthetic directory holding every top-level part."""

    paths = {p.path for p in parts}
    top = [p for p in parts if parent_path(p.path) not in paths]
    h = hashlib.sha256()
    size = 0
    for p in sorted(top, key=lambda x: x.path):
        cid, sz = ids[p.path]
        h.update(p.path.encode("utf-8") + b"\x00" + cid.encode("ascii") + b"\n")
        size += sz
    return cid_v1(_CODEC_DAG_PB, h.digest()), size


def report_order(parts: List[ReceivedPart]) -> List[ReceivedPart]:
    """Order parts the way the node reports them: directories after their contents."""

    out: List[ReceivedPart] = []
    stack: List[ReceivedPart] = []
    for p in parts:
        while stack and not is_under(p.path, stack[-1].path):
            out.append(stack.pop())
        if p.kind == KIND_DIR:
            stack.append(p)
        else:
            out.append(p)
    while stack:
        out.append(stack.pop())
    return out
