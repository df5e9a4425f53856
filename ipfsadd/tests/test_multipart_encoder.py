import io
import os
from pathlib import Path

import pytest

from ipfsadd.devnode.parser import parse_add_body
from ipfsadd.entries import DirectoryEntry, FileEntry, SymlinkEntry, entry_from_path
from ipfsadd.errors import EncodingError
from ipfsadd.multipart import (
    MultipartEncoder,
    decode_part_filename,
    encode_tree,
    escape_part_filename,
)


def _file(data: bytes = b"") -> FileEntry:
    return FileEntry.from_stream(io.BytesIO(data))


def _docs_tree() -> DirectoryEntry:
    return DirectoryEntry(
        [
            ("a.txt", _file(b"hi")),
            ("sub", DirectoryEntry({"b.txt": _file(b"")})),
        ]
    )


def _roundtrip(enc: MultipartEncoder):
    parts = parse_add_body(enc.boundary, enc)
    return [(p.path, p.kind, p.body) for p in parts]


def test_docs_scenario_roundtrips_in_order():
    enc = encode_tree(_docs_tree(), "docs")

    assert _roundtrip(enc) == [
        ("docs", "dir", b""),
        ("docs/a.txt", "file", b"hi"),
        ("docs/sub", "dir", b""),
        ("docs/sub/b.txt", "file", b""),
    ]
    assert enc.parts_sent == 4
    assert enc.bytes_sent == 2
    assert enc.closed is True


def test_anonymous_file_exact_wire_bytes():
    enc = encode_tree(_file(b"hello"), boundary="B")

    assert b"".join(enc) == (
        b"--B\r\n"
        b'Content-Disposition: form-data; name="file"; filename=""\r\n'
        b"Content-Type: application/octet-stream\r\n"
        b"\r\n"
        b"hello"
        b"\r\n--B--\r\n"
    )


def test_anonymous_file_is_a_single_part_with_empty_path():
    parts = _roundtrip(encode_tree(_file(b"payload")))
    assert parts == [("", "file", b"payload")]


def test_empty_directory_is_one_dir_part():
    parts = _roundtrip(encode_tree(DirectoryEntry(), "empty"))
    assert parts == [("empty", "dir", b"")]


def test_symlink_body_is_target():
    tree = DirectoryEntry([("ln", SymlinkEntry(target="../elsewhere/file"))])
    parts = _roundtrip(encode_tree(tree, "root"))
    assert parts == [("root", "dir", b""), ("root/ln", "symlink", b"../elsewhere/file")]


def test_encoding_is_deterministic_for_a_fixed_boundary():
    a = b"".join(encode_tree(_docs_tree(), "docs", boundary="fixed-boundary"))
    b = b"".join(encode_tree(_docs_tree(), "docs", boundary="fixed-boundary"))
    assert a == b

    e1 = encode_tree(_docs_tree(), "docs")
    e2 = encode_tree(_docs_tree(), "docs")
    assert e1.boundary != e2.boundary
    assert b"".join(e1).replace(e1.boundary.encode(), b"X") == b"".join(e2).replace(
        e2.boundary.encode(), b"X"
    )


def test_file_bytes_that_look_like_multipart_survive():
    tricky = b"\r\n--not-the-boundary\r\n\r\nContent-Type: x\r\n" * 50 + b"\x00\xff"
    parts = _roundtrip(encode_tree(DirectoryEntry([("t.bin", _file(tricky))]), "r"))
    assert parts[1] == ("r/t.bin", "file", tricky)


def test_paths_outside_safe_set_are_escaped_and_decode_back():
    name = "héllo wörld+100%.txt"
    tree = DirectoryEntry([(name, _file(b"x"))])
    enc = encode_tree(tree, "my docs", boundary="esc")
    raw = b"".join(enc)

    assert b'filename="my%20docs/h%C3%A9llo%20w%C3%B6rld%2B100%25.txt"' in raw
    parts = parse_add_body("esc", [raw])
    assert [p.path for p in parts] == ["my docs", f"my docs/{name}"]


@pytest.mark.parametrize(
    "path",
    ["plain/path-1_2.~txt", "sp ace", "quo\"te", "semi;colon", "uni☃code", "a+b=c&d"],
)
def test_escape_and_decode_are_inverse(path):
    escaped = escape_part_filename(path)
    assert all(c.isalnum() or c in "._~/-%" for c in escaped)
    assert decode_part_filename(escaped) == path


def test_safe_characters_are_left_alone():
    assert escape_part_filename("A-z_0.9~/x") == "A-z_0.9~/x"


def test_unencodable_path_raises_encoding_error():
    tree = DirectoryEntry([("bad\udcff", _file())])
    with pytest.raises(EncodingError):
        b"".join(encode_tree(tree, "r"))


def test_abspath_headers_only_when_requested(tmp_path: Path) -> None:
    p = tmp_path / "data.bin"
    p.write_bytes(b"123")

    with_abs = parse_add_body(
        "ab", encode_tree(entry_from_path(str(p)), "data.bin", boundary="ab", include_abspath=True)
    )
    assert with_abs[0].abspath == os.path.abspath(str(p))
    assert with_abs[0].body == b"123"

    without = parse_add_body("ab", encode_tree(entry_from_path(str(p)), "data.bin", boundary="ab"))
    assert without[0].abspath is None


def test_abspath_with_control_characters_is_rejected():
    entry = FileEntry(lambda: io.BytesIO(b""), abs_path="/tmp/evil\r\nX-Injected: 1")
    with pytest.raises(EncodingError):
        b"".join(encode_tree(entry, "f", include_abspath=True))


@pytest.mark.parametrize("boundary", ["", "x" * 71, "ends-with-space ", "semi;colon", "new\nline"])
def test_invalid_boundaries_are_rejected(boundary):
    with pytest.raises(EncodingError):
        MultipartEncoder([], boundary=boundary)


def test_boundary_with_tspecials_is_quoted_in_content_type():
    enc = MultipartEncoder([], boundary="a=b")
    assert enc.content_type == 'multipart/form-data; boundary="a=b"'
    assert MultipartEncoder([], boundary="plain").content_type == (
        "multipart/form-data; boundary=plain"
    )


def test_default_boundary_is_random_and_valid():
    enc = MultipartEncoder([])
    assert enc.boundary.startswith("----ipfsadd-")
    assert len(enc.boundary) <= 70


def test_encoder_is_not_restartable():
    enc = encode_tree(_file(b"once"))
    b"".join(enc)
    with pytest.raises(RuntimeError):
        iter(enc)


def test_closed_encoder_cannot_start():
    enc = encode_tree(_file(b"once"))
    enc.close()
    with pytest.raises(RuntimeError):
        iter(enc)


def test_chunk_size_bounds_file_chunks():
    data = bytes(range(256)) * 40
    enc = encode_tree(DirectoryEntry([("f", _file(data))]), "r", chunk_size=100)
    chunks = list(enc)

    body_chunks = [c for c in chunks if not c.startswith((b"--", b"\r\n--"))]
    assert body_chunks
    assert all(len(c) <= 100 for c in body_chunks)
    assert enc.bytes_sent == len(data)


def test_chunk_size_must_be_positive():
    with pytest.raises(ValueError):
        MultipartEncoder([], chunk_size=0)


def test_text_streams_are_rejected():
    enc = encode_tree(FileEntry.from_stream(io.StringIO("text")))
    with pytest.raises(EncodingError):
        b"".join(enc)


def test_empty_entry_sequence_is_a_bare_close_delimiter():
    assert b"".join(MultipartEncoder([], boundary="B")) == b"--B--\r\n"
