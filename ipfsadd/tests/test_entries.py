import io
import os
import stat
from pathlib import Path

import pytest

from ipfsadd.entries import DirectoryEntry, FileEntry, SymlinkEntry, entry_from_path
from ipfsadd.errors import EntryIOError
from ipfsadd.localfs import LocalFilesystem


class CountingFs(LocalFilesystem):
    def __init__(self):
        self.opened = []

    def open_binary(self, path: str):
        f = super().open_binary(path)
        self.opened.append(f)
        return f


def test_file_stream_can_be_handed_out_once():
    stream = io.BytesIO(b"data")
    f = FileEntry.from_stream(stream)

    assert f.consumed is False
    assert f.open() is stream
    assert f.consumed is True
    with pytest.raises(EntryIOError):
        f.open()


def test_file_entry_rejects_non_streams():
    with pytest.raises(TypeError):
        FileEntry.from_stream(b"not a stream")
    with pytest.raises(TypeError):
        FileEntry("not callable")


def test_file_from_path_opens_lazily(tmp_path: Path) -> None:
    p = tmp_path / "a.bin"
    p.write_bytes(b"abc")
    fs = CountingFs()

    f = FileEntry.from_path(str(p), fs=fs)
    assert fs.opened == []
    assert f.abs_path == os.path.abspath(str(p))

    with f.open() as stream:
        assert stream.read() == b"abc"
    assert len(fs.opened) == 1


def test_file_from_missing_path_fails_on_open(tmp_path: Path) -> None:
    f = FileEntry.from_path(str(tmp_path / "missing"))
    with pytest.raises(EntryIOError):
        f.open()


def test_directory_validates_child_names():
    leaf = SymlinkEntry(target="x")
    with pytest.raises(ValueError):
        DirectoryEntry([("", leaf)])
    with pytest.raises(ValueError):
        DirectoryEntry([("a", leaf), ("a", leaf)])
    with pytest.raises(TypeError):
        DirectoryEntry([("a", "not an entry")])


def test_directory_keeps_insertion_order():
    d = DirectoryEntry(
        [
            ("zeta", SymlinkEntry(target="z")),
            ("alpha", SymlinkEntry(target="a")),
            ("mid", DirectoryEntry()),
        ]
    )
    assert [name for name, _ in d.iter_children()] == ["zeta", "alpha", "mid"]
    assert d.is_dir is True
    assert d.is_lazy is False


def test_symlink_target_must_be_string():
    with pytest.raises(TypeError):
        SymlinkEntry(target=b"bytes")


def test_entry_from_path_builds_each_kind(tmp_path: Path) -> None:
    (tmp_path / "f.txt").write_text("hello", encoding="utf-8")
    (tmp_path / "d").mkdir()
    os.symlink("f.txt", tmp_path / "link")

    f = entry_from_path(str(tmp_path / "f.txt"))
    assert isinstance(f, FileEntry)
    assert f.size == 5

    d = entry_from_path(str(tmp_path / "d"))
    assert isinstance(d, DirectoryEntry)
    assert d.is_lazy is True

    ln = entry_from_path(str(tmp_path / "link"))
    assert isinstance(ln, SymlinkEntry)
    assert ln.target == "f.txt"


def test_entry_from_path_lists_sorted_and_skips_hidden(tmp_path: Path) -> None:
    for name in ["b.txt", "a.txt", ".hidden", "C.txt"]:
        (tmp_path / name).write_text(name, encoding="utf-8")

    d = entry_from_path(str(tmp_path))
    assert [n for n, _ in d.iter_children()] == ["C.txt", "a.txt", "b.txt"]

    d_all = entry_from_path(str(tmp_path), hidden=True)
    assert [n for n, _ in d_all.iter_children()] == [".hidden", "C.txt", "a.txt", "b.txt"]


def test_entry_from_path_errors(tmp_path: Path) -> None:
    with pytest.raises(EntryIOError):
        entry_from_path(str(tmp_path / "nope"))


def test_directory_from_path_checks_supplied_stat(tmp_path: Path) -> None:
    f = tmp_path / "plain.txt"
    f.write_text("x", encoding="utf-8")

    with pytest.raises(EntryIOError):
        DirectoryEntry.from_path(str(f), stat=os.lstat(f))
    d = DirectoryEntry.from_path(str(tmp_path), stat=os.lstat(tmp_path))
    assert d.is_lazy is True


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="needs mkfifo")
def test_entry_from_path_rejects_special_files(tmp_path: Path) -> None:
    fifo = tmp_path / "pipe"
    os.mkfifo(fifo)
    assert stat.S_ISFIFO(os.lstat(fifo).st_mode)

    with pytest.raises(EntryIOError):
        entry_from_path(str(fifo))


def test_lazy_directory_listing_error_surfaces_when_iterated(tmp_path: Path) -> None:
    sub = tmp_path / "gone"
    sub.mkdir()
    d = entry_from_path(str(sub))
    sub.rmdir()

    with pytest.raises(EntryIOError):
        list(d.iter_children())
