from __future__ import annotations

import logging
import os
import time
from typing import BinaryIO, Optional

from ipfsadd.config import ClientConfig
from ipfsadd.entries import DirectoryEntry, Entry, FileEntry, SymlinkEntry, entry_from_path
from ipfsadd.errors import AddError, TransportError
from ipfsadd.localfs import LocalFilesystem
from ipfsadd.multipart import encode_tree
from ipfsadd.request import AddOptions, assemble_add_request
from ipfsadd.response import AddResult, decode_add_response, decode_error_body
from ipfsadd.transport import Transport, UrllibTransport

log = logging.getLogger("ipfsadd.client")


class Shell:
    """Client for the node's add endpoint.

    add_entry() is the general operation; add(), add_dir() and add_link()
    are shortcuts that build the entry and return only the CID.

    Every call builds its own encoder (and boundary), so a Shell can be
    shared between threads as long as the transport can.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        *,
        transport: Optional[Transport] = None,
        config: Optional[ClientConfig] = None,
        fs: Optional[LocalFilesystem] = None,
    ):
        self.config = config or ClientConfig.from_env()
        self.api_url = api_url or self.config.api_url
        self.transport: Transport = transport or UrllibTransport(
            self.api_url,
            timeout_sec=self.config.timeout_sec,
            max_response_bytes=self.config.max_response_bytes,
        )
        self.fs = fs or LocalFilesystem()

    def add_entry(
        self,
        entry: Entry,
        *,
        name: str = "",
        options: Optional[AddOptions] = None,
        directory: Optional[bool] = None,
    ) -> AddResult:
        """Upload an entry tree and return what the node reported for its root.

        directory defaults to "entry is a DirectoryEntry"; directory adds
        always send recursive=true.

        Raises:
          InvalidOption, EncodingError, EntryIOError, TransportError, DecodeError
        """

        options = options or AddOptions()
        if directory is None:
            directory = isinstance(entry, DirectoryEntry)

        encoder = encode_tree(
            entry,
            name,
            chunk_size=self.config.chunk_size,
            include_abspath=bool(options.nocopy),
        )
        request = assemble_add_request(options, encoder, directory=directory)

        log.info(
            "add_request",
            extra={
                "endpoint": request.path,
                "boundary": encoder.boundary,
                "options": request.query,
                "root_kind": entry.kind,
            },
        )
        start = time.monotonic()
        try:
            with encoder:
                resp = self.transport.send(request)
            if resp.is_error:
                err = decode_error_body(resp.body_bytes)
                raise TransportError(
                    err.message or f"node returned HTTP {resp.status}",
                    status=resp.status,
                    code=err.code,
                )
            root_name = None if options.wrap_with_directory else name
            result = decode_add_response(resp.body_bytes, root_name=root_name)
        except AddError as e:
            log.warning(
                "add_failed",
                extra={
                    "endpoint": request.path,
                    "error": type(e).__name__,
                    "parts_sent": encoder.parts_sent,
                    "bytes_sent": encoder.bytes_sent,
                },
            )
            raise

        log.info(
            "add_complete",
            extra={
                "endpoint": request.path,
                "cid": result.cid,
                "parts_sent": encoder.parts_sent,
                "bytes_sent": encoder.bytes_sent,
                "duration_ms": int((time.monotonic() - start) * 1000),
            },
        )
        return result

    def add(self, stream: BinaryIO, options: Optional[AddOptions] = None) -> str:
        """Add a single anonymous file from a readable byte stream."""

        return self.add_entry(FileEntry.from_stream(stream), options=options).cid

    def add_path(
        self, path: str, options: Optional[AddOptions] = None, *, hidden: bool = False
    ) -> AddResult:
        """Add a local file, symlink or directory named after its base name."""

        entry = entry_from_path(path, fs=self.fs, hidden=hidden)
        name = os.path.basename(os.path.abspath(path))
        return self.add_entry(entry, name=name, options=options, directory=entry.is_dir)

    def add_dir(
        self, path: str, options: Optional[AddOptions] = None, *, hidden: bool = False
    ) -> str:
        """Add a directory recursively with all of the files under it."""

        return self.add_path(path, options, hidden=hidden).cid

    def add_link(self, target: str, options: Optional[AddOptions] = None) -> str:
        """Add an anonymous symlink pointing at target."""

        return self.add_entry(SymlinkEntry(target=target), options=options).cid
