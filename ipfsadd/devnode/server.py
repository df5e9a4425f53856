from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response
from python_multipart.multipart import parse_options_header
from starlette.requests import ClientDisconnect, Request

from ipfsadd.config import env_int
from ipfsadd.devnode.ids import assign_ids, report_order, wrapper_id
from ipfsadd.devnode.middleware import AccessLogMiddleware, RequestIdMiddleware
from ipfsadd.devnode.parser import AddBodyParser, MultipartBodyError, ReceivedPart, UploadTooLarge
from ipfsadd.entries import KIND_DIR
from ipfsadd.response import AddedEntry, NodeErrorOut

log = logging.getLogger("ipfsadd.devnode")

SUPPORTED_HASHES = {"sha2-256"}


@dataclass(frozen=True, slots=True)
class DevNodeConfig:
    """Configuration for the development node.

    Notes:
    - Uploads are held in memory; max_upload_bytes caps total part data.

    """

    max_upload_bytes: int = 64 * 1024 * 1024


def _node_error(status: int, message: str) -> JSONResponse:
    err = NodeErrorOut(message=message, code=0, type="error")
    return JSONResponse(status_code=status, content=err.model_dump(by_alias=True))


def _flag(request: Request, key: str) -> bool:
    return request.query_params.get(key, "").strip().lower() in {"1", "true", "yes"}


async def receive_upload(
    parser: AddBodyParser, chunks: AsyncIterator[bytes]
) -> Optional[List[ReceivedPart]]:
    """Feed an upload into parser. Returns None if the client went away."""

    try:
        async for chunk in chunks:
            parser.feed(chunk)
    except ClientDisconnect:
        log.info("devnode_client_disconnect", extra={"body_bytes": parser.total_body_bytes})
        return None
    return parser.close()


def create_app() -> FastAPI:
    """Create the FastAPI app standing in for a node's add endpoint."""

    cfg = DevNodeConfig(
        max_upload_bytes=env_int("IPFSADD_DEVNODE_MAX_UPLOAD_BYTES", 64 * 1024 * 1024),
    )
    log.setLevel(os.environ.get("IPFSADD_LOG_LEVEL", "INFO").upper())

    app = FastAPI(title="ipfsadd development node", version="0.1")
    app.state.cfg = cfg

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(AccessLogMiddleware)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "max_upload_bytes": cfg.max_upload_bytes}

    @app.post("/api/v0/add")
    async def add(request: Request) -> Response:
        media_type, params = parse_options_header(request.headers.get("content-type", ""))
        boundary = params.get(b"boundary")
        if media_type != b"multipart/form-data" or not boundary:
            return _node_error(400, "request body must be multipart/form-data with a boundary")

        hash_fn = request.query_params.get("hash")
        if hash_fn and hash_fn not in SUPPORTED_HASHES:
            return _node_error(400, f"unsupported hash function: {hash_fn}")

        parser = AddBodyParser(boundary.decode("latin-1"), max_body_bytes=cfg.max_upload_bytes)
        try:
            parts = await receive_upload(parser, request.stream())
        except UploadTooLarge as e:
            return _node_error(413, str(e))
        except MultipartBodyError as e:
            return _node_error(400, str(e))
        if parts is None:
            return Response(status_code=400)

        request.state.parts = len(parts)
        request.state.body_bytes = parser.total_body_bytes
        if not parts:
            return _node_error(400, "no files in upload")
        if any(p.kind == KIND_DIR for p in parts) and not _flag(request, "recursive"):
            return _node_error(400, "directory upload requires recursive=true")

        ids = assign_ids(parts)
        lines: List[str] = []
        for p in report_order(parts):
            cid, size = ids[p.path]
            item = AddedEntry(name=p.path or cid, cid=cid, size=size)
            lines.append(json.dumps(item.model_dump(by_alias=True)))
        if _flag(request, "wrap-with-directory"):
            cid, size = wrapper_id(parts, ids)
            lines.append(json.dumps(AddedEntry(name="", cid=cid, size=size).model_dump(by_alias=True)))

        return Response(
            content="\n".join(lines) + "\n",
            media_type="application/json",
            headers={"X-Chunked-Output": "1"},
        )

    return app
