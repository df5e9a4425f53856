from __future__ import annotations

import http.client
import ssl
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ipfsadd.config import DEFAULT_MAX_RESPONSE_BYTES
from ipfsadd.errors import AddError, TransportError
from ipfsadd.request import AddRequest


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """Reply to an add request.

    body_bytes holds the node's NDJSON stream or its error object, already
    capped by the transport. Treat it as untrusted.
    """

    status: int
    headers: Mapping[str, str]
    body_bytes: bytes

    @property
    def is_error(self) -> bool:
        return self.status >= 400


class Transport(Protocol):
    """Anything that can deliver an AddRequest and return the reply."""

    def send(self, request: AddRequest) -> HttpResponse: ...


class UrllibTransport:
    """Stdlib HTTP transport for the node's RPC API.

    The request body is passed to urllib as an iterable, so it is sent with
    chunked transfer encoding and pulled from the encoder as the socket
    accepts data. No retries.

    Notes:
    - Does NOT disable TLS verification.
    - Response bodies are capped at max_response_bytes.

    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = 0.0,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.base_url = base_url
        self.timeout_sec = float(timeout_sec)
        self.max_response_bytes = int(max_response_bytes)
        self.headers: Dict[str, str] = dict(headers or {})

    def send(self, request: AddRequest) -> HttpResponse:
        """POST the request; HTTP error statuses come back as responses."""

        req = Request(url=request.url(self.base_url), data=request.body, method=request.method)
        for k, v in self.headers.items():
            req.add_header(k, v)
        for k, v in request.headers.items():
            req.add_header(k, v)
        return _do_request(req, timeout_sec=self.timeout_sec, max_bytes=self.max_response_bytes)


def _read_bounded(stream: Any, max_bytes: int) -> bytes:
    data = stream.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise TransportError(f"response exceeds {max_bytes} bytes")
    return data


def _do_request(req: Request, *, timeout_sec: float, max_bytes: int) -> HttpResponse:
    """Execute a request.

    Notes:
    - Uses default SSL context (verification ON).
    - An AddError raised by the body iterator propagates unchanged.

    """

    kwargs: Dict[str, Any] = {"context": ssl.create_default_context()}
    if timeout_sec > 0:
        kwargs["timeout"] = timeout_sec
    try:
        with urlopen(req, **kwargs) as resp:
            body = _read_bounded(resp, max_bytes)
            headers = {k: v for k, v in resp.headers.items()}
            return HttpResponse(status=int(resp.status), headers=headers, body_bytes=body)
    except HTTPError as e:
        body = _read_bounded(e, max_bytes) if hasattr(e, "read") else b""
        headers = dict(getattr(e, "headers", {}) or {})
        return HttpResponse(
            status=int(getattr(e, "code", 0) or 0), headers=headers, body_bytes=body
        )
    except URLError as e:
        if isinstance(e.reason, AddError):
            raise e.reason
        raise TransportError(f"network error: {e.reason}") from e
    except (http.client.HTTPException, OSError) as e:
        raise TransportError(f"network error: {e}") from e
