from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from ipfsadd.config import ClientConfig
from ipfsadd.request import AddRequest
from ipfsadd.shell import Shell
from ipfsadd.transport import HttpResponse


class ClientTransport:
    """Sends AddRequests to an in-process app through a TestClient."""

    def __init__(self, client: TestClient):
        self.client = client
        self.sent = []

    def send(self, request: AddRequest) -> HttpResponse:
        self.sent.append(request)
        r = self.client.post(request.target, content=request.body, headers=dict(request.headers))
        return HttpResponse(status=r.status_code, headers=dict(r.headers), body_bytes=r.content)


@pytest.fixture
def devnode_client(monkeypatch):
    monkeypatch.delenv("IPFSADD_DEVNODE_MAX_UPLOAD_BYTES", raising=False)

    from ipfsadd.devnode import create_app

    with TestClient(create_app()) as client:
        yield client


@pytest.fixture
def devnode_transport(devnode_client) -> ClientTransport:
    return ClientTransport(devnode_client)


@pytest.fixture
def devnode_shell(devnode_transport) -> Shell:
    return Shell("http://testserver", transport=devnode_transport, config=ClientConfig())
