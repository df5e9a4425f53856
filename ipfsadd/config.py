from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_API_URL = "http://127.0.0.1:5001"
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_RESPONSE_BYTES = 16 * 1024 * 1024


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Configuration for talking to a node's RPC API.

    Notes:
    - timeout_sec <= 0 means "no timeout" (large directory adds can take a while).
    - chunk_size bounds how much file data the encoder holds at once.

    """

    api_url: str = DEFAULT_API_URL
    timeout_sec: float = 0.0
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build a config from IPFSADD_* environment variables."""

        api_url = os.environ.get("IPFSADD_API_URL", "").strip() or DEFAULT_API_URL
        chunk_size = env_int("IPFSADD_CHUNK_SIZE", DEFAULT_CHUNK_SIZE)
        if chunk_size <= 0:
            chunk_size = DEFAULT_CHUNK_SIZE
        max_resp = env_int("IPFSADD_MAX_RESPONSE_BYTES", DEFAULT_MAX_RESPONSE_BYTES)
        if max_resp <= 0:
            max_resp = DEFAULT_MAX_RESPONSE_BYTES
        return cls(
            api_url=api_url,
            timeout_sec=env_float("IPFSADD_TIMEOUT_SEC", 0.0),
            chunk_size=chunk_size,
            max_response_bytes=max_resp,
            log_level=(os.environ.get("IPFSADD_LOG_LEVEL", "").strip() or "WARNING").upper(),
        )


def env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to default."""

    raw = os.environ.get(name, "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)
