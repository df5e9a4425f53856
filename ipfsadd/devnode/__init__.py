"""Development stand-in for a node's add endpoint.

The app parses add uploads exactly as they arrive on the wire and answers
with node-style NDJSON, so the client can be exercised without a daemon.
Identifiers it returns are deterministic but are not the node's hashes.
"""

from .server import create_app  # noqa: F401
