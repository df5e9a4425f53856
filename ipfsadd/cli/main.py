from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List

from ipfsadd.cli.add_cmds import register_add_commands
from ipfsadd.config import ClientConfig
from ipfsadd.entries import FileEntry, entry_from_path
from ipfsadd.errors import AddError
from ipfsadd.multipart import encode_tree


def cmd_encode(args: argparse.Namespace) -> int:
    """Write the multipart body for a path without talking to a node.

    The content type (with boundary) goes to stderr so stdout stays binary.
    """

    cfg = ClientConfig.from_env()
    try:
        if args.path == "-":
            entry, name = FileEntry.from_stream(sys.stdin.buffer), ""
        else:
            entry = entry_from_path(args.path, hidden=args.hidden)
            name = "" if args.anonymous else os.path.basename(os.path.abspath(args.path))
        encoder = encode_tree(
            entry,
            name,
            boundary=args.boundary,
            chunk_size=cfg.chunk_size,
            include_abspath=args.abspath,
        )
        out = open(args.out, "wb") if args.out else sys.stdout.buffer
        try:
            with encoder:
                for chunk in encoder:
                    out.write(chunk)
        finally:
            if args.out:
                out.close()
            else:
                out.flush()
    except (AddError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    print(f"Content-Type: {encoder.content_type}", file=sys.stderr)
    return 0


def cmd_serve_devnode(args: argparse.Namespace) -> int:
    """Run the development node.

    Binds to 127.0.0.1 by default.
    """

    try:
        import uvicorn
    except ImportError as e:
        print(f"error: uvicorn is required to serve the development node: {e}", file=sys.stderr)
        return 2

    from ipfsadd.devnode import create_app

    app = create_app()
    uvicorn.run(app, host=args.host, port=int(args.port), log_level=args.uvicorn_log_level)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ipfsadd", description="Add files and directories to a node over its RPC API"
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: $IPFSADD_LOG_LEVEL or WARNING)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    register_add_commands(sub)

    enc = sub.add_parser("encode", help="Write the multipart upload body for a path")
    enc.add_argument("path", help="File or directory to encode, or '-' for stdin")
    enc.add_argument("--out", default=None, help="Output file (default: stdout)")
    enc.add_argument("--boundary", default=None, help="Fixed multipart boundary")
    enc.add_argument("--hidden", action="store_true", help="Include dot-files")
    enc.add_argument("--anonymous", action="store_true", help="Use an empty root name")
    enc.add_argument("--abspath", action="store_true", help="Emit Abspath part headers")
    enc.set_defaults(func=cmd_encode)

    srv = sub.add_parser("serve-devnode", help="Run the development add endpoint")
    srv.add_argument("--host", default="127.0.0.1", help="Bind host")
    srv.add_argument("--port", default=5001, type=int, help="Bind port")
    srv.add_argument("--uvicorn-log-level", default="info", help="uvicorn log level")
    srv.set_defaults(func=cmd_serve_devnode)

    return p


def main(argv: List[str] | None = None) -> int:
    """CLI entry."""
    parser = build_parser()
    args = parser.parse_args(argv)
    level = (args.log_level or ClientConfig.from_env().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
