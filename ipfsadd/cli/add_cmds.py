from __future__ import annotations

import argparse
import json
import sys
from typing import Callable, Dict, Union

from ipfsadd.config import ClientConfig
from ipfsadd.entries import FileEntry, SymlinkEntry
from ipfsadd.errors import AddError, InvalidOption
from ipfsadd.request import AddOptions
from ipfsadd.response import AddResult
from ipfsadd.shell import Shell


def _print_json(obj: object) -> None:
    """Print JSON to stdout."""
    print(json.dumps(obj, indent=2, sort_keys=True, default=str))


def _result_json(result: AddResult) -> Dict[str, object]:
    return {
        "cid": result.cid,
        "name": result.name,
        "size": result.size,
        "entries": [e.model_dump(by_alias=True) for e in result.entries],
    }


def _parse_value(raw: str) -> Union[bool, int, str]:
    low = raw.strip().lower()
    if low in {"true", "false"}:
        return low == "true"
    try:
        return int(raw)
    except ValueError:
        return raw


def options_from_args(args: argparse.Namespace) -> AddOptions:
    """Map CLI flags to AddOptions. Flags left out stay None (node default)."""

    extra: Dict[str, Union[bool, int, str]] = {}
    for item in args.option or []:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise InvalidOption(f"--option expects KEY=VALUE, got {item!r}")
        extra[key.strip()] = _parse_value(raw)

    return AddOptions(
        pin=args.pin,
        only_hash=args.only_hash,
        progress=args.progress,
        raw_leaves=args.raw_leaves,
        hash=args.hash,
        cid_version=args.cid_version,
        wrap_with_directory=args.wrap_with_directory,
        chunker=args.chunker,
        trickle=args.trickle,
        nocopy=args.nocopy,
        inline=args.inline,
        inline_limit=args.inline_limit,
        extra=extra,
    )


def _shell(args: argparse.Namespace) -> Shell:
    cfg = ClientConfig.from_env()
    return Shell(args.url or cfg.api_url, config=cfg)


def _run_add(args: argparse.Namespace, fn: Callable[[Shell, AddOptions], AddResult]) -> int:
    try:
        opts = options_from_args(args)
        result = fn(_shell(args), opts)
    except AddError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    if args.json:
        _print_json(_result_json(result))
    else:
        print(result.cid)
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    """Add a single file (or stdin when FILE is '-') without a name."""

    def run(shell: Shell, opts: AddOptions) -> AddResult:
        if args.file == "-":
            entry = FileEntry.from_stream(sys.stdin.buffer)
        else:
            entry = FileEntry.from_path(args.file, fs=shell.fs)
        return shell.add_entry(entry, options=opts)

    return _run_add(args, run)


def cmd_add_dir(args: argparse.Namespace) -> int:
    """Add a directory recursively."""

    return _run_add(args, lambda shell, opts: shell.add_path(args.dir, opts, hidden=args.hidden))


def cmd_add_link(args: argparse.Namespace) -> int:
    """Add a symlink pointing at TARGET."""

    return _run_add(
        args, lambda shell, opts: shell.add_entry(SymlinkEntry(target=args.target), options=opts)
    )


def _add_option_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--url", default=None, help="Node API URL (default: $IPFSADD_API_URL)")
    p.add_argument("--json", action="store_true", help="Print the full decoded response")
    p.add_argument(
        "--pin", action=argparse.BooleanOptionalAction, default=None, help="Pin added content"
    )
    p.add_argument("--only-hash", action="store_true", default=None, help="Only compute the CID")
    p.add_argument("--progress", action="store_true", default=None, help="Ask for progress output")
    p.add_argument("--raw-leaves", action="store_true", default=None, help="Use raw leaf blocks")
    p.add_argument("--hash", default=None, help="Multihash function name, e.g. sha2-256")
    p.add_argument("--cid-version", type=int, default=None, help="CID version (0 or 1)")
    p.add_argument(
        "--wrap-with-directory",
        action="store_true",
        default=None,
        help="Wrap the upload in a directory and return its CID",
    )
    p.add_argument("--chunker", default=None, help="Chunking algorithm, e.g. size-262144")
    p.add_argument("--trickle", action="store_true", default=None, help="Use trickle DAG layout")
    p.add_argument(
        "--nocopy",
        action="store_true",
        default=None,
        help="Reference local files instead of copying (sends Abspath headers)",
    )
    p.add_argument("--inline", action="store_true", default=None, help="Inline small blocks")
    p.add_argument("--inline-limit", type=int, default=None, help="Max inlined block size")
    p.add_argument(
        "--option",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Extra query option (repeatable, applied last)",
    )


def register_add_commands(sub: argparse._SubParsersAction) -> None:
    """Register the `add`, `add-dir` and `add-link` commands."""

    a = sub.add_parser("add", help="Add a single file")
    a.add_argument("file", help="Path to local file, or '-' for stdin")
    _add_option_flags(a)
    a.set_defaults(func=cmd_add)

    d = sub.add_parser("add-dir", help="Add a directory recursively")
    d.add_argument("dir", help="Path to local directory")
    d.add_argument("--hidden", action="store_true", help="Include dot-files")
    _add_option_flags(d)
    d.set_defaults(func=cmd_add_dir)

    ln = sub.add_parser("add-link", help="Add a symlink")
    ln.add_argument("target", help="Symlink target path")
    _add_option_flags(ln)
    ln.set_defaults(func=cmd_add_link)
