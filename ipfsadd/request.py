from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, urlencode

from ipfsadd.errors import InvalidOption
from ipfsadd.multipart import MultipartEncoder

OptionValue = Union[bool, int, str]

API_PREFIX = "/api/v0/"

# Sent with every request, as the node's own client does.
BASE_OPTIONS: Tuple[Tuple[str, OptionValue], ...] = (
    ("encoding", "json"),
    ("stream-channels", True),
)


class OptionSet:
    """Ordered query options. Setting an existing key replaces its value in place."""

    def __init__(self, items: Optional[Mapping[str, OptionValue]] = None):
        self._items: Dict[str, OptionValue] = {}
        for k, v in (items or {}).items():
            self.set(k, v)

    def set(self, key: str, value: OptionValue) -> "OptionSet":
        if not isinstance(key, str) or not key.strip():
            raise InvalidOption("option keys must be non-empty strings")
        if not isinstance(value, (bool, int, str)):
            raise InvalidOption(f"option {key!r} has unsupported value type {type(value).__name__}")
        self._items[key] = value
        return self

    def get(self, key: str, default: Optional[OptionValue] = None) -> Optional[OptionValue]:
        return self._items.get(key, default)

    def items(self) -> List[Tuple[str, OptionValue]]:
        return list(self._items.items())

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def to_query(self) -> str:
        return urlencode([(k, format_option_value(v)) for k, v in self._items.items()], quote_via=quote)

    def __repr__(self) -> str:
        return f"OptionSet({self._items!r})"


def format_option_value(value: OptionValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# (attribute, query key, expected type)
_OPTION_FIELDS: Tuple[Tuple[str, str, type], ...] = (
    ("pin", "pin", bool),
    ("only_hash", "only-hash", bool),
    ("progress", "progress", bool),
    ("raw_leaves", "raw-leaves", bool),
    ("hash", "hash", str),
    ("cid_version", "cid-version", int),
    ("recursive", "recursive", bool),
    ("wrap_with_directory", "wrap-with-directory", bool),
    ("chunker", "chunker", str),
    ("trickle", "trickle", bool),
    ("nocopy", "nocopy", bool),
    ("inline", "inline", bool),
    ("inline_limit", "inline-limit", int),
)


@dataclass(frozen=True)
class AddOptions:
    """Every option the add endpoint understands. None means "node default".

    extra holds raw key/value pairs for options not listed here; they are
    applied after the typed fields, so an extra key overrides a field with
    the same query key.
    """

    pin: Optional[bool] = None
    only_hash: Optional[bool] = None
    progress: Optional[bool] = None
    raw_leaves: Optional[bool] = None
    hash: Optional[str] = None
    cid_version: Optional[int] = None
    recursive: Optional[bool] = None
    wrap_with_directory: Optional[bool] = None
    chunker: Optional[str] = None
    trickle: Optional[bool] = None
    nocopy: Optional[bool] = None
    inline: Optional[bool] = None
    inline_limit: Optional[int] = None
    extra: Mapping[str, OptionValue] = field(default_factory=dict)

    def validate(self, *, directory: bool = False) -> None:
        """Check types and cross-field consistency.

        Raises:
          InvalidOption
        """

        for attr, key, typ in _OPTION_FIELDS:
            value = getattr(self, attr)
            if value is None:
                continue
            # bool is an int subclass; keep flags and numbers apart.
            if typ is bool and not isinstance(value, bool):
                raise InvalidOption(f"{key} must be a bool, got {type(value).__name__}")
            if typ is int and (isinstance(value, bool) or not isinstance(value, int)):
                raise InvalidOption(f"{key} must be an int, got {type(value).__name__}")
            if typ is str and (not isinstance(value, str) or not value.strip()):
                raise InvalidOption(f"{key} must be a non-empty string")

        if self.cid_version is not None and self.cid_version not in (0, 1):
            raise InvalidOption(f"cid-version must be 0 or 1, got {self.cid_version}")
        if self.inline_limit is not None and self.inline_limit <= 0:
            raise InvalidOption("inline-limit must be positive")

        if not isinstance(self.extra, Mapping):
            raise InvalidOption("extra options must be a mapping")
        for k, v in self.extra.items():
            if not isinstance(k, str) or not k.strip():
                raise InvalidOption("extra option keys must be non-empty strings")
            if not isinstance(v, (bool, int, str)):
                raise InvalidOption(f"extra option {k!r} has unsupported value type {type(v).__name__}")

        if directory:
            if self.recursive is False:
                raise InvalidOption("recursive cannot be disabled when adding a directory")
            if "recursive" in self.extra and self.extra["recursive"] is not True:
                raise InvalidOption("recursive cannot be overridden when adding a directory")

    def to_option_set(self, *, directory: bool = False) -> OptionSet:
        """Validate and serialize to an ordered OptionSet."""

        self.validate(directory=directory)
        opts = OptionSet()
        for k, v in BASE_OPTIONS:
            opts.set(k, v)
        for attr, key, _typ in _OPTION_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                opts.set(key, value)
        if directory:
            opts.set("recursive", True)
        for k, v in self.extra.items():
            opts.set(k, v)
        return opts


@dataclass(frozen=True)
class AddRequest:
    """Outbound request descriptor. Building one performs no I/O."""

    command: str
    options: OptionSet
    headers: Mapping[str, str]
    body: MultipartEncoder
    method: str = "POST"

    @property
    def path(self) -> str:
        return API_PREFIX + self.command

    @property
    def query(self) -> str:
        return self.options.to_query()

    @property
    def target(self) -> str:
        q = self.query
        return f"{self.path}?{q}" if q else self.path

    def url(self, base_url: str) -> str:
        base = base_url.strip()
        if "://" not in base:
            base = "http://" + base
        base = base.rstrip("/")
        if base.endswith(API_PREFIX.rstrip("/")):
            base = base[: -len(API_PREFIX.rstrip("/"))]
        return base + self.target


def assemble_add_request(
    options: Optional[AddOptions],
    body: MultipartEncoder,
    *,
    directory: bool = False,
    command: str = "add",
) -> AddRequest:
    """Attach validated options and the encoded body to a request descriptor.

    directory=True forces recursive=true.

    Raises:
      InvalidOption
    """

    opts = (options or AddOptions()).to_option_set(directory=directory)
    headers = {
        "Content-Type": body.content_type,
        "Content-Disposition": 'form-data; name="files"',
    }
    return AddRequest(command=command, options=opts, headers=headers, body=body)
