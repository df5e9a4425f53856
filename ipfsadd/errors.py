from __future__ import annotations

from typing import Optional


class AddError(Exception):
    """
    Base exception for all failures of an add operation.
    """

    pass


class EntryIOError(AddError):
    """
    Raised when reading a local file, listing a directory or stat-ing a path fails.

    Not an OSError subclass: urllib rewraps OSErrors raised from a request
    body iterator as URLError.
    """

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class EncodingError(AddError):
    """
    Raised when an entry cannot be represented in the multipart wire format.
    """

    pass


class InvalidOption(AddError):
    """
    Raised when add options are misconfigured or inconsistent.
    """

    pass


class TransportError(AddError):
    """
    Raised when the node cannot be reached or reports an error.
    """

    def __init__(self, message: str, *, status: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class DecodeError(AddError):
    """
    Raised when the node's response cannot be parsed.
    """

    pass
