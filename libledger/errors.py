from __future__ import annotations


class LibraryError(Exception):
    """Base class for every error raised by the ledger."""


class ValidationError(LibraryError):
    """A record is missing a required field or carries an out-of-range value."""


class NotFoundError(LibraryError):
    """A referenced book or issue record does not exist."""


class ConflictError(LibraryError):
    """The operation clashes with current ledger state."""


class StorageCorruptionError(LibraryError):
    """A persisted blob could not be decoded.

    Raised inside the persistence adapter only; callers get their default value.
    """

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"corrupt value under {key!r}: {reason}")
        self.key = key
        self.reason = reason
