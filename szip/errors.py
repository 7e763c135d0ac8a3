from __future__ import annotations

from dataclasses import dataclass


class SzipError(Exception):
    """Base class for szip-specific errors."""


# Lookup
class NotFoundError(SzipError):
    pass


# Password gate
class PasswordRequiredError(SzipError):
    pass


class IncorrectPasswordError(SzipError):
    pass


# Codec / filesystem
class CodecError(SzipError):
    pass


class ArchiveIOError(SzipError):
    pass


class ValidationError(SzipError, ValueError):
    pass


class DigestError(SzipError):
    pass


# Extraction
class ExtractionError(SzipError):
    pass


class LimitExceededError(ExtractionError):
    pass


class OperationCancelled(SzipError):
    pass


@dataclass(frozen=True)
class UnsafePathSkipped:
    """An archive entry that was not written because its path is unsafe.

    Never raised; collected on the extraction result and extraction goes on.
    """

    name: str
    reason: str

    def __str__(self) -> str:
        return f"Skipping unsafe path: {self.name!r} ({self.reason})"
