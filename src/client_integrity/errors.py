"""Exception classes for client import and relationship maintenance.

Row-level problems are reported as diagnostic strings, not exceptions.
"""

from __future__ import annotations


class ClientIntegrityError(Exception):
    """Base exception for this package."""

    pass


class ImportFileError(ClientIntegrityError):
    """Raised when an import file cannot be read as rows of header/value pairs."""

    pass


class StorePersistenceError(ClientIntegrityError):
    """Raised when the client store cannot be read or written."""

    pass


class NoPendingTaskError(ClientIntegrityError, LookupError):
    """Raised when confirming or skipping with no current reciprocal task."""

    pass
