from __future__ import annotations


class BrowserError(RuntimeError):
    """Base class for failures surfaced to the user verbatim."""


class DatabaseConnectionError(BrowserError):
    """Raised when the database cannot be reached or rejects the credentials."""


class QueryError(BrowserError):
    """Raised when a statement fails: unknown identifier, bad filter text, permission denied."""


class QueryValidationError(BrowserError):
    """Raised when a request is missing required input, before any network call."""


class StaleRowError(BrowserError):
    """Raised when the row targeted by a cell edit is no longer on the re-queried page."""


class EditInProgressError(BrowserError):
    """Raised when a second cell edit is started while another is still open."""
