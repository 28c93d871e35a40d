from __future__ import annotations


class LoaderError(Exception):
    """
    Base class for failures on the map loading path.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NetworkError(LoaderError):
    """Fetch failed in transport or came back with a non-OK status."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(LoaderError):
    """Response body was not the shape we expect."""


class IngestionError(LoaderError):
    """Background ingestion trigger failed."""
