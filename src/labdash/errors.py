"""Error hierarchy for metrics fetching."""

from __future__ import annotations


class LabDashError(Exception):
    """Base class for labdash errors."""


class FetchError(LabDashError):
    """A poll did not yield a usable document."""


class TransportError(FetchError):
    """Connection refused, DNS failure, timeout or another network fault."""


class ProtocolError(FetchError):
    """The endpoint answered with a non-success HTTP status."""

    def __init__(self, status_code: int, message: str | None = None) -> None:
        super().__init__(message or f"HTTP {status_code}")
        self.status_code = status_code


class MalformedBodyError(FetchError):
    """The response body is not a JSON object."""


__all__ = [
    "LabDashError",
    "FetchError",
    "TransportError",
    "ProtocolError",
    "MalformedBodyError",
]
