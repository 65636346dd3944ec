"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the service can raise on purpose lives here, grouped by how
far its damage is allowed to spread:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  STARTUP FATAL       DatasetFormatError, ListenerError, OSError      │
    │  ──────────────      The process cannot serve anything useful.       │
    │                      Raised to the entry point, which exits(1).      │
    ├─────────────────────────────────────────────────────────────────────┤
    │  CONNECTION FATAL    OSError / ConnectionError on a client socket    │
    │  ────────────────    Only that client is dropped.                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │  MALFORMED REQUEST   MalformedDateError (decode never raises)        │
    │  ─────────────────   Degrades to an empty result set.                │
    ├─────────────────────────────────────────────────────────────────────┤
    │  ENCODING FAULT      ResponseEncodingError                           │
    │  ──────────────      Ends the response cycle for that client.        │
    └─────────────────────────────────────────────────────────────────────┘

Library code raises; only ``__main__`` decides to terminate the process.

=============================================================================
"""


class QueryServiceError(Exception):
    """Base class for all errors raised by covidquery."""


class DatasetFormatError(QueryServiceError):
    """
    The dataset file does not have the expected column structure.

    Attributes:
        path: File being loaded.
        line: 1-based line number of the offending row, if known.
    """

    def __init__(self, message: str, path: str = "", line: int = 0):
        self.path = path
        self.line = line
        location = f"{path}:{line}: " if path and line else ""
        super().__init__(f"{location}{message}")


class MalformedDateError(QueryServiceError, ValueError):
    """A query date is not of the form DD-MM-YYYY."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Malformed date {value!r}: expected DD-MM-YYYY")


class ResponseEncodingError(QueryServiceError):
    """A result set could not be serialized."""


class ListenerError(QueryServiceError):
    """The listening socket failed while accepting connections."""
