"""
=============================================================================
QUERY ACCESS LOG
=============================================================================

One structured log line per answered request, on a dedicated logger so it
can be routed or silenced on its own:

    logging.getLogger("covidquery.access").setLevel(logging.WARNING)

Two formats:

    text   10.0.0.7 [a1b2c3d4/5e6f7a8b] region='Punjab' date='2020-05-20' → 3 rows 412B 0.21ms
    json   {"query_id": "5e6f7a8b", "connection_id": "a1b2c3d4", ...}

The connection id ties together every query sent on one connection.

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, asdict


logger = logging.getLogger("covidquery.access")


@dataclass
class QueryLog:
    """
    Structured log entry for one request.

    Attributes:
        query_id: Random id of this request.
        connection_id: Id of the connection it arrived on.
        client_ip: Client address.
        region: Region filter as received ("" when absent).
        date: Date filter as received ("" when absent).
        matches: Rows in the result set.
        response_bytes: Size of the encoded response.
        duration_ms: Decode-to-encode time.
        timestamp: Local time the request was answered.
    """

    query_id: str
    connection_id: str
    client_ip: str
    region: str
    date: str
    matches: int
    response_bytes: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f"{self.client_ip} [{self.connection_id}/{self.query_id}] "
            f"region={self.region!r} date={self.date!r} → "
            f"{self.matches} rows {self.response_bytes}B {self.duration_ms:.2f}ms"
        )


def new_query_id() -> str:
    """Short random id, 8 hex characters."""
    return str(uuid.uuid4())[:8]


def log_query(entry: QueryLog, log_format: str = "text", level: int = logging.INFO):
    """Emit ``entry`` on the access logger in the given format."""
    if not logger.isEnabledFor(level):
        return

    if log_format == "json":
        logger.log(level, json.dumps(entry.to_dict()))
    else:
        logger.log(level, entry.to_text())


def timestamp() -> str:
    return time.strftime("%d/%b/%Y:%H:%M:%S %z")
