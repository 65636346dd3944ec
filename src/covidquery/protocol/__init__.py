"""
=============================================================================
WIRE PROTOCOL
=============================================================================

    Client                                   Server
      │                                         │
      │ ◄──────────── greeting banner ───────── │  on connect
      │                                         │
      │ ── {"Query":{"Region":..,"Date":..}} ─► │  one read = one request
      │                                         │
      │ ◄── {"response":[...]}\\n\\n ─────────── │  terminated by "\\n\\n"
      │                                         │
      │              ... repeat ...             │

There is no length prefix. The server treats the bytes of a single read
as one complete request, so requests must fit in the read buffer and
arrive in one segment.

=============================================================================
"""

from .request import QueryCriteria, decode_request, encode_request
from .response import (
    encode_response,
    decode_response,
    record_to_dict,
    FIELD_NAMES,
    MESSAGE_TERMINATOR,
)

__all__ = [
    "QueryCriteria",
    "decode_request",
    "encode_request",
    "encode_response",
    "decode_response",
    "record_to_dict",
    "FIELD_NAMES",
    "MESSAGE_TERMINATOR",
]
