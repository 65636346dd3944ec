"""
=============================================================================
RESPONSE CODEC
=============================================================================

Serializes a result set into the bytes sent back to the client.

=============================================================================
WIRE FORMAT
=============================================================================

    {"response":[{"date":"...","positive":"...","tests":"...",
                  "expired":"...","admitted":"...","discharged":"...",
                  "region":"..."}, ...]}\\n\\n
                                         └──┘
                                  message terminator

The two trailing newlines are the only message boundary the protocol has:
clients read until they see them. An empty result is exactly:

    {"response":[]}\\n\\n

The JSON is compact (no spaces). The characters < > & and the two Unicode
line separators are written as escape sequences, as the service always
has; every other character is emitted as UTF-8.

=============================================================================
"""

import json
from typing import Iterable

from ..data import Record
from ..errors import ResponseEncodingError


ENVELOPE_KEY = "response"
MESSAGE_TERMINATOR = b"\n\n"

# External field names, in wire order
FIELD_NAMES = ("date", "positive", "tests", "expired", "admitted", "discharged", "region")

# Record attribute behind each external field, same order
_RECORD_ATTRIBUTES = (
    "date",
    "cumulative_test_positive",
    "cumulative_test_performed",
    "expired",
    "admitted",
    "discharged",
    "region",
)

_ESCAPED_CHARS = {ch: "\\u%04x" % ord(ch) for ch in ("<", ">", "&", chr(0x2028), chr(0x2029))}


def record_to_dict(record: Record) -> dict:
    """Map a Record onto its external field names."""
    return {name: getattr(record, attr) for name, attr in zip(FIELD_NAMES, _RECORD_ATTRIBUTES)}


def _escape(text: str) -> str:
    for ch, escaped in _ESCAPED_CHARS.items():
        text = text.replace(ch, escaped)
    return text


def encode_response(records: Iterable[Record]) -> bytes:
    """
    Encode a result set as an enveloped, terminated JSON message.

    Args:
        records: Records to send, in order.

    Returns:
        UTF-8 bytes ending in MESSAGE_TERMINATOR.

    Raises:
        ResponseEncodingError: If a record cannot be serialized.
    """
    try:
        rows = [record_to_dict(r) for r in records]
        body = json.dumps(
            {ENVELOPE_KEY: rows},
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return _escape(body).encode("utf-8") + MESSAGE_TERMINATOR
    except (TypeError, ValueError, AttributeError, UnicodeError) as e:
        raise ResponseEncodingError(f"Cannot encode response: {e}") from e


def decode_response(payload: bytes) -> list[dict]:
    """
    Parse a response message back into row dicts.

    Used by the client. Unlike decode_request() this is strict: a server
    that answers with something else is a protocol error.

    Raises:
        ValueError: If the payload is not a response envelope.
    """
    document = json.loads(payload.decode("utf-8"))
    if not isinstance(document, dict) or not isinstance(document.get(ENVELOPE_KEY), list):
        raise ValueError(f"Not a response envelope: {payload[:80]!r}")
    return document[ENVELOPE_KEY]
