"""
=============================================================================
REQUEST CODEC
=============================================================================

Turns the bytes of one client read into QueryCriteria.

=============================================================================
WIRE FORMAT
=============================================================================

    {
        "Query": {
            "Region": "Punjab",        ← optional
            "Date":   "01-05-2020"     ← optional, DD-MM-YYYY
        }
    }

Key names are compared ignoring case ("query", "REGION" and "date" are all
accepted). Keys are applied in document order, so when several keys fold to
the same name the last one with a usable value wins, whatever its spelling.
A repeated "Query" object is merged into the earlier one:

    {"Query": {"Region": "X"}, "Query": {"Date": "01-05-2020"}}
        → QueryCriteria(region="X", date="01-05-2020")

Values of the wrong type, and nulls, are skipped without clearing what an
earlier key already set.

=============================================================================
BEST-EFFORT DECODING
=============================================================================

decode_request() NEVER raises. Anything it cannot make sense of becomes an
empty field:

    ┌──────────────────────────────────┬──────────────────────────────────┐
    │ Input                            │ Result                           │
    ├──────────────────────────────────┼──────────────────────────────────┤
    │ b"garbage"                       │ QueryCriteria("", "")            │
    │ b"{}"                            │ QueryCriteria("", "")            │
    │ b'{"Query": 5}'                  │ QueryCriteria("", "")            │
    │ b'{"Query": {"Region": 7}}'      │ QueryCriteria("", "")            │
    │ b'{"Query": {"Date": "x"}}'      │ QueryCriteria("", "x")           │
    │ b'{"Query": {"Date": NaN}}'      │ QueryCriteria("", "")            │
    └──────────────────────────────────┴──────────────────────────────────┘

NaN and Infinity are not JSON: a document using them is rejected whole.

Because an empty query selects nothing, a garbled request is answered with
an empty result set, not an error.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from typing import Any


logger = logging.getLogger(__name__)


QUERY_KEY = "Query"
REGION_KEY = "Region"
DATE_KEY = "Date"


@dataclass(frozen=True)
class QueryCriteria:
    """
    Filters extracted from one request.

    An empty string means the filter is absent.
    """

    region: str = ""
    date: str = ""


class _Object(list):
    """A JSON object as its (key, value) pairs, duplicates and order kept."""


def _reject_constant(name: str):
    raise ValueError(f"{name} is not valid JSON")


def _parse(text: str) -> Any:
    return json.loads(text, object_pairs_hook=_Object, parse_constant=_reject_constant)


def _matches(key: str, name: str) -> bool:
    return key == name or key.casefold() == name.casefold()


def _apply_query(obj: _Object, fields: dict):
    for key, value in obj:
        if not isinstance(value, str):
            continue  # wrong type or null: keep what is there
        for name in (REGION_KEY, DATE_KEY):
            if _matches(key, name):
                fields[name] = value


def decode_request(payload: bytes) -> QueryCriteria:
    """
    Decode one request payload.

    Args:
        payload: Raw bytes from a single socket read.

    Returns:
        QueryCriteria with whatever fields could be extracted.
    """
    try:
        document = _parse(payload.decode("utf-8", errors="replace"))
    except (ValueError, RecursionError):
        logger.debug(f"Undecodable request ({len(payload)} bytes), using empty criteria")
        return QueryCriteria()

    if not isinstance(document, _Object):
        return QueryCriteria()

    fields = {}
    for key, value in document:
        if _matches(key, QUERY_KEY) and isinstance(value, _Object):
            _apply_query(value, fields)

    return QueryCriteria(
        region=fields.get(REGION_KEY, ""),
        date=fields.get(DATE_KEY, ""),
    )


def encode_request(criteria: QueryCriteria) -> bytes:
    """
    Build the wire form of a request. Empty fields are omitted.

        encode_request(QueryCriteria(region="X"))  →  b'{"Query":{"Region":"X"}}'
    """
    query = {}
    if criteria.region:
        query[REGION_KEY] = criteria.region
    if criteria.date:
        query[DATE_KEY] = criteria.date

    return json.dumps({QUERY_KEY: query}, separators=(",", ":")).encode("utf-8")
