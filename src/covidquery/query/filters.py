"""
=============================================================================
FILTER ENGINE
=============================================================================

Linear-scan selection over the in-memory dataset. There is no index: the
dataset is small and read-only, so every query walks every record.

=============================================================================
SELECTION POLICY
=============================================================================

    ┌───────────────┬────────────────┬─────────────────────────────────────┐
    │ date          │ region         │ result                              │
    ├───────────────┼────────────────┼─────────────────────────────────────┤
    │ present       │ present        │ by date, then that subset by region │
    │ present       │ ""             │ by date                             │
    │ ""            │ present        │ by region                           │
    │ ""            │ ""             │ EMPTY (not the whole dataset!)      │
    └───────────────┴────────────────┴─────────────────────────────────────┘

An empty query returns nothing. Clients that want everything have to ask
for it region by region.

Matching is exact, case-sensitive string equality. Results keep dataset
order; records are returned by reference, never copied.

=============================================================================
DATE FORMS
=============================================================================

Clients send DD-MM-YYYY. reformat_date() flips the segments around the
dashes to produce YYYY-MM-DD, which is what select() compares against
Record.date. select() itself never reformats: callers pass the stored form.

=============================================================================
"""

from typing import Iterable

from ..data import Record
from ..errors import MalformedDateError


DATE_SEPARATOR = "-"


def reformat_date(value: str) -> str:
    """
    Convert a DD-MM-YYYY query date into the YYYY-MM-DD stored form.

    The segments are swapped as-is; no calendar validation happens.

        reformat_date("01-05-2020")  →  "2020-05-01"

    Args:
        value: Date string with exactly two dashes.

    Returns:
        The reassembled date.

    Raises:
        MalformedDateError: If the value does not split into three segments.
    """
    parts = value.split(DATE_SEPARATOR)
    if len(parts) != 3:
        raise MalformedDateError(value)

    day, month, year = parts
    return DATE_SEPARATOR.join((year, month, day))


def select_by_date(records: Iterable[Record], date: str) -> list[Record]:
    """Records whose date equals ``date`` exactly, in order."""
    return [r for r in records if r.date == date]


def select_by_region(records: Iterable[Record], region: str) -> list[Record]:
    """Records whose region equals ``region`` exactly, in order."""
    return [r for r in records if r.region == region]


def select(records: Iterable[Record], date: str = "", region: str = "") -> list[Record]:
    """
    Select records matching the given filters.

    Args:
        records: Records to scan (a Dataset or any iterable of Record).
        date: Stored-form date to match, or "" for no date filter.
        region: Region to match, or "" for no region filter.

    Returns:
        Matching records in their original order. Empty when both
        filters are empty.
    """
    if date and region:
        return select_by_region(select_by_date(records, date), region)

    if date:
        return select_by_date(records, date)

    if region:
        return select_by_region(records, region)

    return []
