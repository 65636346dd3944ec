"""
Query execution: criteria in, matching records out.

Glues the request codec's output to the filter engine. The only step
between them is date reformatting, applied when a date is present.
"""

from typing import Iterable

from ..data import Record
from ..protocol.request import QueryCriteria
from .filters import reformat_date, select


def execute_query(records: Iterable[Record], criteria: QueryCriteria) -> list[Record]:
    """
    Run one query against the dataset.

    Args:
        records: The shared dataset.
        criteria: Decoded request filters (query-form date).

    Returns:
        Matching records in dataset order.

    Raises:
        MalformedDateError: If criteria.date is present but not DD-MM-YYYY.
    """
    date = reformat_date(criteria.date) if criteria.date else ""
    return select(records, date, criteria.region)
