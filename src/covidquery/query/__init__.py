"""
Query evaluation: date reformatting, linear-scan filters and execution.
"""

from .filters import reformat_date, select, select_by_date, select_by_region
from .engine import execute_query

__all__ = [
    "reformat_date",
    "select",
    "select_by_date",
    "select_by_region",
    "execute_query",
]
