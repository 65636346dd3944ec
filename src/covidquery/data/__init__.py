"""
In-memory dataset: the Record type and the CSV loader that builds it.
"""

from .dataset import (
    Record,
    Dataset,
    load_records,
    CENTURY_SUFFIX,
    DEFAULT_DATA_FILE,
    MIN_COLUMNS,
)

__all__ = [
    "Record",
    "Dataset",
    "load_records",
    "CENTURY_SUFFIX",
    "DEFAULT_DATA_FILE",
    "MIN_COLUMNS",
]
