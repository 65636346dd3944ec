"""
=============================================================================
DATASET LOADER
=============================================================================

Reads the COVID statistics CSV once at startup and turns every row into an
immutable Record. The whole file is held in memory for the process lifetime
and shared, without locks, by every connection handler.

=============================================================================
FILE FORMAT
=============================================================================

The source file is wider than what we keep. Columns are picked by fixed
zero-based position:

    index:   0   1   2         3       4     5           6        ...  9       10
            ┌───┬───┬─────────┬───────┬─────┬───────────┬────────┬───┬────────┬──────────┐
            │ . │ . │positive │ tests │date │discharged │expired │ . │ region │ admitted │
            └───┴───┴─────────┴───────┴─────┴───────────┴────────┴───┴────────┴──────────┘

There is NO header row to skip: the first line is data like every other.

Every value stays text. Nothing is coerced to a number, nothing is
validated beyond "the row is wide enough".

=============================================================================
THE CENTURY SUFFIX
=============================================================================

The date column carries a truncated year. We append the literal "20" to
every date cell, which is only correct for dates in the 2000s. Queries are
compared against this stored form after reformatting (see query.filters).

=============================================================================
"""

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Union

from ..errors import DatasetFormatError


logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────
# COLUMN LAYOUT
# ─────────────────────────────────────────────────────────────────────────

POSITIVE_COLUMN = 2
TESTS_COLUMN = 3
DATE_COLUMN = 4
DISCHARGED_COLUMN = 5
EXPIRED_COLUMN = 6
REGION_COLUMN = 9
ADMITTED_COLUMN = 10

MIN_COLUMNS = ADMITTED_COLUMN + 1

# Only valid while every date in the file falls in 2000-2099.
CENTURY_SUFFIX = "20"

DEFAULT_DATA_FILE = "covid_final_data.csv"


@dataclass(frozen=True)
class Record:
    """
    One row of the dataset.

    Frozen so that no handler can mutate the shared snapshot.

    Attributes:
        date: Date cell with CENTURY_SUFFIX appended.
        cumulative_test_positive: Cumulative positive tests (text).
        cumulative_test_performed: Cumulative tests performed (text).
        expired: Deaths (text).
        admitted: Admissions (text).
        discharged: Discharges (text).
        region: Region name, matched exactly by queries.
    """

    date: str
    cumulative_test_positive: str
    cumulative_test_performed: str
    expired: str
    admitted: str
    discharged: str
    region: str

    @classmethod
    def from_row(cls, row: list[str]) -> "Record":
        """Build a Record from a raw CSV row (at least MIN_COLUMNS wide)."""
        return cls(
            date=row[DATE_COLUMN] + CENTURY_SUFFIX,
            cumulative_test_positive=row[POSITIVE_COLUMN],
            cumulative_test_performed=row[TESTS_COLUMN],
            expired=row[EXPIRED_COLUMN],
            admitted=row[ADMITTED_COLUMN],
            discharged=row[DISCHARGED_COLUMN],
            region=row[REGION_COLUMN],
        )


@dataclass(frozen=True)
class Dataset:
    """
    Immutable, ordered snapshot of every Record in the source file.

    Behaves like a read-only sequence, so the filter functions can take
    either a Dataset or a plain list of records.
    """

    records: tuple[Record, ...] = ()
    source: str = field(default="", compare=False)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records)

    def __getitem__(self, index):
        return self.records[index]

    @property
    def regions(self) -> list[str]:
        """Distinct regions in first-seen order."""
        return list(dict.fromkeys(r.region for r in self.records))


def _read_rows(path: Path) -> Iterator[tuple[int, list[str]]]:
    """
    Yield (line_number, row) for every non-blank CSV row.

    The file is opened with newline="" as the csv module requires, and
    undecodable bytes are replaced rather than aborting the load.
    """
    with open(path, newline="", encoding="utf-8", errors="replace") as f:
        reader = csv.reader(f, strict=True)
        try:
            for row in reader:
                if not row:
                    continue  # blank line
                yield reader.line_num, row
        except csv.Error as e:
            raise DatasetFormatError(str(e), str(path), reader.line_num) from e


def load_records(path: Union[str, Path] = DEFAULT_DATA_FILE) -> Dataset:
    """
    Load the dataset file into memory.

    Args:
        path: CSV file to read. Relative paths resolve against the
              current working directory.

    Returns:
        Dataset holding one Record per row, in file order.

    Raises:
        OSError: If the file cannot be opened.
        DatasetFormatError: If a row is narrower than MIN_COLUMNS, a row's
                            width differs from the first row's, or the CSV
                            quoting is malformed.
    """
    path = Path(path)
    records: list[Record] = []
    expected_width = None

    for line, row in _read_rows(path):
        # Every row must be as wide as the first one
        if expected_width is None:
            expected_width = len(row)
        elif len(row) != expected_width:
            raise DatasetFormatError(
                f"wrong number of fields: expected {expected_width}, got {len(row)}",
                str(path),
                line,
            )

        if len(row) < MIN_COLUMNS:
            raise DatasetFormatError(
                f"row has {len(row)} columns, need at least {MIN_COLUMNS}",
                str(path),
                line,
            )

        records.append(Record.from_row(row))

    logger.info(f"Loaded {len(records)} records from {path}")
    return Dataset(records=tuple(records), source=str(path))
