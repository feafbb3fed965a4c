"""
Dataset Grid Utilities

Tabular datasets addressed by (row, column), backed by CSV files.
Also parses A1-style range strings into dataset region references.
"""

import csv
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol, Union

from geobatch.utils.errors import ConfigurationError, OrphanedJobError
from geobatch.utils.schemas import DatasetRef

logger = logging.getLogger(__name__)

_A1_CELL = re.compile(r"^([A-Za-z]+)([1-9][0-9]*)$")

CellValue = Union[str, float, int]


class Grid(Protocol):
    """Cell-addressable dataset. Rows and columns are 1-based."""

    def get(self, row: int, column: int) -> str: ...

    def set(self, row: int, column: int, value: CellValue) -> None: ...

    def flush(self) -> None: ...


def column_index(letters: str) -> int:
    """Convert column letters to a 1-based index ('A' -> 1, 'AA' -> 27)."""
    index = 0
    for char in letters.upper():
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index


def parse_a1_range(a1: str) -> tuple[int, int, int, int]:
    """
    Parse an A1 range such as 'A2:C121'.

    Args:
        a1: Range string, two cell references separated by ':'

    Returns:
        (first_row, first_column, row_count, column_count)

    Raises:
        ConfigurationError: If the range cannot be parsed
    """
    parts = a1.strip().split(":")
    if len(parts) != 2:
        raise ConfigurationError(f"Invalid range '{a1}': expected e.g. A2:C100")

    cells = []
    for part in parts:
        match = _A1_CELL.match(part.strip())
        if not match:
            raise ConfigurationError(f"Invalid cell reference '{part}' in range '{a1}'")
        cells.append((int(match.group(2)), column_index(match.group(1))))

    (row_a, col_a), (row_b, col_b) = cells
    first_row, last_row = min(row_a, row_b), max(row_a, row_b)
    first_col, last_col = min(col_a, col_b), max(col_a, col_b)

    return first_row, first_col, last_row - first_row + 1, last_col - first_col + 1


def dataset_from_a1(source: str, a1: str) -> DatasetRef:
    """Build a DatasetRef from a file path and an A1 range."""
    first_row, first_column, row_count, column_count = parse_a1_range(a1)
    return DatasetRef(
        source=source,
        first_row=first_row,
        first_column=first_column,
        row_count=row_count,
        column_count=column_count,
    )


def format_cell(value: CellValue) -> str:
    if isinstance(value, float):
        return repr(value)
    return str(value)


class CsvGrid:
    """CSV file held in memory; rows and columns grow on write.

    Changes reach disk only on flush(), which replaces the file atomically.
    """

    def __init__(self, path: Union[str, Path], rows: list[list[str]]) -> None:
        self.path = Path(path)
        self.rows = rows
        self._dirty = False

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CsvGrid":
        csv_path = Path(path)
        with open(csv_path, "r", encoding="utf-8", newline="") as f:
            rows = [list(row) for row in csv.reader(f)]
        return cls(csv_path, rows)

    def get(self, row: int, column: int) -> str:
        if row < 1 or column < 1:
            raise IndexError(f"Cell ({row}, {column}) out of range")
        if row > len(self.rows):
            return ""
        cells = self.rows[row - 1]
        if column > len(cells):
            return ""
        return cells[column - 1]

    def set(self, row: int, column: int, value: CellValue) -> None:
        if row < 1 or column < 1:
            raise IndexError(f"Cell ({row}, {column}) out of range")
        while len(self.rows) < row:
            self.rows.append([])
        cells = self.rows[row - 1]
        if len(cells) < column:
            cells.extend([""] * (column - len(cells)))
        cells[column - 1] = format_cell(value)
        self._dirty = True

    def flush(self) -> None:
        if not self._dirty:
            return

        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                csv.writer(f).writerows(self.rows)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self._dirty = False
        logger.debug("Grid flushed: %s (%d rows)", self.path, len(self.rows))


def open_csv_grid(dataset: DatasetRef) -> CsvGrid:
    """
    Open the CSV file a dataset reference points at.

    Raises:
        OrphanedJobError: If the file is gone or unreadable
    """
    csv_path = Path(dataset.source)

    if not csv_path.is_file():
        error_msg = f"Dataset not found: {dataset.source}"
        logger.error(error_msg)
        raise OrphanedJobError(error_msg)

    try:
        return CsvGrid.load(csv_path)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        error_msg = f"Failed to read dataset: {dataset.source} - {str(e)}"
        logger.error(error_msg)
        raise OrphanedJobError(error_msg) from e
