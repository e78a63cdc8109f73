"""Row resolver: maps sheet rows to archive identifiers.

The BGM sheet lists one track per row; its first column is the archive path
of the track's payload and the optional second column a human-readable title.
"""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence, Tuple, Union

from .archive import ArchiveIdentifier
from .errors import (
    ArchiveError,
    ArchiveErrorBatch,
    InvalidIndexError,
    UnableToCreateSaveFileError,
    UnableToSelectError,
)
from .executor import WorkItem

logger = logging.getLogger(__name__)

FILE_COLUMN = 0
TITLE_COLUMN = 1

LISTING_HEADER = ("index", "file", "title")

Selector = Union[int, str]


class Sheet(ABC):
    """Tabular index of the archive's tracks."""

    @abstractmethod
    def row_count(self) -> int:
        pass

    @abstractmethod
    def read_cell(self, row: int, column: int = FILE_COLUMN) -> str:
        """Return a cell as a string; missing cells read as "".

        Raises:
            ArchiveError: If the row cannot be read
        """
        pass

    def rows(self) -> Iterator[Tuple[int, str, str]]:
        """Yield (index, file, title) for every row."""
        for row in range(self.row_count()):
            yield row, self.read_cell(row, FILE_COLUMN), self.read_cell(row, TITLE_COLUMN)


class CsvSheet(Sheet):
    """Sheet stored as CSV, with an optional ``file,title`` header row."""

    def __init__(self, path: Path):
        self.path = Path(path)
        try:
            with open(self.path, "r", encoding="utf-8", newline="") as f:
                rows = list(csv.reader(f))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise ArchiveError(f"Unable to read sheet {self.path}: {e}") from e

        if rows and rows[0] and rows[0][0].strip().lower() == "file":
            rows = rows[1:]
        self._rows: List[List[str]] = rows

    def row_count(self) -> int:
        return len(self._rows)

    def read_cell(self, row: int, column: int = FILE_COLUMN) -> str:
        if row < 0 or row >= len(self._rows):
            raise ArchiveError(f"Sheet row {row} does not exist")
        cells = self._rows[row]
        return cells[column].strip() if column < len(cells) else ""


def select_row(sheet: Sheet, selector: Selector) -> int:
    """
    Resolve a selector to a sheet row.

    An integer selects itself. A string selects the first row whose file or
    title matches it, ignoring case.

    Raises:
        UnableToSelectError: If no row matches
    """
    if isinstance(selector, int):
        return selector

    wanted = selector.strip().casefold()
    try:
        for row, file_cell, title_cell in sheet.rows():
            if wanted in (file_cell.casefold(), title_cell.casefold()):
                return row
    except ArchiveError as e:
        raise UnableToSelectError(f"Unable to process selection {selector!r}: {e}") from e
    raise UnableToSelectError(f"Unable to process selection {selector!r}")


def resolve_rows(
    sheet: Sheet, indices: Sequence[int], known_skips: Iterable[str] = ()
) -> List[WorkItem]:
    """
    Resolve requested rows into work items, in request order.

    Rows with an empty identifier or a known-skip identifier are dropped.
    Every failure is collected before raising, so the caller sees the whole
    batch of problems at once.

    Raises:
        InvalidIndexError: With every index outside the sheet
        ArchiveErrorBatch: With every row that could not be parsed
    """
    row_count = sheet.row_count()
    invalid = [i for i in indices if i < 0 or i >= row_count]
    if invalid:
        raise InvalidIndexError(invalid)

    skips = {s.strip().lower() for s in known_skips}
    work: List[WorkItem] = []
    errors: List[ArchiveError] = []

    # Each row is processed once even if requested twice
    for index in dict.fromkeys(indices):
        try:
            cell = sheet.read_cell(index, FILE_COLUMN)
            if not cell or cell.lower() in skips:
                logger.debug("Skipping row %d (%r)", index, cell)
                continue
            work.append(WorkItem(index=index, identifier=ArchiveIdentifier.parse(cell)))
        except ArchiveError as e:
            errors.append(e)

    if errors:
        raise ArchiveErrorBatch(errors)
    return work


def write_sheet_csv(sheet: Sheet, output: Path) -> int:
    """
    Write the sheet as an ``index,file,title`` CSV listing, replacing output.

    The listing shows which row index to request for a track.

    Returns:
        Number of rows written

    Raises:
        UnableToCreateSaveFileError: If output cannot be opened for writing
        ArchiveError: If a sheet row cannot be read
    """
    try:
        f = open(output, "w", encoding="utf-8", newline="")
    except OSError as e:
        raise UnableToCreateSaveFileError(f"Unable to create sheet listing {output}: {e}") from e

    count = 0
    with f:
        writer = csv.writer(f)
        writer.writerow(LISTING_HEADER)
        for row, file_cell, title_cell in sheet.rows():
            writer.writerow((row, file_cell, title_cell))
            count += 1

    logger.info("Wrote %d sheet rows to %s", count, output)
    return count
