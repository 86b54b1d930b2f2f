"""CSV catalog feed."""

from __future__ import annotations

import csv
import logging
import pathlib
from dataclasses import dataclass
from typing import Any, BinaryIO, Iterator, Mapping

from catalog_sync.ingest.models import IncomingRecord

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 10_000

# record field -> feed columns, first non-empty wins
DEFAULT_COLUMNS: dict[str, tuple[str, ...]] = {
    "identifier": ("Item",),
    "name": ("Description",),
    "price": ("MSRP", "ContractPrice"),
    "line": ("ProductLine",),
    "category_path": ("Categories",),
    "inventory": ("Qty_Avail",),
    "status": ("Status",),
    "item_type": ("Item_Type",),
    "description": ("Description",),
}


class FeedRowError(ValueError):
    pass


@dataclass(slots=True)
class FeedStats:
    total_rows: int = 0
    records: int = 0
    errors: int = 0


def clean_row(row: Mapping[str | None, Any]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for key, value in row.items():
        if key is None:
            # csv.DictReader puts surplus cells under a None key
            raise FeedRowError(f"row has {len(value)} more cells than the header")
        if value is None:
            continue
        text = value.strip() if isinstance(value, str) else str(value)
        if text:
            cleaned[key.strip()] = text
    return cleaned


def row_to_record(row: Mapping[str, str], columns: Mapping[str, tuple[str, ...]] = DEFAULT_COLUMNS) -> IncomingRecord:
    values = {name: next((row[c] for c in candidates if row.get(c)), None) for name, candidates in columns.items()}
    return IncomingRecord(attributes=dict(row), **values)


class CsvFeed:
    """Lazy, restartable record stream over a CSV export.

    Each iteration reopens the file. Malformed rows, including rows the csv
    parser rejects and rows that do not decode, are logged, counted in
    ``stats`` and skipped.
    """

    def __init__(
        self,
        path: pathlib.Path | str,
        *,
        columns: Mapping[str, tuple[str, ...]] = DEFAULT_COLUMNS,
        encoding: str = "utf-8-sig",
    ) -> None:
        self.path = pathlib.Path(path)
        self.columns = columns
        self.encoding = encoding
        self.stats = FeedStats()
        self._undecodable = False

    def __iter__(self) -> Iterator[IncomingRecord]:
        self.stats = FeedStats()
        logger.info("Reading feed %s", self.path)
        with self.path.open("rb") as handle:
            reader = csv.DictReader(self._lines(handle))
            while True:
                self._undecodable = False
                try:
                    row = next(reader)
                except StopIteration:
                    break
                except csv.Error as exc:
                    self.stats.total_rows += 1
                    self._skip(reader.line_num, exc)
                    continue
                self.stats.total_rows += 1
                try:
                    if self._undecodable:
                        raise FeedRowError(f"row is not valid {self.encoding}")
                    cleaned = clean_row(row)
                    if not cleaned:
                        continue
                    record = row_to_record(cleaned, self.columns)
                except (FeedRowError, TypeError, ValueError) as exc:
                    self._skip(reader.line_num, exc)
                    continue
                self.stats.records += 1
                if self.stats.total_rows % PROGRESS_EVERY == 0:
                    logger.info("Processed %s rows...", self.stats.total_rows)
                yield record
        logger.info(
            "Feed complete: %s rows, %s records, %s errors",
            self.stats.total_rows,
            self.stats.records,
            self.stats.errors,
        )

    def _lines(self, handle: BinaryIO) -> Iterator[str]:
        # decoded line by line so one bad byte only spoils its own row
        for raw in handle:
            try:
                yield raw.decode(self.encoding)
            except UnicodeDecodeError:
                self._undecodable = True
                yield raw.decode(self.encoding, errors="replace")

    def _skip(self, line_num: int, exc: Exception) -> None:
        self.stats.errors += 1
        logger.warning("Skipping row at line %s: %s", line_num, exc)
