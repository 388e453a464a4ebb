"""
Table store adapters.

The reprice job reads one products table plus the parameter, partner and fee
tables, and writes the products back in bulk. Three backends:

- InMemoryTableStore: dict of tables, records every write (tests, previews)
- CsvTableStore: one <Table>.csv per table in a data directory
- WorkbookTableStore: one sheet per table in an .xlsx workbook

All cells are strings; header row first, data rows after.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pandas as pd

from ..config.settings import Settings, get_settings
from ..errors import StoreError

logger = logging.getLogger(__name__)

Row = dict[str, str]


@dataclass
class TableSnapshot:
    """Header row plus the data rows of one table, as strings."""
    headers: list[str]
    rows: list[list[str]] = field(default_factory=list)

    def records(self) -> list[Row]:
        """Rows keyed by header; short rows are padded with empty cells."""
        width = len(self.headers)
        return [
            dict(zip(self.headers, list(row) + [""] * (width - len(row))))
            for row in self.rows
        ]


def _clean_frame(df: pd.DataFrame) -> TableSnapshot:
    df = df.fillna("")
    headers = [str(c).strip() for c in df.columns]
    rows = [[str(v).strip() for v in row] for row in df.itertuples(index=False, name=None)]
    return TableSnapshot(headers=headers, rows=rows)


class TableStore(ABC):
    """Abstract read/write access to named tables."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @abstractmethod
    def read_table(self, table: str) -> TableSnapshot:
        """Read one table. A missing table is an empty snapshot."""

    @abstractmethod
    def bulk_overwrite(self, table: str, start_row: int, rows: list[list[str]]) -> None:
        """
        Overwrite data rows in one bulk write.

        start_row is 1-based and counts the header row, so 2 is the first data row.
        """

    def read_all_rows(self, table: Optional[str] = None) -> TableSnapshot:
        return self.read_table(table or self.settings.products_table)

    def read_parameters(self) -> list[Row]:
        return self.read_table(self.settings.params_table).records()

    def read_partner_tiers(self) -> list[Row]:
        return self.read_table(self.settings.partner_tiers_table).records()

    def read_channel_fee_tables(self) -> dict[str, list[Row]]:
        s = self.settings
        return {
            'channels': self.read_table(s.channels_table).records(),
            'amazon_tiers': self.read_table(s.amazon_tiers_table).records(),
            'dhl_matrix': self.read_table(s.dhl_matrix_table).records(),
            'dhl_surcharges': self.read_table(s.dhl_surcharges_table).records(),
        }


def _overwrite(snapshot: TableSnapshot, start_row: int, rows: list[list[str]]) -> TableSnapshot:
    if start_row < 2:
        raise StoreError(f"start_row must be >= 2 (row 1 is the header), got {start_row}")
    data = [list(r) for r in snapshot.rows]
    offset = start_row - 2
    while len(data) < offset + len(rows):
        data.append([])
    for i, row in enumerate(rows):
        data[offset + i] = list(row)
    return TableSnapshot(headers=list(snapshot.headers), rows=data)


class InMemoryTableStore(TableStore):
    """Tables held in memory. Every bulk write is recorded in `writes`."""

    def __init__(self, tables: Optional[dict[str, TableSnapshot]] = None,
                 settings: Optional[Settings] = None):
        super().__init__(settings)
        self.tables: dict[str, TableSnapshot] = dict(tables or {})
        self.writes: list[tuple[str, int, list[list[str]]]] = []
        self._lock = threading.Lock()

    @classmethod
    def from_records(cls, tables: dict[str, list[Row]],
                     settings: Optional[Settings] = None) -> 'InMemoryTableStore':
        """Build from header-keyed rows; headers follow first-seen column order."""
        snapshots = {}
        for name, records in tables.items():
            headers: list[str] = []
            for record in records:
                for column in record:
                    if column not in headers:
                        headers.append(column)
            rows = [[str(r.get(h, "")) for h in headers] for r in records]
            snapshots[name] = TableSnapshot(headers=headers, rows=rows)
        return cls(snapshots, settings)

    def read_table(self, table: str) -> TableSnapshot:
        with self._lock:
            snapshot = self.tables.get(table)
            if snapshot is None:
                return TableSnapshot(headers=[])
            return TableSnapshot(headers=list(snapshot.headers),
                                 rows=[list(r) for r in snapshot.rows])

    def bulk_overwrite(self, table: str, start_row: int, rows: list[list[str]]) -> None:
        with self._lock:
            current = self.tables.get(table, TableSnapshot(headers=[]))
            self.tables[table] = _overwrite(current, start_row, rows)
            self.writes.append((table, start_row, [list(r) for r in rows]))


class CsvTableStore(TableStore):
    """One CSV file per table under settings.data_dir."""

    def __init__(self, data_dir: Optional[Path] = None, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.data_dir = Path(data_dir or self.settings.data_dir)

    def _path(self, table: str) -> Path:
        return self.data_dir / f"{table}.csv"

    def read_table(self, table: str) -> TableSnapshot:
        path = self._path(table)
        if not path.exists():
            logger.debug(f"Table {table} not found at {path}")
            return TableSnapshot(headers=[])
        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=False)
        except pd.errors.EmptyDataError:
            return TableSnapshot(headers=[])
        except (OSError, pd.errors.ParserError) as e:
            raise StoreError(f"Failed to read {path}: {e}") from e
        return _clean_frame(df)

    def bulk_overwrite(self, table: str, start_row: int, rows: list[list[str]]) -> None:
        snapshot = _overwrite(self.read_table(table), start_row, rows)
        width = len(snapshot.headers)
        data = [(list(r) + [""] * width)[:width] for r in snapshot.rows]
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            pd.DataFrame(data, columns=snapshot.headers).to_csv(self._path(table), index=False)
        except OSError as e:
            raise StoreError(f"Failed to write {self._path(table)}: {e}") from e
        logger.info(f"Wrote {len(rows)} rows to {self._path(table)}")


class WorkbookTableStore(TableStore):
    """One sheet per table in an .xlsx workbook (openpyxl engine)."""

    def __init__(self, workbook_path: Optional[Path] = None, settings: Optional[Settings] = None):
        super().__init__(settings)
        self.workbook_path = Path(workbook_path or self.settings.workbook_path)
        self._lock = threading.Lock()

    def _read_sheets(self) -> dict[str, pd.DataFrame]:
        if not self.workbook_path.exists():
            return {}
        try:
            return pd.read_excel(self.workbook_path, sheet_name=None, dtype=str, engine='openpyxl')
        except (OSError, ValueError) as e:
            raise StoreError(f"Failed to read {self.workbook_path}: {e}") from e

    def read_table(self, table: str) -> TableSnapshot:
        with self._lock:
            df = self._read_sheets().get(table)
        if df is None:
            return TableSnapshot(headers=[])
        return _clean_frame(df)

    def bulk_overwrite(self, table: str, start_row: int, rows: list[list[str]]) -> None:
        with self._lock:
            sheets = self._read_sheets()
            current = _clean_frame(sheets[table]) if table in sheets else TableSnapshot(headers=[])
            snapshot = _overwrite(current, start_row, rows)
            width = len(snapshot.headers)
            data = [(list(r) + [""] * width)[:width] for r in snapshot.rows]
            sheets[table] = pd.DataFrame(data, columns=snapshot.headers)
            try:
                with pd.ExcelWriter(self.workbook_path, engine='openpyxl') as writer:
                    for name, df in sheets.items():
                        df.to_excel(writer, sheet_name=name, index=False)
            except OSError as e:
                raise StoreError(f"Failed to write {self.workbook_path}: {e}") from e
        logger.info(f"Wrote {len(rows)} rows to {self.workbook_path} [{table}]")


def create_store(settings: Optional[Settings] = None) -> TableStore:
    """Build the store configured by settings.store_backend ("csv" or "xlsx")."""
    settings = settings or get_settings()
    backend = settings.store_backend.lower()
    if backend == 'csv':
        return CsvTableStore(settings=settings)
    if backend in ('xlsx', 'workbook'):
        return WorkbookTableStore(settings=settings)
    if backend == 'memory':
        return InMemoryTableStore(settings=settings)
    raise StoreError(f"Unknown store backend: {settings.store_backend}")
