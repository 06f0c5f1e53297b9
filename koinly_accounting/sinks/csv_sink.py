"""
Local CSV sinks.

CsvRowSink      appends every record to one file (header on first write)
MonthlyCsvSink  one YYYY-MM.csv file per month in a directory
"""
import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd

from ..errors import OutputError
from ..models import COLUMNS, AccountingRecord
from .base import MonthBucketedSink, OutputSink

logger = logging.getLogger(__name__)


def ensure_dir(p) -> None:
    Path(p).mkdir(parents=True, exist_ok=True)


def append_rows(path: Path, rows: List[List[str]], header: bool) -> None:
    try:
        ensure_dir(path.parent)
        # dtype=str keeps amounts exactly as formatted
        pd.DataFrame(rows, columns=COLUMNS, dtype=str).to_csv(path, mode="a", header=header, index=False)
    except OSError as e:
        raise OutputError(f"Failed to write {path}: {e}", code="csv") from e


class CsvRowSink(OutputSink):
    def __init__(self, path) -> None:
        self.path = Path(path)

    def emit(self, record: AccountingRecord) -> None:
        header = not self.path.exists() or self.path.stat().st_size == 0
        append_rows(self.path, [record.to_row()], header=header)
        logger.debug("Inserted %s into %s", record.tx_hash, self.path)


class MonthlyCsvSink(MonthBucketedSink):
    def __init__(self, out_dir) -> None:
        super().__init__()
        self.out_dir = Path(out_dir)

    def path_for(self, month: str) -> Path:
        return self.out_dir / f"{month}.csv"

    def find(self, month: str) -> Optional[str]:
        path = self.path_for(month)
        return str(path) if path.exists() else None

    def create(self, month: str, header: List[str]) -> str:
        path = self.path_for(month)
        try:
            ensure_dir(path.parent)
            pd.DataFrame(columns=header).to_csv(path, index=False)
        except OSError as e:
            raise OutputError(f"Failed to create {path}: {e}", code="csv") from e
        return str(path)

    def append(self, destination: str, row: List[str]) -> None:
        append_rows(Path(destination), [row], header=False)
