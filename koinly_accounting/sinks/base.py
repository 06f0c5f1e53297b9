# sinks/base.py
from abc import ABC, abstractmethod
import logging
import threading
from typing import Dict, List, Optional

from ..models import COLUMNS, AccountingRecord

logger = logging.getLogger(__name__)


class OutputSink(ABC):
    """
    Base interface for record sinks.
    emit() raises OutputError when the destination cannot be written.
    """

    @abstractmethod
    def emit(self, record: AccountingRecord) -> None:
        ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class MonthBucketedSink(OutputSink):
    """
    Groups records into one destination per UTC month named YYYY-MM.

    The first record of a month looks the destination up; if it is absent it
    is created with the header row. The answer is cached for the rest of the
    run, and emission is serialized per month so concurrent callers cannot
    create the same month twice.
    """

    def __init__(self) -> None:
        self._destinations: Dict[str, str] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @abstractmethod
    def find(self, month: str) -> Optional[str]:
        """Return the destination id for `month`, or None if it does not exist."""
        ...

    @abstractmethod
    def create(self, month: str, header: List[str]) -> str:
        """Create the destination for `month` holding only `header`; return its id."""
        ...

    @abstractmethod
    def append(self, destination: str, row: List[str]) -> None:
        ...

    def _lock_for(self, month: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(month, threading.Lock())

    def destination_for(self, month: str) -> str:
        destination = self._destinations.get(month)
        if destination is None:
            destination = self.find(month)
            if destination is None:
                destination = self.create(month, list(COLUMNS))
                logger.info("Created %s", month)
            self._destinations[month] = destination
        return destination

    def emit(self, record: AccountingRecord) -> None:
        month = record.month
        with self._lock_for(month):
            self.append(self.destination_for(month), record.to_row())
        logger.debug("Inserted %s into %s", record.tx_hash, month)
