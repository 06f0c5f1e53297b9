"""
Scan driver: block window -> chunks -> logs -> records -> sink.

One logical worker walks the chunks in ascending block order. Inside a chunk
the block/receipt lookups for matching logs may run on a thread pool, but
records are always emitted one at a time in (blockNumber, logIndex) order.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from tqdm import tqdm

from .adapters.liquidation_router import LiquidationRouterAdapter, to_int
from .chain.provider import ChainProvider
from .chain.scanner import BlockRangeScanner, count_chunks
from .errors import OutputError, ProviderError
from .models import AccountingRecord, DecodedSwapEvent
from .sinks.base import OutputSink

logger = logging.getLogger(__name__)


@dataclass
class ScanStats:
    chunks: int = 0
    logs: int = 0
    records: int = 0
    skipped_mismatch: int = 0
    skipped_sender: int = 0
    output_errors: int = 0
    cancelled: bool = False


def log_order(raw_log: Mapping[str, Any]) -> Tuple[int, int]:
    return to_int(raw_log.get("blockNumber")), to_int(raw_log.get("logIndex") or 0)


class Pipeline:
    def __init__(
        self,
        scanner: BlockRangeScanner,
        adapter: LiquidationRouterAdapter,
        provider: ChainProvider,
        sink: OutputSink,
        context_workers: int = 1,
        on_output_error: str = "abort",
        stop_event: Optional[threading.Event] = None,
        progress: bool = False,
    ):
        self.scanner = scanner
        self.adapter = adapter
        self.provider = provider
        self.sink = sink
        self.context_workers = max(1, int(context_workers))
        self.on_output_error = on_output_error
        self.stop_event = stop_event or threading.Event()
        self.progress = progress

    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def run_window(self, start_timestamp: int, end_timestamp: int) -> ScanStats:
        from_block, to_block = self.scanner.resolve_window(start_timestamp, end_timestamp)
        return self.run(from_block, to_block)

    def run(self, from_block: int, to_block: int) -> ScanStats:
        stats = ScanStats()
        total = count_chunks(from_block, to_block, self.scanner.window_size)
        logger.info(
            "Scanning router %s over blocks [%s, %s] in %d chunks",
            self.scanner.address, f"{from_block:,}", f"{to_block:,}", total,
        )

        executor = ThreadPoolExecutor(max_workers=self.context_workers) if self.context_workers > 1 else None
        bar = tqdm(total=total, desc="Scanning", unit="chunk", disable=not self.progress)
        try:
            for start, end in self.scanner.chunks(from_block, to_block):
                if self.stopped():
                    stats.cancelled = True
                    break
                emitted = self._run_chunk(start, end, stats, executor)
                stats.chunks += 1
                bar.update(1)
                bar.set_postfix(records=stats.records)
                logger.debug(
                    "[%d/%d] [%s, %s]: %d records",
                    stats.chunks, total, f"{start:,}", f"{end:,}", emitted,
                )
        except ProviderError as e:
            # retries give up early once the stop event is set
            if e.code != "cancelled" or not self.stopped():
                raise
            stats.cancelled = True
        finally:
            bar.close()
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)

        if stats.cancelled:
            logger.warning("Scan cancelled after %d/%d chunks", stats.chunks, total)
        return stats

    def _run_chunk(self, start: int, end: int, stats: ScanStats, executor) -> int:
        logs = sorted(self.scanner.fetch_logs(start, end), key=log_order)
        stats.logs += len(logs)

        events = self._match(logs, stats)
        emitted = 0
        for record in self._records(events, executor):
            if self.stopped():
                stats.cancelled = True
                break
            if self._emit(record, stats):
                emitted += 1
        return emitted

    def _match(self, logs: List[Mapping[str, Any]], stats: ScanStats) -> List[DecodedSwapEvent]:
        events = []
        for raw in logs:
            event = self.adapter.decode_event(raw)
            if event is None:
                stats.skipped_mismatch += 1
                continue
            if not self.adapter.is_from_sender(event):
                stats.skipped_sender += 1
                continue
            events.append(event)
        return events

    def _build(self, event: DecodedSwapEvent) -> AccountingRecord:
        block = self.provider.get_block(event.block_number)
        receipt = self.provider.get_transaction_receipt(event.tx_hash)
        return self.adapter.normalize(event, block, receipt)

    def _records(self, events: List[DecodedSwapEvent], executor) -> Iterator[AccountingRecord]:
        if executor is None:
            for event in events:
                yield self._build(event)
        else:
            # map() yields in submission order
            yield from executor.map(self._build, events)

    def _emit(self, record: AccountingRecord, stats: ScanStats) -> bool:
        try:
            self.sink.emit(record)
        except OutputError as e:
            stats.output_errors += 1
            logger.error("Failed to write %s: %s", record.tx_hash, e)
            if self.on_output_error == "abort":
                raise
            return False
        stats.records += 1
        return True
