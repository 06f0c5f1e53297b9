# pylint: disable=missing-docstring
import threading

import pytest

from koinly_accounting.adapters.liquidation_router import TOPIC0, format_tx_hash
from koinly_accounting.chain.scanner import BlockRangeScanner
from koinly_accounting.errors import OutputError, ProviderError
from koinly_accounting.pipeline import Pipeline
from koinly_accounting.sinks.base import OutputSink

from conftest import (
    FEB_1_2024,
    JAN_1_2024,
    OTHER_SENDER,
    PUSDC,
    ROUTER,
    FakeProvider,
    FakeResolver,
    make_log,
    make_receipt,
)

START_TS, END_TS = 1000, 5000


class ListSink(OutputSink):
    def __init__(self, fail=False, on_emit=None):
        self.records = []
        self.fail = fail
        self.on_emit = on_emit

    def emit(self, record):
        if self.fail:
            raise OutputError("disk full", code="csv")
        self.records.append(record)
        if self.on_emit:
            self.on_emit(record)


def chain_fixture():
    logs = [
        # returned out of order on purpose
        make_log(2100, 0, 3, pair=PUSDC, amount_out=1_000_000),
        make_log(150, 1, 2, sender=OTHER_SENDER),
        make_log(150, 0, 1),
    ]
    # not a SwappedExactAmountOut log
    junk = make_log(160, 0, 4)
    junk["topics"] = junk["topics"][:1]
    logs.append(junk)

    blocks = {150: {"timestamp": JAN_1_2024}, 2100: {"timestamp": FEB_1_2024}}
    receipts = {format_tx_hash(n): make_receipt() for n in (1, 2, 3)}
    return FakeProvider(logs=logs, blocks=blocks, receipts=receipts)


def make_pipeline(adapter, provider, sink, **kwargs):
    scanner = BlockRangeScanner(
        provider,
        FakeResolver({START_TS: 100, END_TS: 2100}),
        ROUTER,
        TOPIC0,
        window_size=2000,
    )
    return Pipeline(scanner, adapter, provider, sink, **kwargs)


def test_end_to_end_window(adapter):
    provider, sink = chain_fixture(), ListSink()
    stats = make_pipeline(adapter, provider, sink).run_window(START_TS, END_TS)

    assert provider.get_logs_calls == [(100, 2099), (2100, 2100)]
    assert [r.tx_hash for r in sink.records] == [format_tx_hash(1), format_tx_hash(3)]
    assert [r.month for r in sink.records] == ["2024-01", "2024-02"]
    assert sink.records[1].amount_out_symbol == "USDC"
    assert (stats.chunks, stats.logs, stats.records) == (2, 4, 2)
    assert (stats.skipped_mismatch, stats.skipped_sender) == (1, 1)
    assert not stats.cancelled


def test_records_follow_block_and_log_order(adapter):
    logs = [make_log(300, 2, 3), make_log(200, 0, 1), make_log(300, 1, 2)]
    blocks = {200: {"timestamp": JAN_1_2024}, 300: {"timestamp": JAN_1_2024 + 12}}
    receipts = {format_tx_hash(n): make_receipt() for n in (1, 2, 3)}
    provider, sink = FakeProvider(logs, blocks, receipts), ListSink()
    make_pipeline(adapter, provider, sink).run(100, 2100)
    assert [r.tx_hash for r in sink.records] == [format_tx_hash(n) for n in (1, 2, 3)]


def test_context_workers_keep_order(adapter):
    logs = [make_log(100 + i, 0, i + 1) for i in range(20)]
    blocks = {100 + i: {"timestamp": JAN_1_2024 + i} for i in range(20)}
    receipts = {format_tx_hash(i + 1): make_receipt() for i in range(20)}
    provider, sink = FakeProvider(logs, blocks, receipts), ListSink()
    make_pipeline(adapter, provider, sink, context_workers=4).run(100, 2100)
    assert [r.tx_hash for r in sink.records] == [format_tx_hash(i + 1) for i in range(20)]


def test_output_error_aborts_by_default(adapter):
    with pytest.raises(OutputError):
        make_pipeline(adapter, chain_fixture(), ListSink(fail=True)).run(100, 2100)


def test_output_error_skip_keeps_going(adapter):
    stats = make_pipeline(adapter, chain_fixture(), ListSink(fail=True), on_output_error="skip").run(100, 2100)
    assert stats.output_errors == 2
    assert stats.records == 0
    assert stats.chunks == 2


def test_cancel_before_start(adapter):
    provider, stop = chain_fixture(), threading.Event()
    stop.set()
    stats = make_pipeline(adapter, provider, ListSink(), stop_event=stop).run(100, 2100)
    assert stats.cancelled
    assert stats.chunks == 0
    assert provider.get_logs_calls == []


def test_cancel_between_chunks(adapter):
    stop = threading.Event()
    sink = ListSink(on_emit=lambda r: stop.set())
    provider = chain_fixture()
    stats = make_pipeline(adapter, provider, sink, stop_event=stop).run(100, 2100)
    assert stats.cancelled
    assert len(sink.records) == 1
    assert provider.get_logs_calls == [(100, 2099)]


def test_stop_during_rpc_retry_counts_as_cancelled(adapter):
    stop = threading.Event()

    class StoppingProvider(FakeProvider):
        def get_logs(self, address, topic, from_block, to_block):
            stop.set()
            raise ProviderError("eth_getLogs cancelled", code="cancelled")

    stats = make_pipeline(adapter, StoppingProvider(), ListSink(), stop_event=stop).run(100, 2100)
    assert stats.cancelled
    assert stats.chunks == 0


def test_provider_error_without_stop_propagates(adapter):
    class BrokenProvider(FakeProvider):
        def get_logs(self, address, topic, from_block, to_block):
            raise ProviderError("eth_getLogs failed", code="rpc")

    with pytest.raises(ProviderError):
        make_pipeline(adapter, BrokenProvider(), ListSink()).run(100, 2100)


def test_progress_bar_counts_chunks(adapter, capsys):
    stats = make_pipeline(adapter, chain_fixture(), ListSink(), progress=True).run(100, 2100)
    assert stats.chunks == 2
    assert "2/2" in capsys.readouterr().err
