# runner.py
"""
Config-driven liquidation ledger export.
- Reads settings from the environment / .env (CLI flags override)
- Loads the static chain tables and builds the router adapter for the chain
- Resolves the time window to blocks, scans it in chunks and writes one
  Koinly row per liquidation swap made by SENDER_ADDRESS
"""

import argparse
import logging
import os
import signal
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .adapters.liquidation_router import LiquidationRouterAdapter
from .chain.explorer import BinarySearchBlockResolver, EtherscanClient
from .chain.provider import ChainProvider, make_web3
from .chain.scanner import BlockRangeScanner
from .config.registry import AssetRegistry
from .config.settings import OUTPUT_CHOICES, Settings
from .errors import ConfigurationError, KoinlyAccountingError
from .pipeline import Pipeline
from .sinks.base import OutputSink
from .sinks.csv_sink import CsvRowSink, MonthlyCsvSink
from .sinks.google_drive import GoogleDriveSink

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def die(msg: str, code: int = 1) -> int:
    print(f"[ERROR] {msg}", file=sys.stderr)
    return code


def setup_logging(level: str = "INFO", log_file: Optional[str] = "output.log") -> None:
    """Console + file logging for the package; third-party loggers stay at WARNING."""
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")
    root = logging.getLogger()
    root.setLevel(logging.WARNING)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logging.getLogger("koinly_accounting").setLevel(getattr(logging, level.upper(), logging.INFO))


def parse_date(d: str) -> int:
    return int(datetime.fromisoformat(d).replace(tzinfo=timezone.utc).timestamp())


def build_sink(settings: Settings) -> OutputSink:
    if settings.output == "csv":
        return CsvRowSink(settings.output_path)
    if settings.output == "monthly-csv":
        return MonthlyCsvSink(settings.output_path)
    if settings.output == "google-drive":
        if settings.google_drive is None:
            raise ConfigurationError("google-drive output requires Google Drive credentials")
        return GoogleDriveSink.from_config(
            settings.google_drive,
            max_retries=settings.rpc_max_retries,
            backoff_seconds=settings.rpc_backoff_seconds,
        )
    raise ConfigurationError(f"Unknown output: {settings.output}")


def build_pipeline(
    settings: Settings,
    registry: AssetRegistry,
    sink: OutputSink,
    stop_event: Optional[threading.Event] = None,
) -> Pipeline:
    web3 = make_web3(settings.http_rpc)
    provider = ChainProvider(
        web3,
        max_retries=settings.rpc_max_retries,
        backoff_seconds=settings.rpc_backoff_seconds,
        sleep=stop_event.wait if stop_event is not None else time.sleep,
        stop_event=stop_event,
    )
    adapter = LiquidationRouterAdapter(registry, settings.chain_id, settings.sender, codec=web3.codec)
    market = adapter.resolve_market()

    if settings.etherscan_api_key:
        resolver = EtherscanClient(
            settings.chain_id,
            settings.etherscan_api_key,
            max_retries=settings.rpc_max_retries,
            backoff_seconds=settings.rpc_backoff_seconds,
        )
    else:
        logger.info("No ETHERSCAN_API_KEY set; resolving timestamps by bisecting block headers")
        resolver = BinarySearchBlockResolver(provider)

    scanner = BlockRangeScanner(
        provider,
        resolver,
        address=market["router"],
        topic=market["topic"],
        window_size=settings.block_window,
    )
    return Pipeline(
        scanner,
        adapter,
        provider,
        sink,
        context_workers=settings.context_workers,
        on_output_error=settings.on_output_error,
        stop_event=stop_event,
        progress=True,
    )


def env_overrides(args: argparse.Namespace) -> Dict[str, str]:
    overrides = {}
    if args.from_date and args.start_timestamp is not None:
        raise ConfigurationError("Use either --from-date or --start-timestamp, not both.")
    if args.to_date and args.end_timestamp is not None:
        raise ConfigurationError("Use either --to-date or --end-timestamp, not both.")
    try:
        if args.from_date:
            overrides["START_TIMESTAMP"] = str(parse_date(args.from_date))
        if args.to_date:
            overrides["END_TIMESTAMP"] = str(parse_date(args.to_date))
    except ValueError as e:
        raise ConfigurationError(f"Dates must be YYYY-MM-DD: {e}") from e
    if args.start_timestamp is not None:
        overrides["START_TIMESTAMP"] = str(args.start_timestamp)
    if args.end_timestamp is not None:
        overrides["END_TIMESTAMP"] = str(args.end_timestamp)
    if args.output:
        overrides["OUTPUT"] = args.output
    if args.output_path:
        overrides["OUTPUT_PATH"] = args.output_path
    if args.block_window is not None:
        overrides["BLOCK_WINDOW"] = str(args.block_window)
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Export liquidation router swaps as Koinly ledger rows.")
    ap.add_argument("--start-timestamp", type=int, help="unix seconds (overrides START_TIMESTAMP)")
    ap.add_argument("--end-timestamp", type=int, help="unix seconds (overrides END_TIMESTAMP)")
    ap.add_argument("--from-date", type=str, help="YYYY-MM-DD UTC (exclusive with --start-timestamp)")
    ap.add_argument("--to-date", type=str, help="YYYY-MM-DD UTC (exclusive with --end-timestamp)")
    ap.add_argument("--output", choices=OUTPUT_CHOICES, help="overrides OUTPUT")
    ap.add_argument("--output-path", type=str, help="overrides OUTPUT_PATH")
    ap.add_argument("--block-window", type=int, help="blocks per eth_getLogs call (overrides BLOCK_WINDOW)")
    ap.add_argument("--chains", type=str, default=None, help="chain tables YAML (default: bundled chains.yaml)")
    ap.add_argument("--log-file", type=str, default="output.log")
    args = ap.parse_args(argv)

    load_dotenv()
    try:
        settings = Settings.from_env({**os.environ, **env_overrides(args)})
        registry = AssetRegistry.load(args.chains)
        chain = registry.chain(settings.chain_id)
    except ConfigurationError as e:
        return die(e.message)

    setup_logging(settings.log_level, args.log_file)
    print(f"[info] chain {chain.chain_id} ({chain.name}), router {chain.router}")
    print(f"[info] sender {settings.sender}, window {settings.start_timestamp}..{settings.end_timestamp}")

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())

    try:
        with build_sink(settings) as sink:
            pipeline = build_pipeline(settings, registry, sink, stop_event=stop_event)
            stats = pipeline.run_window(settings.start_timestamp, settings.end_timestamp)
    except KeyboardInterrupt:
        print("[warn] interrupted; records written so far are kept", file=sys.stderr)
        return 130
    except KoinlyAccountingError as e:
        if stop_event.is_set():
            print(f"[warn] stopped: {e.message}", file=sys.stderr)
            return 130
        return die(e.message)

    print(
        f"[ok] {stats.records} records from {stats.logs} logs in {stats.chunks} chunks "
        f"(skipped: {stats.skipped_mismatch} non-matching, {stats.skipped_sender} other senders, "
        f"{stats.output_errors} write errors)"
    )
    return 130 if stats.cancelled else 0


if __name__ == "__main__":
    sys.exit(main())
