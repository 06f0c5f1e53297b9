"""
Web3-backed chain provider with retry/backoff.

Wraps the three JSON-RPC reads the export needs:
    eth_getLogs                (router address + event topic, block window)
    eth_getBlockByNumber       (block timestamp)
    eth_getTransactionReceipt  (gasUsed, effectiveGasPrice, l1Fee)

Each call is retried with exponential backoff (1s, 2s, 4s... by default)
and raised as ProviderError once attempts are exhausted. With a stop event,
the retry loop gives up (code "cancelled") as soon as the event is set; a
request already on the wire still runs to its HTTP timeout.
"""

import logging
import threading
import time
from typing import Any, Callable, List, Mapping, Optional

from web3 import Web3, HTTPProvider

from ..errors import ProviderError

logger = logging.getLogger(__name__)

RATE_LIMIT_PHRASES = [
    "too many requests",
    "rate limit",
    "exceeded",
    "429",
    "compute units",
]


def make_web3(rpc_url: str, timeout: int = 60) -> Web3:
    return Web3(HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


def is_rate_limit(error: Exception) -> bool:
    msg = str(error).lower()
    return any(phrase in msg for phrase in RATE_LIMIT_PHRASES)


class ChainProvider:
    def __init__(
        self,
        web3: Web3,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        stop_event: Optional[threading.Event] = None,
    ):
        self.web3 = web3
        self.max_retries = max(1, int(max_retries))
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep
        self.stop_event = stop_event

    def _call(self, label: str, fn: Callable[[], Any]) -> Any:
        for attempt in range(self.max_retries):
            try:
                return fn()
            except Exception as e:
                if attempt == self.max_retries - 1:
                    raise ProviderError(
                        f"{label} failed after {self.max_retries} attempts: {e}",
                        code="rate_limit" if is_rate_limit(e) else "rpc",
                    ) from e
                wait_time = self.backoff_seconds * (2 ** attempt)
                logger.warning(
                    "%s failed (%s), retrying in %ss... (attempt %d/%d)",
                    label, e, wait_time, attempt + 1, self.max_retries,
                )
                if wait_time > 0:
                    self._sleep(wait_time)
                if self.stop_event is not None and self.stop_event.is_set():
                    raise ProviderError(f"{label} cancelled", code="cancelled") from e

    @property
    def block_number(self) -> int:
        return int(self._call("eth_blockNumber", lambda: self.web3.eth.block_number))

    def get_logs(self, address: str, topic: str, from_block: int, to_block: int) -> List[Mapping[str, Any]]:
        flt = {
            "fromBlock": int(from_block),
            "toBlock": int(to_block),
            "address": Web3.to_checksum_address(address),
            "topics": [topic],
        }
        return list(self._call(f"eth_getLogs [{from_block:,}, {to_block:,}]", lambda: self.web3.eth.get_logs(flt)))

    def get_block(self, block_number: int) -> Mapping[str, Any]:
        block = self._call(f"eth_getBlockByNumber {block_number}", lambda: self.web3.eth.get_block(block_number))
        if block is None:
            raise ProviderError(f"Block {block_number} not found", code="missing_block")
        return block

    def get_block_timestamp(self, block_number: int) -> int:
        return int(self.get_block(block_number)["timestamp"])

    def get_transaction_receipt(self, tx_hash: str) -> Mapping[str, Any]:
        receipt = self._call(
            f"eth_getTransactionReceipt {tx_hash}",
            lambda: self.web3.eth.get_transaction_receipt(tx_hash),
        )
        if receipt is None:
            raise ProviderError(f"Receipt for {tx_hash} not found", code="missing_receipt")
        return receipt
