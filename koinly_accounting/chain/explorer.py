# explorer.py
# ------------------------------------------------------------
# Timestamp -> block number resolution.
#
# - EtherscanClient: Etherscan v2 multichain API
#   (module=block, action=getblocknobytime, closest=before)
# - BinarySearchBlockResolver: bisects block timestamps over the RPC,
#   used when no explorer API key is configured
#
# Both return the last block whose timestamp is <= the given timestamp.
#
# Notes:
# - Requires: requests
# ------------------------------------------------------------

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from ..errors import ExplorerError
from .provider import ChainProvider

logger = logging.getLogger(__name__)

ETHERSCAN_V2_URL = "https://api.etherscan.io/v2/api"


class EtherscanClient:
    def __init__(
        self,
        chain_id: int,
        api_key: str,
        base_url: str = ETHERSCAN_V2_URL,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Etherscan-family explorer client.

        :param chain_id: Chain to query through the v2 multichain endpoint.
        :param api_key: Etherscan API key.
        :param max_retries: Attempts per request.
        :param backoff_seconds: First retry delay, doubled on each further attempt.
        :param session: Optional requests session (tests pass a fake one).
        """
        self.chain_id = int(chain_id)
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.backoff_seconds = backoff_seconds
        self.session = session or requests.Session()
        self._sleep = sleep

    def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {"chainid": self.chain_id, "apikey": self.api_key, **params}
        last_err: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                resp = self.session.get(self.base_url, params=query, timeout=self.timeout)
                resp.raise_for_status()
                payload = resp.json()
                # Etherscan signals rate limiting with status "0" and a NOTOK message
                if str(payload.get("status")) != "1":
                    raise ExplorerError(f"Explorer returned {payload.get('message')}: {payload.get('result')}")
                return payload
            except (requests.RequestException, ValueError, ExplorerError) as e:
                last_err = e
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_seconds * (2 ** attempt)
                    logger.warning("Explorer request failed (%s), retrying in %ss", e, wait_time)
                    self._sleep(wait_time)
        raise ExplorerError(f"Explorer request failed after {self.max_retries} attempts: {last_err}")

    def block_at_or_before(self, timestamp: int) -> int:
        payload = self._get({
            "module": "block",
            "action": "getblocknobytime",
            "timestamp": int(timestamp),
            "closest": "before",
        })
        try:
            return int(payload["result"])
        except (KeyError, TypeError, ValueError) as e:
            raise ExplorerError(f"Unexpected explorer result for timestamp {timestamp}: {payload}") from e


class BinarySearchBlockResolver:
    """Resolve timestamps by bisecting block headers over the RPC."""

    def __init__(self, provider: ChainProvider, earliest: int = 0) -> None:
        self.provider = provider
        self.earliest = earliest

    def block_at_or_before(self, timestamp: int) -> int:
        lo, hi = self.earliest, self.provider.block_number
        if self.provider.get_block_timestamp(hi) <= timestamp:
            return hi
        if self.provider.get_block_timestamp(lo) > timestamp:
            raise ExplorerError(f"Timestamp {timestamp} is before block {lo}")
        ans = lo
        while lo <= hi:
            mid = (lo + hi) // 2
            if self.provider.get_block_timestamp(mid) <= timestamp:
                ans = mid
                lo = mid + 1
            else:
                hi = mid - 1
        return ans
