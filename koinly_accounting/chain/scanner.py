"""
Block window resolution and chunked log queries for the liquidation router.

Most eth_getLogs endpoints cap the block span per request, so the window is
split into fixed-size sub-ranges, queried strictly in ascending order.
"""
from __future__ import annotations

import logging
from typing import Any, Iterator, List, Mapping, Protocol, Tuple

from ..errors import ConfigurationError
from .provider import ChainProvider

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 2000


class BlockResolver(Protocol):
    def block_at_or_before(self, timestamp: int) -> int:
        ...


def chunk(from_block: int, to_block: int, window_size: int = DEFAULT_WINDOW) -> Iterator[Tuple[int, int]]:
    """Yield inclusive [start, end] spans covering [from_block, to_block].

    Spans are ascending, contiguous and non-overlapping; each holds at most
    window_size blocks and the last one is clipped to to_block.
    """
    if window_size < 1:
        raise ConfigurationError(f"window_size must be >= 1, got {window_size}")
    if from_block > to_block:
        raise ConfigurationError(f"from_block {from_block} > to_block {to_block}")
    start = from_block
    while start <= to_block:
        end = min(start + window_size - 1, to_block)
        yield start, end
        start = end + 1


def count_chunks(from_block: int, to_block: int, window_size: int = DEFAULT_WINDOW) -> int:
    return (to_block - from_block) // window_size + 1


class BlockRangeScanner:
    def __init__(
        self,
        provider: ChainProvider,
        resolver: BlockResolver,
        address: str,
        topic: str,
        window_size: int = DEFAULT_WINDOW,
    ):
        self.provider = provider
        self.resolver = resolver
        self.address = address
        self.topic = topic
        self.window_size = window_size

    def resolve_window(self, start_timestamp: int, end_timestamp: int) -> Tuple[int, int]:
        if start_timestamp > end_timestamp:
            raise ConfigurationError(f"start_timestamp {start_timestamp} > end_timestamp {end_timestamp}")
        from_block = self.resolver.block_at_or_before(start_timestamp)
        to_block = self.resolver.block_at_or_before(end_timestamp)
        logger.info("Window %s..%s -> blocks [%s, %s]", start_timestamp, end_timestamp, from_block, to_block)
        return from_block, to_block

    def chunks(self, from_block: int, to_block: int) -> Iterator[Tuple[int, int]]:
        return chunk(from_block, to_block, self.window_size)

    def fetch_logs(self, from_block: int, to_block: int) -> List[Mapping[str, Any]]:
        return self.provider.get_logs(self.address, self.topic, from_block, to_block)
