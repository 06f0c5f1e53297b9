"""
Liquidation Router Adapter

Decodes SwappedExactAmountOut events emitted by the liquidation router and
turns them into Koinly ledger records.

Event signature:
SwappedExactAmountOut(
    address indexed liquidationPair,
    address indexed sender,
    address indexed receiver,
    uint256 amountOut,
    uint256 amountInMax,
    uint256 amountIn,
    uint256 deadline
)

amountIn is paid in the chain's quote asset (POOL); amountOut is the
liquidation pair's underlying asset. The fee is the gas paid in the native
currency, plus the L1 data fee on rollups.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from eth_abi.exceptions import DecodingError
from eth_utils import keccak
from hexbytes import HexBytes
from web3 import Web3
from web3._utils.events import get_event_data
from web3.exceptions import LogTopicError, MismatchedABI

from ..config.registry import AssetRegistry, to_checksum
from ..config.time import to_dt
from ..config.units import format_units
from ..errors import ProviderError
from ..models import AccountingRecord, DecodedSwapEvent

logger = logging.getLogger(__name__)

SWAPPED_EXACT_AMOUNT_OUT_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": True,  "name": "liquidationPair", "type": "address"},
        {"indexed": True,  "name": "sender",          "type": "address"},
        {"indexed": True,  "name": "receiver",        "type": "address"},
        {"indexed": False, "name": "amountOut",       "type": "uint256"},
        {"indexed": False, "name": "amountInMax",     "type": "uint256"},
        {"indexed": False, "name": "amountIn",        "type": "uint256"},
        {"indexed": False, "name": "deadline",        "type": "uint256"},
    ],
    "name": "SwappedExactAmountOut",
    "type": "event",
}

EVENT_SIG = "SwappedExactAmountOut(address,address,address,uint256,uint256,uint256,uint256)"
TOPIC0 = Web3.to_hex(keccak(text=EVENT_SIG))

# fees are always reported in the native gas currency's base unit (wei)
NATIVE_DECIMALS = 18


def to_int(value: Any) -> int:
    """Accept ints, hex strings ('0x1a') and decimal strings from RPC payloads."""
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def format_tx_hash(tx_hash: Any) -> str:
    """Canonical 0x-prefixed, 64 lowercase hex digit transaction hash."""
    return f"0x{to_int(tx_hash):064x}"


def fee_wei(receipt: Mapping[str, Any], rollup: bool) -> int:
    """gasUsed * effectiveGasPrice, plus l1Fee on rollup chains when present."""
    try:
        fee = to_int(receipt["gasUsed"]) * to_int(receipt["effectiveGasPrice"])
    except KeyError as e:
        raise ProviderError(f"Receipt is missing {e}", code="bad_receipt") from e
    if rollup and receipt.get("l1Fee") is not None:
        fee += to_int(receipt["l1Fee"])
    return fee


class LiquidationRouterAdapter:
    """
    Turns one raw router log plus its block/receipt into an AccountingRecord.

    Only two outcomes produce no record: the log does not decode as
    SwappedExactAmountOut, or its sender is not the configured sender.
    """

    def __init__(self, registry: AssetRegistry, chain_id: int, sender: str, codec=None):
        self.registry = registry
        self.chain_id = int(chain_id)
        self.chain = registry.chain(chain_id)
        self.sender = to_checksum(sender, "sender address")
        self.codec = codec if codec is not None else Web3().codec

    def resolve_market(self) -> Dict[str, Any]:
        """Return the router address and topic used to filter eth_getLogs."""
        return {"router": self.chain.router, "topic": TOPIC0}

    def decode_event(self, raw_log: Mapping[str, Any]) -> Optional[DecodedSwapEvent]:
        log_for_decode = {
            "address": raw_log.get("address"),
            "data": HexBytes(raw_log.get("data") or "0x"),
            "topics": [HexBytes(t) for t in raw_log.get("topics", [])],
            "blockNumber": to_int(raw_log.get("blockNumber")),
            "logIndex": to_int(raw_log.get("logIndex") or 0),
            "transactionIndex": to_int(raw_log.get("transactionIndex") or 0),
            "blockHash": raw_log.get("blockHash"),
            "transactionHash": raw_log.get("transactionHash"),
        }
        try:
            decoded = get_event_data(self.codec, SWAPPED_EXACT_AMOUNT_OUT_ABI, log_for_decode)
        except (LogTopicError, MismatchedABI, DecodingError) as e:
            logger.debug(
                "skip log %s at block %s: not SwappedExactAmountOut (%s)",
                log_for_decode["logIndex"], log_for_decode["blockNumber"], e,
            )
            return None

        args = decoded["args"]
        return DecodedSwapEvent(
            liquidation_pair=Web3.to_checksum_address(args["liquidationPair"]),
            sender=Web3.to_checksum_address(args["sender"]),
            receiver=Web3.to_checksum_address(args["receiver"]),
            amount_out=int(args["amountOut"]),
            amount_in_max=int(args["amountInMax"]),
            amount_in=int(args["amountIn"]),
            deadline=int(args["deadline"]),
            block_number=log_for_decode["blockNumber"],
            log_index=log_for_decode["logIndex"],
            tx_hash=format_tx_hash(raw_log.get("transactionHash")),
        )

    def is_from_sender(self, event: DecodedSwapEvent) -> bool:
        return event.sender == self.sender

    def normalize(
        self,
        event: DecodedSwapEvent,
        block: Optional[Mapping[str, Any]],
        receipt: Optional[Mapping[str, Any]],
    ) -> AccountingRecord:
        if block is None:
            raise ProviderError(f"No block {event.block_number} for {event.tx_hash}", code="missing_block")
        if receipt is None:
            raise ProviderError(f"No receipt for {event.tx_hash}", code="missing_receipt")

        underlying = self.registry.underlying_asset_of(self.chain_id, event.liquidation_pair)
        quote = self.registry.quote_asset_of(self.chain_id)

        return AccountingRecord(
            date=to_dt(to_int(block["timestamp"])),
            amount_in=format_units(event.amount_in, quote.decimals),
            amount_in_symbol=quote.symbol,
            amount_out=format_units(event.amount_out, underlying.decimals),
            amount_out_symbol=underlying.symbol,
            fee=format_units(fee_wei(receipt, self.chain.rollup), NATIVE_DECIMALS),
            fee_symbol=self.chain.native_symbol,
            tx_hash=event.tx_hash,
        )

    def decode(
        self,
        raw_log: Mapping[str, Any],
        block: Optional[Mapping[str, Any]],
        receipt: Optional[Mapping[str, Any]],
    ) -> Optional[AccountingRecord]:
        """Full decode: shape check, sender filter, then record derivation."""
        event = self.decode_event(raw_log)
        if event is None or not self.is_from_sender(event):
            return None
        return self.normalize(event, block, receipt)
