"""
Domain records: the decoded router event and the Koinly ledger row built from it.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List

from .config.time import format_date, month_key

# Koinly "universal" CSV layout; order is the output column order
COLUMNS = [
    "Date",
    "Sent Amount",
    "Sent Currency",
    "Received Amount",
    "Received Currency",
    "Fee Amount",
    "Fee Currency",
    "TxHash",
]


@dataclass(frozen=True)
class DecodedSwapEvent:
    """SwappedExactAmountOut args plus the log coordinates needed downstream."""

    liquidation_pair: str
    sender: str
    receiver: str
    amount_out: int
    amount_in_max: int
    amount_in: int
    deadline: int
    block_number: int
    log_index: int
    tx_hash: str


@dataclass(frozen=True)
class AccountingRecord:
    date: datetime
    amount_in: str
    amount_in_symbol: str
    amount_out: str
    amount_out_symbol: str
    fee: str
    fee_symbol: str
    tx_hash: str

    @property
    def month(self) -> str:
        """YYYY-MM bucket (UTC) this record belongs to."""
        return month_key(self.date)

    def to_row(self) -> List[str]:
        return [
            format_date(self.date),
            self.amount_in,
            self.amount_in_symbol,
            self.amount_out,
            self.amount_out_symbol,
            self.fee,
            self.fee_symbol,
            self.tx_hash,
        ]
