# pylint: disable=missing-docstring
from eth_abi import encode
from hexbytes import HexBytes
import pytest
from web3 import Web3

from koinly_accounting.adapters.liquidation_router import TOPIC0, LiquidationRouterAdapter
from koinly_accounting.config.registry import AssetRegistry

CHAIN_ID = 10
ROUTER = Web3.to_checksum_address("0xB9Fba7B2216167DCdd1A7AE0a564dD43E1b68b95")
POOL = Web3.to_checksum_address("0x395Ae52bB17aef68C2888d941736A71dC6d4e125")
PDAI = Web3.to_checksum_address("0x7169526daBFD1cDdE174a0A7d8c75DeB582d0990")
PUSDC = Web3.to_checksum_address("0x217ef9C355f7eb59C789e0471dc1f4398e004EDc")
SENDER = Web3.to_checksum_address("0x" + "11" * 20)
OTHER_SENDER = Web3.to_checksum_address("0x" + "33" * 20)
RECEIVER = Web3.to_checksum_address("0x" + "22" * 20)

JAN_1_2024 = 1704067200
FEB_1_2024 = 1706745600


def address_topic(address):
    return HexBytes(b"\x00" * 12 + bytes.fromhex(address[2:]))


def tx_hash_bytes(n):
    return HexBytes(n.to_bytes(32, "big"))


def make_log(
    block_number,
    log_index,
    tx,
    pair=PDAI,
    sender=SENDER,
    amount_out=5 * 10**18,
    amount_in=15 * 10**17,
    amount_in_max=2 * 10**18,
    deadline=JAN_1_2024 + 600,
):
    data = encode(
        ["uint256", "uint256", "uint256", "uint256"],
        [amount_out, amount_in_max, amount_in, deadline],
    )
    return {
        "address": ROUTER,
        "topics": [HexBytes(TOPIC0), address_topic(pair), address_topic(sender), address_topic(RECEIVER)],
        "data": HexBytes(data),
        "blockNumber": block_number,
        "logIndex": log_index,
        "transactionIndex": 0,
        "blockHash": HexBytes(b"\x00" * 32),
        "transactionHash": tx_hash_bytes(tx),
    }


def make_receipt(gas_used=21000, gas_price=10**9, l1_fee=10**12):
    receipt = {"gasUsed": gas_used, "effectiveGasPrice": hex(gas_price)}
    if l1_fee is not None:
        receipt["l1Fee"] = hex(l1_fee)
    return receipt


class FakeProvider:
    """In-memory stand-in for ChainProvider."""

    def __init__(self, logs=(), blocks=None, receipts=None):
        self.logs = list(logs)
        self.blocks = blocks or {}
        self.receipts = receipts or {}
        self.get_logs_calls = []

    def get_logs(self, address, topic, from_block, to_block):
        self.get_logs_calls.append((from_block, to_block))
        return [log for log in self.logs if from_block <= log["blockNumber"] <= to_block]

    def get_block(self, block_number):
        return self.blocks.get(block_number)

    def get_transaction_receipt(self, tx_hash):
        return self.receipts.get(tx_hash)


class FakeResolver:
    def __init__(self, blocks_by_ts):
        self.blocks_by_ts = blocks_by_ts

    def block_at_or_before(self, timestamp):
        return self.blocks_by_ts[timestamp]


@pytest.fixture(scope="session")
def registry():
    return AssetRegistry.load()


@pytest.fixture
def adapter(registry):
    return LiquidationRouterAdapter(registry, CHAIN_ID, SENDER)
