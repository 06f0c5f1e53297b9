# registry.py
# ------------------------------------------------------------
# Static per-chain lookup tables for the liquidation router export.
#
# - Loads config/chains.yaml once into immutable ChainConfig values
# - Resolves router, liquidation pair -> underlying asset,
#   asset -> decimals and asset -> symbol
# - Every miss raises ConfigurationError naming the chain and key
#
# Usage (Python):
#   from koinly_accounting.config.registry import AssetRegistry
#   reg = AssetRegistry.load()
#   reg.router_of(10)
#   reg.underlying_asset_of(10, "0x7169526daBFD1cDdE174a0A7d8c75DeB582d0990")
# ------------------------------------------------------------

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import yaml
from web3 import Web3

from ..errors import ConfigurationError

DEFAULT_CHAINS_PATH = Path(__file__).resolve().parent / "chains.yaml"


def to_checksum(address: str, what: str = "address") -> str:
    """Checksum an address, turning bad input into a ConfigurationError."""
    try:
        return Web3.to_checksum_address(address)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {what}: {address!r}", code="bad_address") from e


@dataclass(frozen=True)
class ChainAsset:
    address: str
    decimals: int
    symbol: str


@dataclass(frozen=True)
class LiquidationPair:
    address: str
    underlying_asset: ChainAsset


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int
    name: str
    router: str
    quote_asset: ChainAsset
    native_symbol: str
    rollup: bool
    assets: Mapping[str, ChainAsset]
    pairs: Mapping[str, LiquidationPair]

    @staticmethod
    def from_dict(chain_id: int, d: Dict[str, Any]) -> "ChainConfig":
        missing = [k for k in ("router", "quote_asset", "assets", "pairs") if k not in d]
        if missing:
            raise ConfigurationError(f"Chain {chain_id} is missing keys: {missing}")

        assets: Dict[str, ChainAsset] = {}
        for raw_addr, meta in (d.get("assets") or {}).items():
            addr = to_checksum(raw_addr, f"asset address on chain {chain_id}")
            meta = meta or {}
            decimals = meta.get("decimals")
            symbol = meta.get("symbol")
            if not isinstance(decimals, int) or isinstance(decimals, bool) or not 0 <= decimals <= 255:
                raise ConfigurationError(f"No valid decimals for asset {addr} on chain {chain_id}")
            if not symbol:
                raise ConfigurationError(f"No symbol for asset {addr} on chain {chain_id}")
            assets[addr] = ChainAsset(address=addr, decimals=decimals, symbol=str(symbol))

        def asset(raw_addr: str, role: str) -> ChainAsset:
            addr = to_checksum(raw_addr, f"{role} on chain {chain_id}")
            if addr not in assets:
                raise ConfigurationError(
                    f"{role} {addr} on chain {chain_id} has no decimals/symbol entry"
                )
            return assets[addr]

        pairs: Dict[str, LiquidationPair] = {}
        for raw_pair, raw_underlying in (d.get("pairs") or {}).items():
            pair = to_checksum(raw_pair, f"liquidation pair on chain {chain_id}")
            pairs[pair] = LiquidationPair(
                address=pair,
                underlying_asset=asset(raw_underlying, f"underlying asset of {pair}"),
            )

        return ChainConfig(
            chain_id=int(chain_id),
            name=str(d.get("name") or chain_id),
            router=to_checksum(d["router"], f"liquidation router on chain {chain_id}"),
            quote_asset=asset(d["quote_asset"], "quote asset"),
            native_symbol=str(d.get("native_symbol") or "ETH"),
            rollup=bool(d.get("rollup", False)),
            assets=MappingProxyType(assets),
            pairs=MappingProxyType(pairs),
        )


class AssetRegistry:
    def __init__(self, chains: Mapping[int, ChainConfig]) -> None:
        """Wrap already-parsed chain tables; use load() or from_dict() to build one."""
        self._chains: Mapping[int, ChainConfig] = MappingProxyType(dict(chains))

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AssetRegistry":
        path = Path(path) if path else DEFAULT_CHAINS_PATH
        try:
            with path.open("r") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read chain tables at {path}: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetRegistry":
        chains = {}
        for raw_id, d in (data.get("chains") or {}).items():
            try:
                chain_id = int(raw_id)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Chain id is not an integer: {raw_id!r}") from e
            chains[chain_id] = ChainConfig.from_dict(chain_id, d or {})
        return cls(chains)

    # -------------- Public API --------------

    def supported_chains(self) -> List[int]:
        return sorted(self._chains)

    def chain(self, chain_id: int) -> ChainConfig:
        try:
            return self._chains[int(chain_id)]
        except KeyError:
            raise ConfigurationError(
                f"No liquidation tables found for the given chain ID: {chain_id}",
                code="unknown_chain",
            ) from None

    def router_of(self, chain_id: int) -> str:
        return self.chain(chain_id).router

    def quote_asset_of(self, chain_id: int) -> ChainAsset:
        return self.chain(chain_id).quote_asset

    def underlying_asset_of(self, chain_id: int, pair_address: str) -> ChainAsset:
        cfg = self.chain(chain_id)
        pair = to_checksum(pair_address, "liquidation pair")
        if pair not in cfg.pairs:
            raise ConfigurationError(
                f"No underlying asset address found for the given liquidation pair: {pair} (chain {chain_id})",
                code="unknown_pair",
            )
        return cfg.pairs[pair].underlying_asset

    def asset_of(self, chain_id: int, asset_address: str) -> ChainAsset:
        cfg = self.chain(chain_id)
        asset = to_checksum(asset_address, "asset")
        if asset not in cfg.assets:
            raise ConfigurationError(
                f"No decimals/symbol found for the given asset: {asset} (chain {chain_id})",
                code="unknown_asset",
            )
        return cfg.assets[asset]

    def decimals_of(self, chain_id: int, asset_address: str) -> int:
        return self.asset_of(chain_id, asset_address).decimals

    def symbol_of(self, chain_id: int, asset_address: str) -> str:
        return self.asset_of(chain_id, asset_address).symbol
