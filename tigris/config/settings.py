"""
Process-wide Tigris configuration.

Addresses, ABIs and endpoints are loaded once into a frozen
:class:`TigrisConfig` and handed to each component.  The referral address
is the only value that may change afterwards, and it lives on the trader
(see ``TigrisTrader.set_ref``), not here.

Usage::

    from tigris.config.settings import TigrisConfig, load_config

    config = TigrisConfig.from_rpc("https://arb1.arbitrum.io/rpc")
    # or
    config = load_config(Path("config/tigris_config.json"))
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Optional

from tigris.core.models import Permit, TigrisAddresses

ABI_DIR = Path(__file__).resolve().parents[1] / "abis"

DEFAULT_ADDRESSES = TigrisAddresses(
    trading="0x399214eE22bF068ff207adA462EC45046468B766",
    usdt="0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9",
    vault="0xe82fcefbDD034500B5862B4827CAE5c117f6b921",
    position_nft="0x09D74999e5315044956ad15D5F2Aeb8d393E85eD",
)

DEFAULT_ORACLE_URL = "wss://eu1.tigrisoracle.net"
DEFAULT_EVENTS_URLS = {
    "eu": "https://eu1events.tigristrade.info",
    "us": "https://us1events.tigristrade.info",
}

TRADING_ABI_FILE = "TradingContractABI.json"
POSITION_NFT_ABI_FILE = "PositionNFTContractABI.json"


def freeze_abi(obj: Any) -> Any:
    """Read-only copy of a parsed ABI: dicts become mapping proxies, lists tuples."""
    if isinstance(obj, dict):
        return MappingProxyType({k: freeze_abi(v) for k, v in obj.items()})
    if isinstance(obj, (list, tuple)):
        return tuple(freeze_abi(v) for v in obj)
    return obj


def thaw_abi(obj: Any) -> Any:
    """Plain dict/list copy of a frozen ABI, as web3 expects."""
    if isinstance(obj, MappingProxyType):
        return {k: thaw_abi(v) for k, v in obj.items()}
    if isinstance(obj, tuple):
        return [thaw_abi(v) for v in obj]
    return obj


@lru_cache(maxsize=None)
def load_abi(name: str) -> tuple:
    """Read a bundled ABI document.  Cached and frozen, so every config shares one read-only copy."""
    with open(ABI_DIR / name, "r", encoding="utf-8") as f:
        return freeze_abi(json.load(f))


@dataclass(frozen=True)
class TigrisConfig:
    rpc_url: str
    addresses: TigrisAddresses = DEFAULT_ADDRESSES
    oracle_url: str = DEFAULT_ORACLE_URL
    events_url_eu: str = DEFAULT_EVENTS_URLS["eu"]
    events_url_us: str = DEFAULT_EVENTS_URLS["us"]
    permit: Permit = field(default_factory=Permit)
    trading_abi: tuple = field(default_factory=lambda: load_abi(TRADING_ABI_FILE))
    position_nft_abi: tuple = field(default_factory=lambda: load_abi(POSITION_NFT_ABI_FILE))
    log_path: str = "logs/tigris.log"
    log_level: str = "INFO"

    @classmethod
    def from_rpc(cls, rpc_url: str) -> "TigrisConfig":
        return cls(rpc_url=rpc_url)


def load_config(config_path: Path, rpc_url: Optional[str] = None) -> TigrisConfig:
    """
    Build a :class:`TigrisConfig` from a JSON file.

    Any missing key falls back to the built-in Tigris defaults. *rpc_url*,
    when given, overrides the file's ``rpc_url``.
    """
    with open(config_path, "r") as f:
        raw = json.load(f)

    addr_cfg = raw.get("addresses", {})
    events_cfg = raw.get("events_urls", {})
    abi_cfg = raw.get("abis", {})
    logging_cfg = raw.get("logging", {})

    rpc = rpc_url or raw.get("rpc_url")
    if not rpc:
        raise ValueError(f"No rpc_url in {config_path} and none supplied")

    addresses = TigrisAddresses(
        trading=addr_cfg.get("trading", DEFAULT_ADDRESSES.trading),
        usdt=addr_cfg.get("usdt", DEFAULT_ADDRESSES.usdt),
        vault=addr_cfg.get("vault", DEFAULT_ADDRESSES.vault),
        position_nft=addr_cfg.get("position_nft", DEFAULT_ADDRESSES.position_nft),
    )

    return TigrisConfig(
        rpc_url=rpc,
        addresses=addresses,
        oracle_url=raw.get("oracle_url", DEFAULT_ORACLE_URL),
        events_url_eu=events_cfg.get("eu", DEFAULT_EVENTS_URLS["eu"]),
        events_url_us=events_cfg.get("us", DEFAULT_EVENTS_URLS["us"]),
        trading_abi=load_abi(abi_cfg.get("trading", TRADING_ABI_FILE)),
        position_nft_abi=load_abi(abi_cfg.get("position_nft", POSITION_NFT_ABI_FILE)),
        log_path=logging_cfg.get("log_path", "logs/tigris.log"),
        log_level=logging_cfg.get("log_level", "INFO"),
    )
