"""
web3 wrappers for the two Tigris contracts the client talks to.

``TigrisTradingContract`` signs and submits ``createMarketOrder`` /
``initiateCloseOrder`` transactions with a local account;
``TigrisPositionNFT`` is the read-only position registry.

web3's HTTP provider is blocking, so every chain round trip is pushed to a
worker thread with ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Sequence

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.types import TxParams

from tigris.config.settings import TigrisConfig, thaw_abi


def build_web3(rpc_url: str) -> Web3:
    return Web3(Web3.HTTPProvider(rpc_url))


# ---------------------------------------------------------------------------
# Argument encoding
#
# The oracle and callers hand over loosely typed values (decimal strings,
# lowercase addresses, hex strings). web3 only accepts ints for uint fields,
# checksum addresses and bytes, so tuples are normalised here.
# ---------------------------------------------------------------------------

def _to_uint(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError(f"Expected an unsigned integer, got {value!r}")
    if isinstance(value, str) and value[:2].lower() == "0x":
        return int(value, 16)
    return int(value)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return Web3.to_bytes(hexstr=value)
    return bytes(value)


def encode_trade_info(trade_info: Sequence) -> tuple:
    margin, margin_asset, stable_vault, leverage, asset, direction, tp, sl, referrer = trade_info
    return (
        _to_uint(margin),
        Web3.to_checksum_address(margin_asset),
        Web3.to_checksum_address(stable_vault),
        _to_uint(leverage),
        _to_uint(asset),
        bool(direction),
        _to_uint(tp),
        _to_uint(sl),
        Web3.to_checksum_address(referrer),
    )


def encode_price_data(price_data: Sequence) -> tuple:
    provider, is_closed, asset, price, spread, timestamp, signature = price_data
    return (
        Web3.to_checksum_address(provider),
        bool(is_closed),
        _to_uint(asset),
        _to_uint(price),
        _to_uint(spread),
        _to_uint(timestamp),
        _to_bytes(signature),
    )


def encode_permit(permit_data: Sequence) -> tuple:
    deadline, amount, v, r, s, use_permit = permit_data
    return (
        _to_uint(deadline),
        _to_uint(amount),
        _to_uint(v),
        _to_bytes(r),
        _to_bytes(s),
        bool(use_permit),
    )


class TigrisTradingContract:
    """
    Trading contract bound to one signer.

    Parameters
    ----------
    web3 : Web3
        Connected web3 instance.
    address : str
        Trading contract address.
    abi : sequence
        Trading contract ABI.
    signer : LocalAccount
        Account that signs and pays for every transaction.
    """

    def __init__(
        self,
        web3: Web3,
        address: str,
        abi: Sequence[dict],
        signer: LocalAccount,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.web3 = web3
        self.signer = signer
        self.logger = logger or logging.getLogger(__name__)
        self.contract = web3.eth.contract(
            address=Web3.to_checksum_address(address), abi=thaw_abi(tuple(abi))
        )

    async def create_market_order(
        self,
        trade_info: tuple,
        price_data: tuple,
        permit_data: tuple,
        trader: str,
    ) -> str:
        fn = self.contract.functions.createMarketOrder(
            encode_trade_info(trade_info),
            encode_price_data(price_data),
            encode_permit(permit_data),
            Web3.to_checksum_address(trader),
        )
        return await asyncio.to_thread(self._send, fn, {})

    async def initiate_close_order(
        self,
        position_id: int,
        percent: int,
        price_data: tuple,
        stable_vault: str,
        output_token: str,
        trader: str,
        gas_options: Optional[dict] = None,
    ) -> str:
        fn = self.contract.functions.initiateCloseOrder(
            _to_uint(position_id),
            _to_uint(percent),
            encode_price_data(price_data),
            Web3.to_checksum_address(stable_vault),
            Web3.to_checksum_address(output_token),
            Web3.to_checksum_address(trader),
        )
        return await asyncio.to_thread(self._send, fn, gas_options or {})

    def _send(self, fn: Any, gas_options: dict) -> str:
        """Build, sign and broadcast *fn*.  Returns the tx hash (hex)."""
        sender = self.signer.address
        tx_params: TxParams = {
            "from": sender,
            "nonce": self.web3.eth.get_transaction_count(sender),
        }
        if "gasPrice" in gas_options:
            tx_params["gasPrice"] = gas_options["gasPrice"]
        if "gas" in gas_options:
            tx_params["gas"] = gas_options["gas"]

        tx = fn.build_transaction(tx_params)
        signed_tx = self.signer.sign_transaction(tx)
        raw_tx = getattr(signed_tx, "raw_transaction", None)
        if raw_tx is None:
            raw_tx = getattr(signed_tx, "rawTransaction")
        tx_hash = self.web3.eth.send_raw_transaction(raw_tx)
        tx_hex = Web3.to_hex(tx_hash)
        self.logger.debug(f"Submitted {fn.fn_name} from {sender}: {tx_hex}")
        return tx_hex


class TigrisPositionNFT:
    """Read-only view of the position registry."""

    # Index of the asset id inside the ``trades(id)`` struct.
    ASSET_FIELD = 2

    def __init__(self, web3: Web3, address: str, abi: Sequence[dict]) -> None:
        self.contract = web3.eth.contract(
            address=Web3.to_checksum_address(address), abi=thaw_abi(tuple(abi))
        )

    async def trades(self, position_id: int) -> tuple:
        return await asyncio.to_thread(self.contract.functions.trades(position_id).call)

    async def resolve_asset_for_position(self, position_id: int) -> int:
        trade = await self.trades(position_id)
        return int(trade[self.ASSET_FIELD])

    @classmethod
    def from_config(cls, config: TigrisConfig, web3: Optional[Web3] = None) -> "TigrisPositionNFT":
        web3 = web3 or build_web3(config.rpc_url)
        return cls(web3, config.addresses.position_nft, config.position_nft_abi)
