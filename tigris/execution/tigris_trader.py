"""
Tigris Trade execution layer.

Assembles the positional argument tuples expected by the Tigris trading
contract, attaches the freshest signed oracle price and submits the
transaction.

Usage::

    from tigris.config.settings import TigrisConfig
    from tigris.core.models import TradeRequest
    from tigris.execution.tigris_trader import TigrisTrader

    trader = TigrisTrader(TigrisConfig.from_rpc("https://arb1.arbitrum.io/rpc"))
    await trader.connect()
    signer = trader.create_signer(private_key)

    result = await trader.open_trade(
        signer, TradeRequest(margin=100, leverage=10, asset=0, is_long=True), signer.address
    )
    if not result:
        ...  # RemoteFailure: result.error holds the raw exception

Results are never raised.  ``open_trade`` returns ``Success`` or
``RemoteFailure``; ``close_trade`` may also return ``PreconditionFailure``
when no signed price is available.  A caller that ignores the returned
variant will treat a failed submission as a successful one.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from tigris.config.settings import TigrisConfig
from tigris.core.models import (
    FALLBACK_QUOTE,
    PreconditionFailure,
    RemoteFailure,
    Success,
    TradeRequest,
    TradeResult,
    ZERO_ADDRESS,
)
from tigris.exchanges.tigris_contracts import (
    TigrisPositionNFT,
    TigrisTradingContract,
    build_web3,
)
from tigris.exchanges.tigris_events import TigrisEventStream, TradingCallback, select_events_url
from tigris.exchanges.tigris_oracle import TigrisOracleFeed

# Fixed-point 100% for initiateCloseOrder (1e10 == 100%).
FULL_CLOSE_PERCENT = 10_000_000_000
CLOSE_GAS_PRICE = 1 * 1_000_000_000
CLOSE_GAS_LIMIT = 10_000_000_000

PRICE_UNAVAILABLE = "price data is not available"


def to_fixed(value) -> int:
    """Scale a human amount to 18-decimal fixed point, exactly."""
    return Web3.to_wei(Decimal(str(value)), "ether")


class TigrisTrader:
    """
    Opens and closes Tigris positions.

    Parameters
    ----------
    config : TigrisConfig
        Immutable addresses, ABIs and endpoints.
    oracle : TigrisOracleFeed, optional
        Signed price cache.  Built from ``config.oracle_url`` if omitted.
    events : TigrisEventStream, optional
        Venue events stream.  Built from the config's events URLs if omitted.
    contract_factory : callable, optional
        ``signer -> trading contract``.  Defaults to a web3-backed
        :class:`TigrisTradingContract`.
    position_nft : TigrisPositionNFT, optional
        Position registry used to resolve a position's asset.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        config: TigrisConfig,
        oracle: Optional[TigrisOracleFeed] = None,
        events: Optional[TigrisEventStream] = None,
        contract_factory: Optional[Callable[[LocalAccount], TigrisTradingContract]] = None,
        position_nft: Optional[TigrisPositionNFT] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.ref: str = ZERO_ADDRESS

        self.oracle = oracle or TigrisOracleFeed(config.oracle_url, logger=self.logger)
        self.events = events or TigrisEventStream(
            select_events_url(eu_url=config.events_url_eu, us_url=config.events_url_us),
            logger=self.logger,
        )

        self._web3: Optional[Web3] = None
        self._contract_factory = contract_factory
        self.position_nft = position_nft or TigrisPositionNFT.from_config(config, self.web3)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @property
    def addresses(self):
        return self.config.addresses

    @property
    def permit(self) -> tuple:
        return self.config.permit.as_tuple()

    @property
    def web3(self) -> Web3:
        if self._web3 is None:
            self._web3 = build_web3(self.config.rpc_url)
        return self._web3

    async def connect(self) -> None:
        """Connect both the oracle and the events stream."""
        await self.oracle.connect()
        await self.events.connect()

    async def disconnect(self) -> None:
        await self.oracle.disconnect()
        await self.events.disconnect()

    def set_ref(self, ref: str) -> None:
        """Set the referral address that earns fees on every opened trade."""
        self.ref = Web3.to_checksum_address(ref)
        self.logger.info(f"Referral address set to {self.ref}.")

    def create_signer(self, private_key: str) -> LocalAccount:
        return Account.from_key(private_key)

    def create_trading_contract(self, signer: LocalAccount) -> TigrisTradingContract:
        if self._contract_factory is not None:
            return self._contract_factory(signer)
        return TigrisTradingContract(
            self.web3,
            self.addresses.trading,
            self.config.trading_abi,
            signer,
            logger=self.logger,
        )

    # ------------------------------------------------------------------
    # Tuple assembly
    # ------------------------------------------------------------------

    def build_trade_info(self, trade: TradeRequest) -> tuple:
        """
        ``_tradeInfo`` tuple in contract order: margin, margin asset, stable
        vault, leverage, asset, direction, tp, sl, referrer.
        """
        return (
            to_fixed(trade.margin),
            self.addresses.usdt,
            self.addresses.vault,
            to_fixed(trade.leverage),
            trade.asset,
            trade.is_long,
            trade.tp,
            trade.sl,
            self.ref,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def open_trade(
        self,
        signer: LocalAccount,
        trade: TradeRequest,
        trader: str,
        sl: int = 0,
        tp: int = 0,
    ) -> TradeResult:
        """
        Open a market position.

        *sl* / *tp* override the request's own values when non-zero.  If no
        signed price is cached for the asset the zero-valued fallback quote
        is sent and the contract is left to reject it.

        Returns
        -------
        Success or RemoteFailure
        """
        if sl or tp:
            trade = replace(trade, sl=sl or trade.sl, tp=tp or trade.tp)

        trade_info = self.build_trade_info(trade)

        quote = self.oracle.get_price(trade.asset)
        if quote is None or not quote.provider:
            self.logger.warning(
                f"[{trade.asset}] No signed price available; opening with fallback price."
            )
            quote = FALLBACK_QUOTE

        try:
            contract = self.create_trading_contract(signer)
            tx_hash = await contract.create_market_order(
                trade_info,
                quote.as_tuple(),
                self.permit,
                trader,
            )
        except Exception as exc:
            self.logger.error(f"[{trade.asset}] Failed to open trade: {exc}")
            return RemoteFailure(exc)

        direction = "LONG" if trade.is_long else "SHORT"
        self.logger.info(
            f"[{trade.asset}] {direction} OPENED — margin={trade.margin}, "
            f"leverage={trade.leverage}x, tx={tx_hash}"
        )
        return Success(tx_hash)

    async def close_trade(
        self,
        signer: LocalAccount,
        position_id: int,
        trader: str,
        asset=None,
    ) -> TradeResult:
        """
        Close 100% of position *position_id*.

        *asset* is optional but saves a registry round trip.  Without a
        signed price from a known provider nothing is submitted and a
        :class:`PreconditionFailure` is returned.

        Returns
        -------
        Success, RemoteFailure or PreconditionFailure
        """
        if asset is None:
            asset = await self.get_position_asset(position_id)

        quote = self.oracle.get_price(asset)
        if quote is None or not quote.provider:
            self.logger.warning(f"[{asset}] Cannot close #{position_id}: {PRICE_UNAVAILABLE}.")
            return PreconditionFailure(PRICE_UNAVAILABLE)

        try:
            contract = self.create_trading_contract(signer)
            tx_hash = await contract.initiate_close_order(
                position_id,
                FULL_CLOSE_PERCENT,
                quote.as_tuple(),
                self.addresses.vault,
                self.addresses.usdt,
                trader,
                {"gasPrice": CLOSE_GAS_PRICE, "gas": CLOSE_GAS_LIMIT},
            )
        except Exception as exc:
            self.logger.error(f"[{asset}] Failed to close #{position_id}: {exc}")
            return RemoteFailure(exc)

        self.logger.info(f"[{asset}] POSITION #{position_id} CLOSED — tx={tx_hash}")
        return Success(tx_hash)

    async def get_position_asset(self, position_id: int) -> int:
        """Asset id of an open position, read from the position registry."""
        return await self.position_nft.resolve_asset_for_position(position_id)

    async def set_events_callback(self, callback: TradingCallback) -> None:
        """
        Register ``callback(event_name, event)`` for venue trading events.
        """
        await self.events.set_trading_callback(callback)
