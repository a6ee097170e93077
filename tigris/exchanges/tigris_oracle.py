"""
Tigris price oracle Socket.IO client.

Keeps the latest signed-price snapshot pushed by the oracle and hands out
quotes ready to be passed to the trading contract.  Every ``data`` push
replaces the whole snapshot; there is no per-asset merge and no history.

Two "no data" cases are reported differently:

* nothing was ever received -> ``get_price`` / ``get_prices`` return ``None``;
* the feed is live but has no entry for an asset -> ``get_price`` returns a
  :class:`PriceQuote` whose fields are all ``None``.

Usage::

    import asyncio
    from tigris.exchanges.tigris_oracle import TigrisOracleFeed

    async def main():
        oracle = TigrisOracleFeed()
        await oracle.connect()
        await asyncio.sleep(2)
        print(oracle.get_price(0))

    asyncio.run(main())
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

import pandas as pd
import socketio
from socketio import exceptions as sio_exceptions

from tigris.config.settings import DEFAULT_ORACLE_URL
from tigris.core.models import PriceQuote

# Column order matches the contract's PriceData tuple.
QUOTE_COLUMNS = ["provider", "is_closed", "asset", "price", "spread", "timestamp", "signature"]


class TigrisOracleFeed:
    """
    Cache of the most recent oracle snapshot.

    Parameters
    ----------
    url : str
        Oracle endpoint.
    client : socketio.AsyncClient, optional
        Injected client; a websocket-only ``AsyncClient`` is built otherwise.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        url: str = DEFAULT_ORACLE_URL,
        client: Optional[socketio.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url
        self.logger = logger or logging.getLogger(__name__)
        self.sio = client or socketio.AsyncClient()
        self._data: Any = None

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("connect_error", self._on_error)
        self.sio.on("error", self._on_error)
        self.sio.on("data", self._on_data)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the oracle connection.  Failures are logged, not raised."""
        try:
            await self.sio.connect(self.url, transports=["websocket"])
        except sio_exceptions.ConnectionError as exc:
            self.logger.error(f"Oracle connection to {self.url} failed: {exc}")

    async def disconnect(self) -> None:
        await self.sio.disconnect()

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    # ------------------------------------------------------------------
    # Socket handlers
    # ------------------------------------------------------------------

    async def _on_connect(self) -> None:
        self.logger.info(f"Connected to Tigris oracle at {self.url}.")

    async def _on_disconnect(self, *args) -> None:
        self.logger.warning("Tigris oracle disconnected.")

    async def _on_error(self, err) -> None:
        self.logger.error(f"Oracle socket error: {err}")

    async def _on_data(self, data) -> None:
        # Single assignment: readers see either the old or the new snapshot.
        self._data = data

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def has_data(self) -> bool:
        return self._data is not None

    def get_prices(self) -> Optional[list[PriceQuote]]:
        """
        Signed prices for every asset in the latest snapshot, in feed order.

        Returns ``None`` if the oracle has never pushed anything.
        """
        data = self._data
        if data is None:
            return None
        if isinstance(data, Mapping):
            entries = list(data.values())
        elif isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
            entries = list(data)
        else:
            entries = []
        return [PriceQuote.from_payload(entry) for entry in entries]

    def get_price(self, asset) -> Optional[PriceQuote]:
        """
        Signed price for *asset*, ready to be passed as the contract's
        ``_priceData`` tuple.

        Returns ``None`` if the oracle has never pushed anything, and an
        all-``None`` quote if the latest snapshot has no entry for *asset*.
        """
        data = self._data
        if data is None:
            return None
        return PriceQuote.from_payload(_lookup(data, asset))

    def quotes_frame(self) -> Optional[pd.DataFrame]:
        """Latest snapshot as a DataFrame, one row per asset."""
        quotes = self.get_prices()
        if quotes is None:
            return None
        return pd.DataFrame([q.as_tuple() for q in quotes], columns=QUOTE_COLUMNS)


def _lookup(data: Any, asset) -> Any:
    """Find *asset* in a list snapshot (by index) or a mapping (by key)."""
    if isinstance(data, Mapping):
        if asset in data:
            return data[asset]
        return data.get(str(asset))

    if isinstance(data, Sequence) and not isinstance(data, (str, bytes)):
        if isinstance(asset, bool):
            return None
        if isinstance(asset, float) and not asset.is_integer():
            return None
        try:
            idx = int(asset)
        except (TypeError, ValueError):
            return None
        if 0 <= idx < len(data):
            return data[idx]
    return None
