"""
Tigris venue events Socket.IO client.

Subscribes to the eight raw trading events and republishes each one to the
registered callbacks as ``callback(canonical_name, payload)``.  Payloads are
passed through untouched.  ``PositionClosed`` is published as
``TradeClosed``; every other name is kept as is.

Callbacks are additive: registering a second callback does not replace the
first, both receive every event.

Usage::

    import asyncio
    from tigris.exchanges.tigris_events import TigrisEventStream

    def on_event(name: str, event: dict) -> None:
        print(name, event)

    async def main():
        events = TigrisEventStream()
        await events.connect()
        await events.set_trading_callback(on_event)
        await asyncio.Event().wait()

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

import socketio
from socketio import exceptions as sio_exceptions

from tigris.config.settings import DEFAULT_EVENTS_URLS
from tigris.core.models import EVENT_NAME_MAP

# Upper bound on how long registration waits for the handshake.
CONNECT_GRACE_SECS = 5

# Local clocks further ahead of UTC than this use the US endpoint.
_US_ENDPOINT_MIN_UTC_OFFSET_MINUTES = 120

TradingCallback = Callable[[str, Any], None]


def select_events_url(
    utc_offset_minutes: Optional[float] = None,
    eu_url: str = DEFAULT_EVENTS_URLS["eu"],
    us_url: str = DEFAULT_EVENTS_URLS["us"],
) -> str:
    """Pick the events endpoint from the local clock's offset to UTC."""
    if utc_offset_minutes is None:
        offset = datetime.now().astimezone().utcoffset()
        utc_offset_minutes = offset.total_seconds() / 60 if offset else 0
    if utc_offset_minutes > _US_ENDPOINT_MIN_UTC_OFFSET_MINUTES:
        return us_url
    return eu_url


class TigrisEventStream:
    """
    Normalises raw Tigris venue events onto registered callbacks.

    Parameters
    ----------
    url : str, optional
        Events endpoint.  Chosen with :func:`select_events_url` if omitted.
    client : socketio.AsyncClient, optional
        Injected client; a websocket-only ``AsyncClient`` is built otherwise.
    connect_grace_secs : float
        Longest :meth:`set_trading_callback` waits for the connection.
    logger : logging.Logger, optional
        Falls back to a module-level logger.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[socketio.AsyncClient] = None,
        connect_grace_secs: float = CONNECT_GRACE_SECS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.url = url or select_events_url()
        self.connect_grace_secs = connect_grace_secs
        self.logger = logger or logging.getLogger(__name__)
        self.sio = client or socketio.AsyncClient()
        self._callbacks: list[TradingCallback] = []
        self._ready = asyncio.Event()

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("connect_error", self._on_error)
        self.sio.on("error", self._on_error)
        for raw_name in EVENT_NAME_MAP:
            self.sio.on(raw_name, self._make_handler(raw_name))

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the events connection.  Failures are logged, not raised."""
        try:
            await self.sio.connect(self.url, transports=["websocket"])
        except sio_exceptions.ConnectionError as exc:
            self.logger.error(f"Events connection to {self.url} failed: {exc}")

    async def disconnect(self) -> None:
        await self.sio.disconnect()

    @property
    def connected(self) -> bool:
        return bool(self.sio.connected)

    async def _on_connect(self) -> None:
        self._ready.set()
        self.logger.info(f"Connected to Tigris events at {self.url}.")

    async def _on_disconnect(self, *args) -> None:
        self._ready.clear()
        self.logger.warning("Tigris events disconnected.")

    async def _on_error(self, err) -> None:
        self.logger.error(f"Events socket error: {err}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def set_trading_callback(self, callback: TradingCallback) -> None:
        """
        Register *callback* for all trading events.

        If the socket is not connected yet, waits up to
        ``connect_grace_secs`` for the handshake.  The callback is attached
        either way; events emitted before the connection completes are lost.
        """
        if not self.connected:
            try:
                await asyncio.wait_for(self._ready.wait(), timeout=self.connect_grace_secs)
            except asyncio.TimeoutError:
                self.logger.warning(
                    f"Events socket not connected after {self.connect_grace_secs}s; "
                    f"attaching callback anyway."
                )
        self._callbacks.append(callback)
        self.logger.debug(f"Trading callback registered ({len(self._callbacks)} total).")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _make_handler(self, raw_name: str) -> Callable[[Any], Any]:
        async def handler(event=None) -> None:
            self._dispatch(raw_name, event)
        return handler

    def _dispatch(self, raw_name: str, event: Any) -> None:
        name = EVENT_NAME_MAP[raw_name]
        for callback in list(self._callbacks):
            try:
                callback(name, event)
            except Exception as exc:
                self.logger.error(
                    f"Trading callback failed on {name}: {exc}",
                    exc_info=True,
                )
