import asyncio

from tigris.core.models import EVENT_NAME_MAP
from tigris.exchanges.tigris_events import TigrisEventStream, select_events_url


EU = "https://eu1events.tigristrade.info"
US = "https://us1events.tigristrade.info"


class FakeClient:
    """Minimal stand-in for socketio.AsyncClient."""

    def __init__(self, connected=True):
        self.connected = connected
        self.handlers = {}

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def emit_raw(self, event, payload):
        await self.handlers[event](payload)


def make_stream(connected=True, grace=0):
    client = FakeClient(connected=connected)
    return TigrisEventStream(url=EU, client=client, connect_grace_secs=grace), client


def test_select_events_url():
    assert select_events_url(0) == EU
    assert select_events_url(120) == EU
    assert select_events_url(180) == US
    assert select_events_url(-300) == EU


def test_subscribes_to_every_raw_event():
    _, client = make_stream()
    for raw in EVENT_NAME_MAP:
        assert raw in client.handlers


def test_each_raw_event_yields_one_canonical_callback():
    stream, client = make_stream()
    received = []

    async def scenario():
        await stream.set_trading_callback(lambda name, ev: received.append((name, ev)))
        for raw in EVENT_NAME_MAP:
            await client.emit_raw(raw, {"raw": raw})

    asyncio.run(scenario())

    assert [name for name, _ in received] == list(EVENT_NAME_MAP.values())
    assert ("TradeClosed", {"raw": "PositionClosed"}) in received
    assert all(ev["raw"] == name for name, ev in received if name != "TradeClosed")


def test_payloads_pass_through_in_order():
    stream, client = make_stream()
    payloads = [{"id": 1}, {"id": 2}, {"id": 3}]
    received = []

    async def scenario():
        await stream.set_trading_callback(lambda name, ev: received.append((name, ev)))
        for p in payloads:
            await client.emit_raw("LimitCancelled", p)

    asyncio.run(scenario())

    assert [name for name, _ in received] == ["LimitCancelled"] * 3
    for (_, ev), sent in zip(received, payloads):
        assert ev is sent


def test_callbacks_are_additive():
    stream, client = make_stream()
    first, second = [], []

    async def scenario():
        await stream.set_trading_callback(lambda name, ev: first.append(name))
        await stream.set_trading_callback(lambda name, ev: second.append(name))
        await client.emit_raw("UpdateTPSL", {"id": 9})

    asyncio.run(scenario())

    assert first == ["UpdateTPSL"]
    assert second == ["UpdateTPSL"]


def test_failing_callback_does_not_block_others():
    stream, client = make_stream()
    received = []

    def broken(name, ev):
        raise RuntimeError("boom")

    async def scenario():
        await stream.set_trading_callback(broken)
        await stream.set_trading_callback(lambda name, ev: received.append(ev))
        await client.emit_raw("MarginModified", {"id": 4})

    asyncio.run(scenario())

    assert received == [{"id": 4}]


def test_registration_attaches_after_grace_timeout():
    stream, client = make_stream(connected=False, grace=0.01)
    received = []

    async def scenario():
        await stream.set_trading_callback(lambda name, ev: received.append(name))
        await client.emit_raw("AddToPosition", {})

    asyncio.run(scenario())

    assert received == ["AddToPosition"]


def test_registration_waits_for_connect_signal():
    stream, client = make_stream(connected=False, grace=5)
    received = []

    async def scenario():
        register = asyncio.create_task(
            stream.set_trading_callback(lambda name, ev: received.append(name))
        )
        await asyncio.sleep(0)
        assert not register.done()

        client.connected = True
        await client.handlers["connect"]()
        await asyncio.wait_for(register, timeout=1)
        await client.emit_raw("PositionOpened", {})

    asyncio.run(scenario())

    assert received == ["PositionOpened"]
