import asyncio
import json

from websockets.asyncio.server import serve

from flower_client.message import BridgeEnvelope, OscEvent
from flower_client.ws_client import BridgeClient

CONFIG = BridgeEnvelope.config("127.0.0.1", 12000, "127.0.0.1", 8000)


async def wait_until(predicate, timeout=3.0):
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


def url(server):
    port = server.sockets[0].getsockname()[1]
    return f"ws://127.0.0.1:{port}/bridge"


def test_config_sent_and_events_dispatched():
    frames = []
    osc = []
    answers = []

    async def handler(connection):
        async for raw in connection:
            frame = json.loads(raw)
            frames.append(frame)
            if frame["event"] == "config":
                await connection.send(json.dumps({"event": "connected", "data": 1}))
                await connection.send(json.dumps({"event": "message", "data": ["/reply", 1, "x"]}))

    async def on_configured(ok):
        answers.append(ok)

    async def scenario():
        async with serve(handler, "127.0.0.1", 0) as server:
            client = BridgeClient(
                server_url=url(server),
                config=CONFIG,
                on_osc=osc.append,
                on_configured=on_configured,
            )
            await client.start()
            try:
                assert await wait_until(lambda: osc)
                assert client.configured

                assert client.send(OscEvent("/viz/phase", [2]))
                assert await wait_until(lambda: len(frames) == 2)
                return client.get_stats()
            finally:
                await client.stop()

    stats = asyncio.run(scenario())

    assert frames[0] == {"event": "config", "data": CONFIG.data}
    assert frames[1] == {"event": "osc-send", "data": ["/viz/phase", 2]}
    assert answers == [True]
    assert osc == [OscEvent("/reply", [1, "x"])]
    assert stats["messages_sent"] == 1
    assert stats["messages_received"] == 2


def test_rejected_config():
    answers = []

    async def handler(connection):
        async for raw in connection:
            await connection.send(json.dumps({"event": "connected", "data": 0}))

    async def on_configured(ok):
        answers.append(ok)

    async def scenario():
        async with serve(handler, "127.0.0.1", 0) as server:
            client = BridgeClient(url(server), CONFIG, on_configured=on_configured)
            await client.start()
            try:
                assert await wait_until(lambda: answers)
                assert client.connected
                assert not client.configured
            finally:
                await client.stop()

    asyncio.run(scenario())
    assert answers == [False]


def test_reconnects_and_resends_config():
    configs = []

    async def handler(connection):
        raw = await connection.recv()
        configs.append(json.loads(raw))
        await connection.close()

    async def scenario():
        async with serve(handler, "127.0.0.1", 0) as server:
            client = BridgeClient(
                url(server),
                CONFIG,
                initial_backoff_seconds=0.05,
                max_backoff_seconds=0.1,
            )
            await client.start()
            try:
                assert await wait_until(lambda: len(configs) >= 3)
                return client.get_stats()
            finally:
                await client.stop()

    stats = asyncio.run(scenario())

    assert all(c["event"] == "config" for c in configs)
    assert stats["reconnect_attempts"] >= 2


def test_events_dropped_while_disconnected():
    async def scenario():
        client = BridgeClient("ws://127.0.0.1:1/bridge", CONFIG)
        assert not client.connected
        assert not client.send(OscEvent("/viz/phase", [1]))
        return client.get_stats()

    stats = asyncio.run(scenario())
    assert stats["messages_failed"] == 1
    assert stats["queue_size"] == 0
