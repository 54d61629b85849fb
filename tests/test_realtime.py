import asyncio
import json

from app.realtime import _Hub


def test_every_subscriber_receives_the_event():
    async def scenario():
        hub = _Hub()
        first, second = hub.subscribe(), hub.subscribe()
        # подписка регистрируется при первом обращении к генератору
        pending = [asyncio.ensure_future(first.__anext__()), asyncio.ensure_future(second.__anext__())]
        await asyncio.sleep(0)
        await hub.publish("vehicle_status", {"ids": [7], "status": "approved"})
        messages = await asyncio.gather(*pending)
        await first.aclose()
        await second.aclose()
        return messages

    messages = asyncio.run(scenario())
    for msg in messages:
        event, data = msg.strip().split("\n")
        assert event == "event: vehicle_status"
        assert json.loads(data[len("data: "):]) == {"ids": [7], "status": "approved"}


def test_lagging_subscriber_keeps_only_latest_events():
    async def scenario():
        hub = _Hub(queue_size=2)
        stream = hub.subscribe()
        first = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        await hub.publish("vehicle_status", {"ids": [0]})
        received = [await first]
        # читателя нет, очередь на два события
        for i in range(1, 5):
            await hub.publish("vehicle_status", {"ids": [i]})
        received += [await stream.__anext__(), await stream.__anext__()]
        await stream.aclose()
        return received

    received = asyncio.run(scenario())
    ids = [json.loads(msg.strip().split("\n")[1][len("data: "):])["ids"][0] for msg in received]
    assert ids == [0, 3, 4]
