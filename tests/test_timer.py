import asyncio

from timer import run_online_sweep


def run_for(dispatcher, seconds, interval=0.01):
    async def scenario():
        task = asyncio.create_task(run_online_sweep(dispatcher, interval))
        await asyncio.sleep(seconds)
        task.cancel()
        await task

    asyncio.run(scenario())


def test_sweep_runs_until_cancelled(dispatcher, store, clock):
    store.set("devices/d1", {"lastSeen": clock.now})
    store.set("devices/d2", {"lastSeen": clock.now - 10 * 60 * 1000})

    run_for(dispatcher, 0.05)

    assert store.get("devices/d1/isOnline") is True
    assert store.get("devices/d2/isOnline") is False


class ExplodingDispatcher:
    def __init__(self):
        self.calls = 0

    def tick(self):
        self.calls += 1
        raise RuntimeError("boom")


def test_failed_sweep_does_not_stop_the_loop():
    dispatcher = ExplodingDispatcher()

    run_for(dispatcher, 0.1)

    assert dispatcher.calls >= 2
