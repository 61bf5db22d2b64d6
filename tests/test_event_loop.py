import asyncio

import pytest

from fleet_core.core.application import Application
from fleet_core.core.event_loop import ManagedEventLoop, PeriodicTask


def _counting_sleep(calls, done, stop_after):
    async def fake_sleep(seconds):
        calls.append(seconds)
        if len(calls) >= stop_after:
            done.set()
            await asyncio.Event().wait()
    return fake_sleep


def test_periodic_task_runs_callback_between_sleeps():
    runs = []

    async def run():
        calls, done = [], asyncio.Event()

        async def callback():
            runs.append(len(calls))

        task = PeriodicTask("job", 5, callback, sleep=_counting_sleep(calls, done, 3))
        task.start()
        await done.wait()
        await task.stop()
        return task, calls

    task, calls = asyncio.run(run())
    assert runs == [0, 1, 2]
    assert calls == [5, 5, 5]
    assert task.iterations == 3
    assert task.is_running is False


def test_failing_callback_does_not_stop_the_loop():
    async def run():
        calls, done = [], asyncio.Event()

        async def callback():
            raise RuntimeError("boom")

        task = PeriodicTask("job", 1, callback, sleep=_counting_sleep(calls, done, 2))
        task.start()
        await done.wait()
        await task.stop()
        return task

    assert asyncio.run(run()).iterations == 2


def test_delayed_start_sleeps_first():
    runs = []

    async def run():
        calls, done = [], asyncio.Event()

        async def callback():
            runs.append(True)

        task = PeriodicTask("job", 2, callback, sleep=_counting_sleep(calls, done, 1),
                            run_immediately=False)
        task.start()
        await done.wait()
        await task.stop()

    asyncio.run(run())
    assert runs == []


def test_interval_must_be_positive():
    async def callback():
        pass

    with pytest.raises(ValueError):
        PeriodicTask("job", 0, callback)


def test_managed_event_loop_cancels_tracked_tasks():
    async def run():
        loop = ManagedEventLoop()
        await loop.start()
        task = loop.add_task(asyncio.Event().wait(), name="waiter")
        await asyncio.sleep(0)
        await loop.stop()
        return loop, task

    loop, task = asyncio.run(run())
    assert task.cancelled()
    assert loop.shutdown_event.is_set()
    assert not loop.running_tasks


class _Service:
    def __init__(self, name, log, fail_on_stop=False):
        self.name = name
        self.log = log
        self.fail_on_stop = fail_on_stop

    async def start(self):
        self.log.append(f"start {self.name}")

    async def stop(self):
        self.log.append(f"stop {self.name}")
        if self.fail_on_stop:
            raise RuntimeError("stop failed")


def test_application_starts_in_order_and_stops_in_reverse():
    log = []
    app = Application()
    app.register_service("a", _Service("a", log))
    app.register_service("b", _Service("b", log, fail_on_stop=True))
    app.register_service("c", _Service("c", log))

    async def run():
        await app.start()
        await app.stop()

    asyncio.run(run())
    assert log == ["start a", "start b", "start c", "stop c", "stop b", "stop a"]
    assert app.get_service("b").name == "b"


class _BrokenService(_Service):
    async def start(self):
        raise RuntimeError("cannot start")


def test_failed_start_stops_already_started_services():
    log = []
    app = Application()
    app.register_service("a", _Service("a", log))
    app.register_service("b", _BrokenService("b", log))
    app.register_service("c", _Service("c", log))

    with pytest.raises(RuntimeError, match="cannot start"):
        asyncio.run(app.start())
    assert log == ["start a", "stop a"]


def test_duplicate_service_names_are_rejected():
    app = Application()
    app.register_service("a", object())
    with pytest.raises(ValueError):
        app.register_service("a", object())


def test_periodic_task_spawned_through_managed_loop_is_cancelled_on_stop():
    async def run():
        loop = ManagedEventLoop()
        await loop.start()
        calls, done = [], asyncio.Event()

        async def callback():
            pass

        task = PeriodicTask("job", 5, callback, sleep=_counting_sleep(calls, done, 1),
                            event_loop=loop)
        spawned = task.start()
        await done.wait()
        tracked = spawned in loop.running_tasks
        await loop.stop()
        return task, spawned, tracked

    task, spawned, tracked = asyncio.run(run())
    assert tracked
    assert spawned.cancelled()
    assert task.is_running is False
