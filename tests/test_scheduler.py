import asyncio
import threading

from gesture_teleop.scheduler import FrameScheduler


async def wait_until(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)


def test_rapid_submits_keep_only_the_last_frame():
    async def scenario():
        seen = []
        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(frame):
            seen.append(frame)
            if frame == 0:
                started.set()
                await release.wait()

        scheduler = FrameScheduler(handler)
        lane = asyncio.create_task(scheduler.run())

        scheduler.submit(0)
        await asyncio.wait_for(started.wait(), 2.0)
        for i in range(1, 10):
            scheduler.submit(i)
        pending = scheduler.pending

        release.set()
        await wait_until(lambda: not scheduler.busy)
        scheduler.stop()
        await lane
        return seen, pending, scheduler.get_stats()

    seen, pending, stats = asyncio.run(scenario())

    assert pending == 9
    assert seen == [0, 9]
    assert stats["submitted"] == 10
    assert stats["superseded"] == 8
    assert stats["processed"] == 2
    assert not stats["pending"]


def test_failed_frame_does_not_stall_the_lane():
    async def scenario():
        seen = []

        async def handler(frame):
            seen.append(frame)
            if frame == "bad":
                raise RuntimeError("boom")

        scheduler = FrameScheduler(handler)
        lane = asyncio.create_task(scheduler.run())

        scheduler.submit("bad")
        await wait_until(lambda: scheduler.stats.failed == 1)
        scheduler.submit("good")
        await wait_until(lambda: scheduler.stats.processed == 1)

        scheduler.stop()
        await lane
        return seen

    assert asyncio.run(scenario()) == ["bad", "good"]


def test_failure_in_flight_promotes_latest_pending_frame():
    async def scenario():
        seen = []
        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(frame):
            seen.append(frame)
            if frame == 0:
                started.set()
                await release.wait()
                raise RuntimeError("inference failed")

        scheduler = FrameScheduler(handler)
        lane = asyncio.create_task(scheduler.run())

        scheduler.submit(0)
        await asyncio.wait_for(started.wait(), 2.0)
        for i in range(1, 6):
            scheduler.submit(i)

        release.set()
        await wait_until(lambda: not scheduler.busy)
        scheduler.stop()
        await lane
        return seen, scheduler.get_stats()

    seen, stats = asyncio.run(scenario())

    assert seen == [0, 5]
    assert stats["failed"] == 1
    assert stats["processed"] == 1
    assert stats["superseded"] == 4
    assert not stats["pending"]


def test_submit_from_another_thread():
    async def scenario():
        done = asyncio.Event()
        seen = []

        async def handler(frame):
            seen.append(frame)
            done.set()

        scheduler = FrameScheduler(handler)
        lane = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.01)

        producer = threading.Thread(target=scheduler.submit, args=("frame",))
        producer.start()
        producer.join()

        await asyncio.wait_for(done.wait(), 2.0)
        scheduler.stop()
        await lane
        return seen

    assert asyncio.run(scenario()) == ["frame"]


def test_stop_while_idle():
    async def scenario():
        async def handler(frame):
            pass

        scheduler = FrameScheduler(handler)
        lane = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.01)
        scheduler.stop()
        await asyncio.wait_for(lane, 1.0)
        return scheduler.get_stats()

    stats = asyncio.run(scenario())
    assert stats["processed"] == 0
    assert not stats["busy"]
