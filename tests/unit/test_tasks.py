"""Unit tests for detached background tasks."""

import asyncio

from metabus.utils import BackgroundTasks


class TestBackgroundTasks:
    """Test BackgroundTasks."""

    async def test_spawn_and_drain(self):
        tasks = BackgroundTasks("test")
        done = []

        async def work():
            await asyncio.sleep(0)
            done.append(True)

        tasks.spawn(work(), label="work")
        assert len(tasks) == 1

        await tasks.drain()

        assert done == [True]
        assert len(tasks) == 0

    async def test_failure_is_counted_not_raised(self):
        tasks = BackgroundTasks("test")

        async def fail():
            raise RuntimeError("boom")

        tasks.spawn(fail(), label="fail")
        await tasks.drain()

        assert tasks.get_stats() == {"pending_tasks": 0, "failed_tasks": 1}

    async def test_drain_waits_for_tasks_spawned_meanwhile(self):
        tasks = BackgroundTasks("test")
        done = []

        async def child():
            done.append("child")

        async def parent():
            tasks.spawn(child(), label="child")
            done.append("parent")

        tasks.spawn(parent(), label="parent")
        await tasks.drain()

        assert done == ["parent", "child"]

    async def test_cancel_all(self):
        tasks = BackgroundTasks("test")

        tasks.spawn(asyncio.sleep(60), label="sleeper")
        await tasks.cancel_all()

        assert len(tasks) == 0
        assert tasks.get_stats()["failed_tasks"] == 0
