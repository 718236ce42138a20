import asyncio

import pytest

from chatstats.database.guard import IDLE_MESSAGE, SerializationGuard, serialized


class Counter:
    def __init__(self) -> None:
        self.guard = SerializationGuard()
        self.value = 0
        self.seen_markers: list[str] = []

    @serialized
    async def bump(self) -> int:
        self.seen_markers.append(self.guard.lock_message)
        current = self.value
        await asyncio.sleep(0)
        self.value = current + 1
        return self.value

    @serialized
    async def bump_twice(self) -> int:
        await self.bump()
        return await self.bump()


class TestSerializationGuard:
    def test_idle_marker(self) -> None:
        guard = SerializationGuard()

        assert guard.lock_message == IDLE_MESSAGE
        assert guard.locked is False
        assert guard.status() == {
            "operation": IDLE_MESSAGE,
            "locked": False,
            "depth": 0,
            "held_for_seconds": None,
        }

    async def test_marker_names_operation_in_flight(self) -> None:
        guard = SerializationGuard()

        async with guard.hold("outer"):
            assert guard.lock_message == "outer"
            assert guard.locked is True
            async with guard.hold("inner"):
                assert guard.lock_message == "inner"
                assert guard.status()["depth"] == 2
            assert guard.lock_message == "outer"

        assert guard.lock_message == IDLE_MESSAGE
        assert guard.locked is False

    async def test_marker_cleared_on_failure(self) -> None:
        guard = SerializationGuard()

        with pytest.raises(RuntimeError):
            async with guard.hold("failing"):
                raise RuntimeError("boom")

        assert guard.lock_message == IDLE_MESSAGE
        assert guard.locked is False

    async def test_other_tasks_wait_for_holder(self) -> None:
        guard = SerializationGuard()
        release = asyncio.Event()
        order: list[str] = []

        async def holder() -> None:
            async with guard.hold("holder"):
                order.append("holder-in")
                await release.wait()
                order.append("holder-out")

        async def waiter() -> None:
            async with guard.hold("waiter"):
                order.append("waiter-in")

        holder_task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        waiter_task = asyncio.create_task(waiter())
        await asyncio.sleep(0.01)

        assert order == ["holder-in"]
        assert guard.lock_message == "holder"

        release.set()
        await asyncio.gather(holder_task, waiter_task)

        assert order == ["holder-in", "holder-out", "waiter-in"]

    async def test_held_for_is_reported(self) -> None:
        guard = SerializationGuard()

        async with guard.hold("slow"):
            await asyncio.sleep(0.01)
            status = guard.status()

        assert status["operation"] == "slow"
        assert status["locked"] is True
        assert status["held_for_seconds"] >= 0


class TestSerializedDecorator:
    async def test_marker_is_qualified_name(self) -> None:
        counter = Counter()

        await counter.bump()

        assert counter.seen_markers == ["Counter.bump"]

    async def test_reentrant_calls_do_not_deadlock(self) -> None:
        counter = Counter()

        result = await asyncio.wait_for(counter.bump_twice(), timeout=1)

        assert result == 2
        assert counter.guard.lock_message == IDLE_MESSAGE

    async def test_concurrent_calls_are_serialized(self) -> None:
        counter = Counter()

        await asyncio.gather(*(counter.bump() for _ in range(50)))

        assert counter.value == 50
