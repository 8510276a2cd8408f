"""Tests for cancellable scheduled tasks."""

import asyncio

from workshop_sim.systems.scheduler import AsyncioScheduler, ScheduledTask, SimulatedScheduler


class TestScheduledTask:
    def test_fires_once(self):
        calls = []
        task = ScheduledTask(0, lambda: calls.append(1))
        task.fire()
        task.fire()
        assert calls == [1]
        assert task.fired and not task.pending

    def test_cancel_prevents_fire(self):
        calls = []
        task = ScheduledTask(0, lambda: calls.append(1))
        assert task.cancel() is True
        assert task.cancel() is False
        task.fire()
        assert calls == []

    def test_callback_error_logged(self, caplog):
        def broken():
            raise RuntimeError("timer blew up")

        ScheduledTask(0, broken).fire()
        assert "Scheduled callback failed" in caplog.text


class TestSimulatedScheduler:
    """Manual clock."""

    def test_nothing_fires_until_advanced(self):
        clock = SimulatedScheduler()
        calls = []
        clock.schedule(100, lambda: calls.append("a"))
        assert calls == []
        assert clock.pending_count == 1

    def test_fires_when_due(self):
        clock = SimulatedScheduler()
        calls = []
        clock.schedule(100, lambda: calls.append("a"))

        assert clock.advance(99) == 0
        assert clock.advance(1) == 1
        assert calls == ["a"]
        assert clock.now_ms == 100

    def test_due_order_then_schedule_order(self):
        clock = SimulatedScheduler()
        calls = []
        clock.schedule(200, lambda: calls.append("late"))
        clock.schedule(100, lambda: calls.append("first"))
        clock.schedule(100, lambda: calls.append("second"))

        clock.advance(500)

        assert calls == ["first", "second", "late"]

    def test_tasks_scheduled_by_callbacks_fire_in_window(self):
        clock = SimulatedScheduler()
        calls = []

        def chain():
            calls.append("chain")
            clock.schedule(50, lambda: calls.append("follow-up"))

        clock.schedule(100, chain)
        clock.advance(200)

        assert calls == ["chain", "follow-up"]

    def test_cancelled_tasks_skipped(self):
        clock = SimulatedScheduler()
        calls = []
        task = clock.schedule(10, lambda: calls.append("a"))
        task.cancel()

        assert clock.run_all() == 0
        assert clock.pending_count == 0

    def test_run_all(self):
        clock = SimulatedScheduler()
        calls = []
        clock.schedule(5000, lambda: calls.append("a"))
        assert clock.run_all() == 1
        assert clock.now_ms == 5000


class TestAsyncioScheduler:
    def test_fires_on_loop(self):
        calls = []

        async def scenario():
            scheduler = AsyncioScheduler()
            scheduler.schedule(1, lambda: calls.append("fired"))
            cancelled = scheduler.schedule(1, lambda: calls.append("cancelled"))
            cancelled.cancel()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())
        assert calls == ["fired"]
