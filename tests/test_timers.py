"""Tests for the debounced timer helpers."""

from __future__ import annotations

import asyncio

import pytest

from marginalia.annotations import timers
from marginalia.annotations.timers import DebouncedTimers, DeferredScheduler, default_scheduler


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_deferred_scheduler_runs_due_callbacks_in_deadline_order() -> None:
    clock = FakeClock()
    scheduler = DeferredScheduler(clock)
    fired: list[str] = []
    scheduler.call_later(2.0, lambda: fired.append("late"))
    scheduler.call_later(1.0, lambda: fired.append("early"))
    skipped = scheduler.call_later(0.5, lambda: fired.append("cancelled"))
    skipped.cancel()

    assert scheduler.run_due() == 0
    clock.now += 1.5
    assert scheduler.run_due() == 1
    clock.now += 1.0
    assert scheduler.run_due() == 1
    assert fired == ["early", "late"]


def test_debounced_timers_restart_countdown_without_event_loop() -> None:
    clock = FakeClock()
    debounced = DebouncedTimers(1.2, clock=clock)
    fired: list[str] = []

    debounced.schedule("a", fired.append)
    clock.now += 1.0
    debounced.schedule("a", fired.append)
    clock.now += 1.0
    assert debounced.run_due() == 0
    assert debounced.is_pending("a")

    clock.now += 0.3
    assert debounced.run_due() == 1
    assert fired == ["a"]
    assert debounced.pending() == set()


def test_cancelled_key_never_fires() -> None:
    clock = FakeClock()
    debounced = DebouncedTimers(0.5, clock=clock)
    fired: list[str] = []
    debounced.schedule("a", fired.append)
    assert debounced.cancel("a")
    clock.now += 1.0
    assert debounced.run_due() == 0
    assert fired == []


def test_default_scheduler_falls_back_without_loop_or_qt(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(timers, "QApplication", None)
    fallback = DeferredScheduler()
    assert default_scheduler(fallback) is fallback


@pytest.mark.asyncio
async def test_default_scheduler_prefers_running_loop() -> None:
    loop = asyncio.get_running_loop()
    assert default_scheduler(DeferredScheduler()) is loop

    debounced = DebouncedTimers(0.0)
    done = asyncio.Event()
    debounced.schedule("a", lambda key: done.set())
    await asyncio.wait_for(done.wait(), timeout=1.0)
    assert not debounced.is_pending("a")
