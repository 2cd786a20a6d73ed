"""Tests for the cooperative scheduler."""

import logging
from datetime import timedelta

import pytest

from shieldgrid.session import Scheduler, TaskGroup

pytestmark = [pytest.mark.unit, pytest.mark.session]


@pytest.fixture
def scheduler(clock):
    return Scheduler(clock)


def test_first_run_after_one_interval(scheduler, clock):
    calls = []
    scheduler.every(1000, lambda: calls.append(1))

    assert scheduler.run_pending() == 0
    clock.advance(milliseconds=999)
    assert scheduler.run_pending() == 0
    clock.advance(milliseconds=1)
    assert scheduler.run_pending() == 1
    assert calls == [1]


def test_run_immediately(scheduler):
    calls = []
    scheduler.every(1000, lambda: calls.append(1), run_immediately=True)
    scheduler.run_pending()
    assert calls == [1]


def test_runs_on_every_interval(scheduler, clock):
    task = scheduler.every(100, lambda: None, name="tick")
    for _ in range(5):
        clock.advance(milliseconds=100)
        scheduler.run_pending()

    assert task.run_count == 5
    assert task.name == "tick"


def test_missed_runs_are_not_replayed(scheduler, clock):
    task = scheduler.every(1000, lambda: None)
    clock.advance(milliseconds=5500)

    assert scheduler.run_pending() == 1
    assert scheduler.run_pending() == 0
    assert task.next_due == clock.now() + timedelta(milliseconds=1000)
    assert scheduler.time_until_next() == timedelta(milliseconds=1000)


@pytest.mark.parametrize("interval", [0, -5])
def test_rejects_non_positive_interval(scheduler, interval):
    with pytest.raises(ValueError):
        scheduler.every(interval, lambda: None)


def test_failing_task_is_logged_and_rescheduled(scheduler, clock, caplog):
    calls = []

    def broken():
        raise RuntimeError("boom")

    bad = scheduler.every(100, broken, name="broken")
    scheduler.every(100, lambda: calls.append(1), name="good")

    clock.advance(milliseconds=100)
    with caplog.at_level(logging.ERROR, logger="shieldgrid.session.scheduler"):
        assert scheduler.run_pending() == 2

    assert calls == [1]
    assert bad.error_count == 1
    assert "broken" in caplog.text

    clock.advance(milliseconds=100)
    scheduler.run_pending()
    assert bad.run_count == 2


def test_cancel_token(scheduler, clock):
    calls = []
    task = scheduler.every(100, lambda: calls.append(1))

    task.cancel()
    clock.advance(milliseconds=500)

    assert scheduler.run_pending() == 0
    assert calls == []
    assert scheduler.tasks == []


def test_task_cancelling_itself(scheduler, clock):
    holder = {}

    def once():
        holder["task"].cancel()

    holder["task"] = scheduler.every(100, once)
    clock.advance(milliseconds=100)
    scheduler.run_pending()
    clock.advance(milliseconds=100)

    assert scheduler.run_pending() == 0
    assert holder["task"].run_count == 1


def test_task_group_cancels_together(scheduler, clock):
    group = TaskGroup()
    scheduler.every(100, lambda: None, group=group)
    scheduler.every(200, lambda: None, group=group)
    other = scheduler.every(100, lambda: None)

    assert len(group) == 2
    group.cancel()

    assert group.active == []
    assert scheduler.tasks == [other]


def test_time_until_next(scheduler, clock):
    assert scheduler.time_until_next() is None

    scheduler.every(300, lambda: None)
    scheduler.every(100, lambda: None)
    assert scheduler.time_until_next() == timedelta(milliseconds=100)

    clock.advance(milliseconds=250)
    assert scheduler.time_until_next() == timedelta(0)


def test_cancel_all(scheduler, clock):
    tasks = [scheduler.every(100, lambda: None) for _ in range(3)]

    scheduler.cancel_all()
    clock.advance(milliseconds=100)

    assert scheduler.run_pending() == 0
    assert all(t.cancelled for t in tasks)
    assert scheduler.time_until_next() is None
