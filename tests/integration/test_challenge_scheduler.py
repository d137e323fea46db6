"""Tests for automatic completion of challenges past their end date."""

import asyncio
from datetime import date
from uuid import uuid4

import pytest

from habitpact.challenges.exceptions import InvalidStateError
from habitpact.challenges.scheduler import challenge_scheduler_tick
from habitpact.infrastructure.scheduler import PeriodicScheduler
from tests.factories import make_challenge_config


async def _active_challenge(manager, creator_id, start: date, end: date):
    challenge = await manager.create_challenge_with_creator(
        make_challenge_config(start_date=start, end_date=end), creator_id
    )
    await manager.start_challenge(challenge.id, creator_id)
    return challenge


class TestChallengeSchedulerTick:
    @pytest.mark.asyncio
    async def test_completes_challenges_past_end_date(self, manager, creator_id):
        ended = await _active_challenge(manager, creator_id, date(2026, 10, 1), date(2026, 10, 14))
        running = await _active_challenge(manager, creator_id, date(2026, 10, 10), date(2026, 10, 20))

        result = await challenge_scheduler_tick(manager, today=date(2026, 10, 15))

        assert result == {"completed": [ended.id], "failed": []}
        assert (await manager.get_challenge(ended.id)).status == "completed"
        assert (await manager.get_challenge(running.id)).status == "active"

    @pytest.mark.asyncio
    async def test_last_day_is_still_running(self, manager, creator_id):
        await _active_challenge(manager, creator_id, date(2026, 10, 1), date(2026, 10, 15))
        result = await challenge_scheduler_tick(manager, today=date(2026, 10, 15))
        assert result["completed"] == []

    @pytest.mark.asyncio
    async def test_drafts_are_ignored(self, manager, creator_id):
        await manager.create_challenge_with_creator(
            make_challenge_config(start_date=date(2026, 1, 1), days=5), creator_id
        )
        result = await challenge_scheduler_tick(manager, today=date(2026, 10, 15))
        assert result["completed"] == []

    @pytest.mark.asyncio
    async def test_cascade_applies_to_auto_completion(self, manager, creator_id):
        challenge = await _active_challenge(manager, creator_id, date(2026, 10, 1), date(2026, 10, 5))
        invitee = uuid4()
        await manager.invite(challenge.id, invitee, creator_id)

        await challenge_scheduler_tick(manager, today=date(2026, 10, 6))

        statuses = {p.user_id: p.status for p in await manager.list_participants(challenge.id)}
        assert statuses == {creator_id: "completed", invitee: "withdrawn"}

    @pytest.mark.asyncio
    async def test_failures_are_reported_and_skipped(self, manager, creator_id, monkeypatch):
        first = await _active_challenge(manager, creator_id, date(2026, 10, 1), date(2026, 10, 2))
        second = await _active_challenge(manager, creator_id, date(2026, 10, 1), date(2026, 10, 3))

        real_complete = manager.complete_challenge

        async def flaky_complete(challenge_id, actor_id=None):
            if challenge_id == first.id:
                raise InvalidStateError("challenge", challenge_id, "cancelled", "completed")
            return await real_complete(challenge_id, actor_id)

        monkeypatch.setattr(manager, "complete_challenge", flaky_complete)

        result = await challenge_scheduler_tick(manager, today=date(2026, 10, 10))

        assert result["completed"] == [second.id]
        assert result["failed"] == [{"challenge_id": str(first.id), "error_type": "invalid_state"}]

    @pytest.mark.asyncio
    async def test_second_tick_is_a_no_op(self, manager, creator_id):
        await _active_challenge(manager, creator_id, date(2026, 10, 1), date(2026, 10, 2))
        await challenge_scheduler_tick(manager, today=date(2026, 10, 10))
        result = await challenge_scheduler_tick(manager, today=date(2026, 10, 10))
        assert result == {"completed": [], "failed": []}


class TestPeriodicScheduler:
    @pytest.mark.asyncio
    async def test_stop_ends_the_loop(self):
        calls = []

        async def task():
            calls.append(1)

        scheduler = PeriodicScheduler()
        scheduler.register("counter", 0, task)
        await scheduler.start()
        await asyncio.sleep(0)
        await scheduler.stop()
        ran = len(calls)

        for _ in range(5):
            await asyncio.sleep(0)
        assert ran >= 1
        assert len(calls) == ran

    @pytest.mark.asyncio
    async def test_task_runs_on_start(self):
        calls = []

        async def task():
            calls.append(1)

        scheduler = PeriodicScheduler()
        scheduler.register("counter", 3600, task)
        await scheduler.start()
        await asyncio.sleep(0)
        await scheduler.stop()

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_task_errors_do_not_stop_the_loop(self):
        calls = []

        async def task():
            calls.append(1)
            raise RuntimeError("boom")

        scheduler = PeriodicScheduler()
        scheduler.register("broken", 0, task)
        await scheduler.start()
        for _ in range(5):
            await asyncio.sleep(0)
        await scheduler.stop()

        assert len(calls) >= 2
