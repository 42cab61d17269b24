# Replisync Runner Tests
# Tests for single cycles and the retry scheduler

import asyncio

import pytest

from replisync.errors import PushHandlerError, ReplicationError
from replisync.sync.checkpoint import MemoryCheckpointStore
from replisync.sync.collection import MemoryCollection
from replisync.sync.events import EventHub
from replisync.sync.phases import PullPhase, PushPhase
from replisync.sync.retry import DelayedCall, RetryScheduler
from replisync.sync.runner import CycleInProgressError, CycleRunner, ReplicationStatus


def make_runner(collection, *, push=None, pull=None, store=None, on_success=None):
    status = ReplicationStatus()
    hub = EventHub()
    push_phase = pull_phase = None
    if push is not None:
        push_phase = PushPhase(
            collection=collection,
            handler=push,
            events=hub,
            replication_identifier="todos-remote",
            is_stopped=lambda: status.is_stopped,
            batch_size=2,
        )
    if pull is not None:
        pull_phase = PullPhase(
            collection=collection,
            handler=pull,
            checkpoint_store=store or MemoryCheckpointStore(),
            checkpoint_key="todos:todos-remote",
            events=hub,
            replication_identifier="todos-remote",
            is_stopped=lambda: status.is_stopped,
        )
    runner = CycleRunner(
        status=status,
        events=hub,
        replication_identifier="todos-remote",
        push_phase=push_phase,
        pull_phase=pull_phase,
        on_success=on_success,
    )
    return runner, status, hub


class TestCycleRunner:
    """Tests for CycleRunner."""

    @pytest.mark.asyncio
    async def test_push_runs_before_pull(self, collection: MemoryCollection):
        order = []

        async def push(documents):
            order.append("push")

        async def pull(checkpoint):
            order.append("pull")
            return {"documents": [], "has_more_documents": False}

        collection.upsert({"id": "a"})
        runner, status, _ = make_runner(collection, push=push, pull=pull)

        result = await runner.run_cycle()

        assert result.success is True
        assert order == ["push", "pull"]
        assert status.initial_replication_complete is True
        assert status.is_active is False

    @pytest.mark.asyncio
    async def test_active_transitions(self, collection: MemoryCollection, remote):
        runner, _, hub = make_runner(collection, pull=remote.pull)
        transitions = []
        hub.active.subscribe(transitions.append)

        await runner.run_cycle()
        await runner.run_cycle()

        assert transitions == [False, True, False, True, False]

    @pytest.mark.asyncio
    async def test_push_failure_skips_pull_and_emits_error(self, collection: MemoryCollection, remote):
        remote.fail_pushes = 1
        collection.upsert({"id": "a"})
        runner, status, hub = make_runner(collection, push=remote.push, pull=remote.pull)
        errors = []
        hub.errors.subscribe(errors.append)

        result = await runner.run_cycle()

        assert result.success is False
        assert result.failed is True
        assert isinstance(result.error, PushHandlerError)
        assert errors == [result.error]
        assert remote.pull_calls == []
        assert status.initial_replication_complete is False
        assert status.failures == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, collection: MemoryCollection, monkeypatch):
        runner, _, _ = make_runner(collection, push=lambda docs: None)

        async def explode():
            raise KeyError("bug")

        monkeypatch.setattr(runner.push_phase, "run", explode)
        result = await runner.run_cycle()

        assert isinstance(result.error, ReplicationError)
        assert isinstance(result.error.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_second_concurrent_cycle_is_refused(self, collection: MemoryCollection, gate_factory):
        gate = gate_factory({"documents": [], "has_more_documents": False})
        runner, _, _ = make_runner(collection, pull=gate)

        first = asyncio.ensure_future(runner.run_cycle())
        await gate.entered.wait()

        with pytest.raises(CycleInProgressError):
            await runner.run_cycle()

        gate.released.set()
        assert (await first).success is True
        assert gate.max_running == 1

    @pytest.mark.asyncio
    async def test_on_success_callback(self, collection: MemoryCollection, remote):
        results = []
        runner, _, _ = make_runner(collection, pull=remote.pull, on_success=results.append)

        result = await runner.run_cycle()

        assert results == [result]

    @pytest.mark.asyncio
    async def test_cancelled_cycle_emits_no_error(self, collection: MemoryCollection, gate_factory):
        gate = gate_factory()
        collection.upsert({"id": "a"})
        runner, status, hub = make_runner(collection, push=gate)
        errors = []
        hub.errors.subscribe(errors.append)

        task = asyncio.ensure_future(runner.run_cycle())
        await gate.entered.wait()
        status.is_stopped = True
        gate.released.set()
        result = await task

        assert result.cancelled is True
        assert result.failed is False
        assert errors == []
        # the in-flight result was discarded, so the write is still pending
        assert collection.pending_count("todos-remote") == 1


class TestRetryScheduler:
    """Tests for RetryScheduler and DelayedCall."""

    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        fired = []
        retry = RetryScheduler(30, lambda: fired.append(asyncio.get_running_loop().time()))
        start = asyncio.get_running_loop().time()

        retry.schedule()
        assert retry.pending is True
        await asyncio.sleep(0.06)

        assert len(fired) == 1
        assert fired[0] - start >= 0.025
        assert retry.pending is False

    @pytest.mark.asyncio
    async def test_cancel(self):
        fired = []
        retry = RetryScheduler(20, lambda: fired.append(1))

        retry.schedule()
        retry.cancel()
        await asyncio.sleep(0.04)

        assert fired == []

    @pytest.mark.asyncio
    async def test_reschedule_replaces_previous(self):
        fired = []
        call = DelayedCall(20, lambda: fired.append(1))

        call.schedule()
        call.schedule()
        await asyncio.sleep(0.05)

        assert fired == [1]
