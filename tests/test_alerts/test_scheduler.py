"""Tests for the periodic alert scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.alerts.config import AlertConfig
from src.alerts.scheduler import AlertScheduler
from src.alerts.schemas import AlertSummary
from src.rabbitmq.schemas import RabbitMQServer


def _server(server_id: str) -> RabbitMQServer:
    return RabbitMQServer(id=server_id, workspace_id="ws-1", name=server_id, host="localhost")


def _result() -> MagicMock:
    result = MagicMock()
    result.summary = AlertSummary(critical=1, warning=0, info=0)
    return result


@pytest.fixture
def server_repo():
    repo = AsyncMock()
    repo.list_all.return_value = [_server("srv-1"), _server("srv-2"), _server("srv-3")]
    return repo


@pytest.fixture
def service():
    service = AsyncMock()
    service.evaluate_server.return_value = _result()
    return service


@pytest.fixture
def config():
    return AlertConfig(
        check_interval_seconds=10,
        check_concurrency=2,
        server_check_timeout_seconds=0.2,
    )


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_evaluates_every_server(self, service, server_repo, config):
        scheduler = AlertScheduler(service, server_repo, config)

        stats = await scheduler.run_cycle()

        assert stats["skipped"] is False
        assert stats["servers"] == 3
        assert stats["succeeded"] == 3
        assert stats["failed"] == 0
        assert scheduler.cycles == 1
        for call in service.evaluate_server.await_args_list:
            assert call.kwargs["trigger"] == "scheduler"

    @pytest.mark.asyncio
    async def test_failing_server_does_not_stop_cycle(self, service, server_repo, config):
        service.evaluate_server.side_effect = [
            _result(),
            RuntimeError("management API down"),
            _result(),
        ]
        scheduler = AlertScheduler(service, server_repo, config)

        stats = await scheduler.run_cycle()

        assert stats["succeeded"] == 2
        assert stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_slow_server_times_out(self, service, server_repo, config):
        async def evaluate(server, trigger):
            if server.id == "srv-2":
                await asyncio.sleep(5)
            return _result()

        service.evaluate_server.side_effect = evaluate
        scheduler = AlertScheduler(service, server_repo, config)

        stats = await scheduler.run_cycle()

        assert stats["succeeded"] == 2
        assert stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, service, server_repo, config):
        active = 0
        peak = 0

        async def evaluate(server, trigger):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return _result()

        service.evaluate_server.side_effect = evaluate
        scheduler = AlertScheduler(service, server_repo, config)

        await scheduler.run_cycle()

        assert peak == 2

    @pytest.mark.asyncio
    async def test_overlapping_cycle_is_skipped(self, service, server_repo, config):
        release = asyncio.Event()

        async def evaluate(server, trigger):
            await release.wait()
            return _result()

        service.evaluate_server.side_effect = evaluate
        scheduler = AlertScheduler(service, server_repo, config.model_copy(
            update={"server_check_timeout_seconds": 5.0},
        ))

        first = asyncio.create_task(scheduler.run_cycle())
        await asyncio.sleep(0)

        assert await scheduler.run_cycle() == {"skipped": True}

        release.set()
        stats = await first
        assert stats["succeeded"] == 3

    @pytest.mark.asyncio
    async def test_no_servers(self, service, config):
        repo = AsyncMock()
        repo.list_all.return_value = []
        scheduler = AlertScheduler(service, repo, config)

        stats = await scheduler.run_cycle()

        assert stats["servers"] == 0
        service.evaluate_server.assert_not_awaited()


class TestRun:
    @pytest.mark.asyncio
    async def test_stops_when_event_set(self, service, server_repo, config):
        scheduler = AlertScheduler(service, server_repo, config)
        stop = asyncio.Event()

        async def stop_after_first_cycle(server, trigger):
            stop.set()
            return _result()

        service.evaluate_server.side_effect = stop_after_first_cycle

        await asyncio.wait_for(scheduler.run(stop), timeout=2)

        assert scheduler.cycles == 1

    @pytest.mark.asyncio
    async def test_cycle_error_is_logged_not_raised(self, service, config):
        repo = AsyncMock()
        stop = asyncio.Event()

        async def fail_then_stop():
            stop.set()
            raise ConnectionError("database unavailable")

        repo.list_all.side_effect = fail_then_stop
        scheduler = AlertScheduler(service, repo, config)

        await asyncio.wait_for(scheduler.run(stop), timeout=2)

        assert scheduler.cycles == 0
