"""
Periodic alert evaluation worker.

Evaluates every registered server on a fixed interval so notifications go
out even when nobody has the dashboard open. Requests still evaluate on
demand; this worker is opt-in (``alerts-worker`` CLI command).

Guarantees:
- At most ``check_concurrency`` servers are evaluated at once
- One slow server cannot hold a cycle past ``server_check_timeout_seconds``
- Cycles never overlap; a cycle that outlasts the interval delays the next
- Setting the stop event ends the loop at the next await point
"""

import asyncio
import time
from typing import Any

import structlog

from src.alerts.config import AlertConfig
from src.alerts.service import AlertService
from src.rabbitmq.repository import ServerRepository
from src.rabbitmq.schemas import RabbitMQServer

logger = structlog.get_logger(__name__)


class AlertScheduler:
    """
    Runs evaluation cycles over all servers until stopped.

    Usage:
        stop = asyncio.Event()
        scheduler = AlertScheduler(service, server_repo)
        await scheduler.run(stop)  # Returns once stop is set
    """

    def __init__(
        self,
        service: AlertService,
        server_repo: ServerRepository,
        config: AlertConfig | None = None,
    ) -> None:
        self._service = service
        self._server_repo = server_repo
        self._config = config or AlertConfig()
        self._cycle_lock = asyncio.Lock()
        self._cycles = 0

    @property
    def cycles(self) -> int:
        """Number of completed cycles."""
        return self._cycles

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run cycles every ``check_interval_seconds`` until ``stop_event`` is set."""
        logger.info(
            "Starting alert scheduler",
            interval_seconds=self._config.check_interval_seconds,
            concurrency=self._config.check_concurrency,
        )

        while not stop_event.is_set():
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Alert scheduler cycle failed", error=str(e))

            try:
                await asyncio.wait_for(
                    stop_event.wait(),
                    timeout=self._config.check_interval_seconds,
                )
            except asyncio.TimeoutError:
                continue

        logger.info("Alert scheduler stopped", cycles=self._cycles)

    async def run_cycle(self) -> dict[str, Any]:
        """
        Evaluate every server once.

        Returns:
            Cycle statistics (servers, succeeded, failed, skipped, elapsed).
        """
        if self._cycle_lock.locked():
            logger.warning("Previous alert cycle still running, skipping")
            return {"skipped": True}

        async with self._cycle_lock:
            start_time = time.monotonic()
            servers = await self._server_repo.list_all()
            semaphore = asyncio.Semaphore(self._config.check_concurrency)

            async def check(server: RabbitMQServer) -> bool:
                async with semaphore:
                    return await self._check_server(server)

            outcomes = await asyncio.gather(*(check(server) for server in servers))
            self._cycles += 1

            stats = {
                "skipped": False,
                "servers": len(servers),
                "succeeded": sum(1 for ok in outcomes if ok),
                "failed": sum(1 for ok in outcomes if not ok),
                "elapsed_seconds": round(time.monotonic() - start_time, 2),
            }
            logger.info("Alert cycle completed", **stats)
            return stats

    async def _check_server(self, server: RabbitMQServer) -> bool:
        try:
            result = await asyncio.wait_for(
                self._service.evaluate_server(server, trigger="scheduler"),
                timeout=self._config.server_check_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Server check timed out",
                server_id=server.id,
                timeout_seconds=self._config.server_check_timeout_seconds,
            )
            return False
        except Exception as e:
            logger.error("Server check failed", server_id=server.id, error=str(e))
            return False

        logger.debug(
            "Server checked",
            server_id=server.id,
            alerts=result.summary.total,
            critical=result.summary.critical,
        )
        return True
