"""
Periodic driver for the pod janitor.

Runs a sweep every ``scheduler.interval_seconds`` and pushes metrics to the
Pushgateway after each one. ``stop()`` (wired to SIGINT/SIGTERM in main.py)
ends the loop and abandons any in-flight API call of the current sweep.

Usage:
    scheduler = JanitorScheduler(config, janitor, recorder)
    await scheduler.start()  # Runs until stop()
"""

import asyncio
import contextlib

from loguru import logger

from pod_janitor.cleaner.janitor import PodJanitor, SweepResult
from pod_janitor.config import AppConfig
from pod_janitor.monitor.metrics import OutcomeRecorder


class JanitorScheduler:
    """Runs janitor sweeps on a fixed cadence.

    Usage:
        scheduler = JanitorScheduler(config, janitor, recorder)
        await scheduler.run_once()   # cron mode
        await scheduler.start()      # long-running mode
    """

    def __init__(
        self,
        config: AppConfig,
        janitor: PodJanitor,
        recorder: OutcomeRecorder,
    ) -> None:
        self._config = config
        self._janitor = janitor
        self._recorder = recorder
        self._stop_event = asyncio.Event()
        self._running = False
        self._sweeps = 0

    # ── Public API ──────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def sweeps(self) -> int:
        return self._sweeps

    async def start(self) -> None:
        """Sweep, push, sleep; repeat until stopped."""
        self._running = True
        self._stop_event.clear()
        logger.info(
            "Scheduler: starting janitor loop (namespace={}, interval={}s)",
            self._janitor.namespace,
            self._config.scheduler.interval_seconds,
        )

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Janitor loop error: {}", e)

            if not self._running:
                break
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._config.scheduler.interval_seconds,
                )

        logger.info("Scheduler: stopped after {} sweeps", self._sweeps)

    async def stop(self) -> None:
        """Signal the loop to stop and cancel the in-flight sweep call."""
        logger.info("Scheduler: stopping janitor loop")
        self._running = False
        self._stop_event.set()

    async def run_once(self) -> SweepResult:
        """Run a single sweep and push metrics afterwards."""
        result = await self._janitor.run_sweep(cancel=self._stop_event)
        self._sweeps += 1
        await asyncio.to_thread(
            self._recorder.push,
            self._config.metrics.pushgateway_url,
            self._config.metrics.job,
        )
        return result
