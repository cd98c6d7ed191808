"""
Pod janitor — periodic cleanup of terminated pods past their retention.

One sweep lists Succeeded pods, then Failed pods, and deletes every pod
whose finish time is older than the retention configured for its phase.
Errors are counted and logged, never raised: whatever a sweep leaves
behind is picked up again by the next one.

Usage:
    janitor = PodJanitor(client, recorder, "jobs", timedelta(hours=1), timedelta(0))
    result = await janitor.run_sweep()
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from loguru import logger

from pod_janitor.cleaner.policy import PHASE_FAILED, PHASE_SUCCEEDED, should_delete_pod
from pod_janitor.cleaner.scanner import (
    LIST_PAGE_SIZE,
    ListingError,
    PodScanner,
    SweepCancelledError,
    await_or_cancel,
)
from pod_janitor.kube.client import Pod, PodStore
from pod_janitor.monitor.metrics import Outcome, OutcomeRecorder

SWEEP_PHASES = (PHASE_SUCCEEDED, PHASE_FAILED)


def phase_selector(phase: str) -> str:
    return f"status.phase={phase}"


@dataclass
class PhaseResult:
    """What happened to one phase during a sweep."""

    phase: str
    scanned: int = 0
    deleted: int = 0
    delete_errors: int = 0
    listing_error: str | None = None
    cancelled: bool = False


@dataclass
class SweepResult:
    """Summary of a single sweep, for logging and tests."""

    phases: list[PhaseResult] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def deleted(self) -> int:
        return sum(p.deleted for p in self.phases)

    @property
    def delete_errors(self) -> int:
        return sum(p.delete_errors for p in self.phases)

    @property
    def listing_errors(self) -> int:
        return sum(1 for p in self.phases if p.listing_error is not None)


class PodJanitor:
    """Deletes terminated pods that have outlived their retention window.

    Usage:
        janitor = PodJanitor(client, recorder, "jobs",
                             delete_successful_after=timedelta(hours=1),
                             delete_failed_after=timedelta(days=1))
        result = await janitor.run_sweep()
    """

    def __init__(
        self,
        store: PodStore,
        recorder: OutcomeRecorder,
        namespace: str,
        delete_successful_after: timedelta,
        delete_failed_after: timedelta,
        page_size: int = LIST_PAGE_SIZE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._namespace = namespace
        self._delete_successful_after = delete_successful_after
        self._delete_failed_after = delete_failed_after
        self._scanner = PodScanner(store, page_size=page_size)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def namespace(self) -> str:
        return self._namespace

    async def run_sweep(self, cancel: asyncio.Event | None = None) -> SweepResult:
        """Execute one sweep over Succeeded then Failed pods.

        Args:
            cancel: Optional signal; once set, the in-flight API call is
                abandoned and counted as a listing or delete error.

        Returns:
            SweepResult with per-phase counts.
        """
        start = time.monotonic()
        result = SweepResult()
        try:
            for phase in SWEEP_PHASES:
                result.phases.append(await self._process_phase(phase, cancel))
        finally:
            result.duration_ms = (time.monotonic() - start) * 1000
            self._recorder.record_duration(result.duration_ms)

        logger.info(
            "Janitor: sweep of {} done in {:.0f}ms (deleted={}, errors: delete={}, listing={})",
            self._namespace,
            result.duration_ms,
            result.deleted,
            result.delete_errors,
            result.listing_errors,
        )
        return result

    async def _process_phase(self, phase: str, cancel: asyncio.Event | None) -> PhaseResult:
        selector = phase_selector(phase)
        phase_result = PhaseResult(phase=phase)
        try:
            async for pods in self._scanner.scan(self._namespace, selector, cancel):
                phase_result.scanned += len(pods)
                await self._clean(pods, phase_result, cancel)
        except ListingError as e:
            self._recorder.record_outcome(Outcome.LISTING_ERROR)
            phase_result.listing_error = str(e)
            logger.error("Janitor: failed to process {} pods: {}", phase.lower(), e)
        except SweepCancelledError:
            phase_result.cancelled = True
        return phase_result

    async def _clean(
        self,
        pods: list[Pod],
        phase_result: PhaseResult,
        cancel: asyncio.Event | None,
    ) -> None:
        now = self._clock()
        for pod in pods:
            if not should_delete_pod(
                pod, now, self._delete_successful_after, self._delete_failed_after
            ):
                continue

            try:
                await await_or_cancel(self._store.delete_pod(self._namespace, pod.name), cancel)
            except SweepCancelledError:
                # Only the in-flight delete counts; the rest of the page is left alone
                self._recorder.record_outcome(Outcome.DELETE_ERROR)
                phase_result.delete_errors += 1
                logger.warning("Janitor: sweep cancelled while deleting pod {}", pod.name)
                raise
            except Exception as e:
                self._recorder.record_outcome(Outcome.DELETE_ERROR)
                phase_result.delete_errors += 1
                logger.error("Janitor: failed to delete pod {}: {}", pod.name, e)
                continue

            self._recorder.record_outcome(Outcome.OK)
            phase_result.deleted += 1
            logger.info("Janitor: cleaned up pod {}", pod.name)
