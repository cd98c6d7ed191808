"""
Retention policy for terminated pods.

A pod's finish time is the moment its Ready condition last turned False.
Succeeded and Failed pods have independent retention windows; a window of
zero (or less) keeps that phase forever.

Usage:
    if should_delete_pod(pod, now, timedelta(hours=1), timedelta(0)):
        await store.delete_pod(pod.namespace, pod.name)
"""

from datetime import datetime, timedelta, timezone
from typing import Literal

from pod_janitor.kube.client import Pod

TerminalPhase = Literal["Succeeded", "Failed"]

PHASE_SUCCEEDED: TerminalPhase = "Succeeded"
PHASE_FAILED: TerminalPhase = "Failed"


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def pod_finish_time(pod: Pod) -> datetime | None:
    """Return when the pod stopped running, or None if it never reported it.

    Looks for ``Ready=False`` conditions and takes the latest transition.
    """
    finish: datetime | None = None
    for condition in pod.conditions:
        if condition.type != "Ready" or condition.status != "False":
            continue
        if condition.last_transition_time is None:
            continue
        ts = _as_utc(condition.last_transition_time)
        if finish is None or ts > finish:
            finish = ts
    return finish


def should_delete_pod(
    pod: Pod,
    now: datetime,
    delete_successful_after: timedelta,
    delete_failed_after: timedelta,
) -> bool:
    """Decide whether a terminated pod has outlived its retention window."""
    finish = pod_finish_time(pod)
    if finish is None:
        return False

    age = _as_utc(now) - finish

    if pod.phase == PHASE_SUCCEEDED:
        threshold = delete_successful_after
    elif pod.phase == PHASE_FAILED:
        threshold = delete_failed_after
    else:
        return False

    return threshold > timedelta(0) and age >= threshold
