"""
Tests for pod_janitor/cleaner/scanner.py.

Tests cover:
- Cursor walking yields every pod exactly once
- Zero-result listings terminate cleanly
- A failing page stops the scan after the pages already yielded
- Pages are fetched lazily, one per iteration
- Cancel signal aborts an in-flight list call
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pod_janitor.cleaner.scanner import (
    LIST_PAGE_SIZE,
    ListingError,
    PodScanner,
    SweepCancelledError,
    await_or_cancel,
)
from pod_janitor.kube.client import KubeApiError, Pod, PodList

SELECTOR = "status.phase=Succeeded"


def _pages(total: int, page_size: int = LIST_PAGE_SIZE) -> list[PodList]:
    """Split ``total`` pods into chained PodList pages."""
    names = [f"pod-{i}" for i in range(total)]
    chunks = [names[i : i + page_size] for i in range(0, total, page_size)] or [[]]
    pages = []
    for index, chunk in enumerate(chunks):
        token = f"cursor-{index + 1}" if index + 1 < len(chunks) else ""
        pages.append(
            PodList(
                items=[Pod(name=n, namespace="jobs", phase="Succeeded") for n in chunk],
                continue_token=token,
            )
        )
    return pages


@pytest.fixture
def store() -> AsyncMock:
    store = AsyncMock()
    store.delete_pod.return_value = None
    return store


async def _collect(scanner: PodScanner, **kwargs) -> list[list[Pod]]:
    return [page async for page in scanner.scan("jobs", SELECTOR, **kwargs)]


# ── Pagination ──────────────────────────────────────────────────────────────


class TestPagination:
    """Test cursor walking."""

    @pytest.mark.parametrize("total", [1, 9, 10, 11, 25, 30])
    async def test_yields_every_pod_once(self, store: AsyncMock, total: int) -> None:
        pages = _pages(total)
        store.list_pods.side_effect = pages

        result = await _collect(PodScanner(store))

        names = [p.name for page in result for p in page]
        assert len(names) == total
        assert len(set(names)) == total
        assert store.list_pods.await_count == len(pages)

    async def test_passes_cursor_and_limit(self, store: AsyncMock) -> None:
        store.list_pods.side_effect = _pages(12)

        await _collect(PodScanner(store))

        first, second = store.list_pods.await_args_list
        assert first.args == ("jobs", SELECTOR, LIST_PAGE_SIZE, "")
        assert second.args == ("jobs", SELECTOR, LIST_PAGE_SIZE, "cursor-1")

    async def test_custom_page_size(self, store: AsyncMock) -> None:
        store.list_pods.side_effect = _pages(5, page_size=2)

        result = await _collect(PodScanner(store, page_size=2))

        assert [len(page) for page in result] == [2, 2, 1]
        assert store.list_pods.await_args_list[0].args[2] == 2

    async def test_empty_listing_terminates_cleanly(self, store: AsyncMock) -> None:
        store.list_pods.return_value = PodList()

        result = await _collect(PodScanner(store))

        assert result == [[]]
        assert store.list_pods.await_count == 1

    async def test_pages_fetched_lazily(self, store: AsyncMock) -> None:
        store.list_pods.side_effect = _pages(25)
        scan = PodScanner(store).scan("jobs", SELECTOR)

        await scan.__anext__()
        assert store.list_pods.await_count == 1
        await scan.__anext__()
        assert store.list_pods.await_count == 2
        await scan.aclose()


# ── Failures ────────────────────────────────────────────────────────────────


class TestListingFailure:
    """Test that a failed page ends the scan."""

    async def test_first_page_failure(self, store: AsyncMock) -> None:
        store.list_pods.side_effect = KubeApiError("boom", status_code=500)

        with pytest.raises(ListingError, match="status.phase=Succeeded"):
            await _collect(PodScanner(store))

    async def test_kth_page_failure_keeps_earlier_pages(self, store: AsyncMock) -> None:
        pages = _pages(30)
        store.list_pods.side_effect = [pages[0], pages[1], KubeApiError("gone")]
        seen: list[str] = []

        with pytest.raises(ListingError) as exc_info:
            async for page in PodScanner(store).scan("jobs", SELECTOR):
                seen.extend(p.name for p in page)

        assert len(seen) == 20
        assert store.list_pods.await_count == 3
        assert isinstance(exc_info.value.__cause__, KubeApiError)

    async def test_cancel_signal_aborts_list(self, store: AsyncMock) -> None:
        cancel = asyncio.Event()
        cancel.set()
        store.list_pods.return_value = PodList()

        with pytest.raises(ListingError) as exc_info:
            await _collect(PodScanner(store), cancel=cancel)

        assert isinstance(exc_info.value.__cause__, SweepCancelledError)


# ── Cancellation Helper ─────────────────────────────────────────────────────


class TestAwaitOrCancel:
    """Test await_or_cancel()."""

    async def test_no_signal_passes_through(self) -> None:
        async def call() -> int:
            return 7

        assert await await_or_cancel(call(), None) == 7

    async def test_result_when_not_cancelled(self) -> None:
        async def call() -> str:
            return "done"

        assert await await_or_cancel(call(), asyncio.Event()) == "done"

    async def test_exception_propagates(self) -> None:
        async def call() -> None:
            raise KubeApiError("nope")

        with pytest.raises(KubeApiError):
            await await_or_cancel(call(), asyncio.Event())

    async def test_cancels_hanging_call(self) -> None:
        cancel = asyncio.Event()
        started = asyncio.Event()
        cancelled = False

        async def hang() -> None:
            nonlocal cancelled
            started.set()
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                cancelled = True
                raise

        async def trigger() -> None:
            await started.wait()
            cancel.set()

        trigger_task = asyncio.create_task(trigger())
        with pytest.raises(SweepCancelledError):
            await asyncio.wait_for(await_or_cancel(hang(), cancel), timeout=5)
        await trigger_task
        assert cancelled is True
