"""
Paginated pod scanner.

Walks the API server's ``continue`` cursor one page at a time. Pages are
handed to the caller as they arrive; the next request is only made once
the caller asks for more.

Usage:
    scanner = PodScanner(client)
    async for pods in scanner.scan("jobs", "status.phase=Succeeded"):
        ...
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable
from typing import TypeVar

from loguru import logger

from pod_janitor.kube.client import Pod, PodStore

# Small pages keep each round-trip cheap; not correctness-critical.
LIST_PAGE_SIZE = 10

T = TypeVar("T")


async def await_or_cancel(call: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await ``call``, abandoning it as soon as ``cancel`` is set.

    Raises:
        SweepCancelledError: If the cancel signal fired first.
    """
    if cancel is None:
        return await call
    if cancel.is_set():
        if asyncio.iscoroutine(call):
            call.close()
        raise SweepCancelledError("sweep cancelled")

    call_task = asyncio.ensure_future(call)
    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({call_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        call_task.cancel()
        raise
    finally:
        cancel_task.cancel()

    if call_task.done():
        return call_task.result()

    call_task.cancel()
    try:
        await call_task
    except asyncio.CancelledError:
        pass
    raise SweepCancelledError("sweep cancelled")


class PodScanner:
    """Enumerates every pod matching a field selector, page by page."""

    def __init__(self, store: PodStore, page_size: int = LIST_PAGE_SIZE) -> None:
        self._store = store
        self._page_size = page_size

    async def scan(
        self,
        namespace: str,
        field_selector: str,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[list[Pod]]:
        """Yield pages of pods until the cursor is exhausted.

        The first page is always requested. A failed request ends the scan
        with ListingError; pages already yielded stay yielded.

        Raises:
            ListingError: If any page fetch fails or is cancelled.
        """
        continue_token = ""
        page_number = 0
        while True:
            page_number += 1
            try:
                page = await await_or_cancel(
                    self._store.list_pods(
                        namespace, field_selector, self._page_size, continue_token
                    ),
                    cancel,
                )
            except Exception as e:
                raise ListingError(
                    f"Failed to get list of pods for {field_selector} (page {page_number}): {e}"
                ) from e

            logger.debug(
                "Scanner: page {} for {} returned {} pods",
                page_number,
                field_selector,
                len(page.items),
            )
            yield page.items

            continue_token = page.continue_token
            if not continue_token:
                return


# ── Exceptions ──────────────────────────────────────────────────────────────


class ListingError(Exception):
    """A page of the pod list could not be fetched."""


class SweepCancelledError(Exception):
    """The caller's cancel signal fired during a remote call."""
