"""Change detection over the inbox file.

A NotificationSource yields whenever the backing file may have changed. A
single write can produce several notifications and several writes can
collapse into one, so the watcher never counts them: each notification only
pushes the debounce deadline out, and one worker task runs a pass once the
file has been quiet for `debounce_s`.

Passes never overlap. A notification that lands during a pass re-arms the
pending flag, and the worker runs exactly one more pass after it.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Protocol, Tuple

from ..contracts.v1 import InboundMessage
from .inbox import InboxStore
from .settings import DEFAULT_DEBOUNCE_MS, DEFAULT_POLL_INTERVAL_MS

logger = logging.getLogger("reef.watcher")

EntriesHandler = Callable[[List[InboundMessage]], Awaitable[object]]


class NotificationSource(Protocol):
    def __aiter__(self) -> AsyncIterator[object]: ...

    def close(self) -> None: ...


class PollingNotificationSource:
    """Polls the file's (inode, size, mtime_ns) and yields on change.

    An atomic replace swaps the inode, so it is detected even when size and
    mtime happen to match.
    """

    def __init__(self, path: Path, *, interval_s: float = DEFAULT_POLL_INTERVAL_MS / 1000.0) -> None:
        self._path = Path(path)
        self._interval_s = float(interval_s)
        self._closed = False

    def _signature(self) -> Optional[Tuple[int, int, int]]:
        try:
            st = os.stat(self._path)
        except OSError:
            return None
        return (int(getattr(st, "st_ino", 0) or 0), int(st.st_size), int(st.st_mtime_ns))

    async def __aiter__(self) -> AsyncIterator[object]:
        last = self._signature()
        while not self._closed:
            await asyncio.sleep(self._interval_s)
            if self._closed:
                break
            cur = self._signature()
            if cur != last:
                last = cur
                yield cur

    def close(self) -> None:
        self._closed = True


@dataclass
class Cursor:
    """Id of the last inbox entry this watcher has handed downstream."""

    last_seen_id: Optional[str] = None

    def slice_new(self, entries: List[InboundMessage]) -> List[InboundMessage]:
        """Entries after the cursor; everything if the cursor is unset or gone."""
        if self.last_seen_id is None:
            return list(entries)
        for i, m in enumerate(entries):
            if m.id == self.last_seen_id:
                return list(entries[i + 1 :])
        return list(entries)

    def advance(self, entries: List[InboundMessage]) -> None:
        if entries:
            self.last_seen_id = entries[-1].id


class ChangeWatcher:
    def __init__(
        self,
        store: InboxStore,
        source: NotificationSource,
        on_entries: EntriesHandler,
        *,
        debounce_s: float = DEFAULT_DEBOUNCE_MS / 1000.0,
        cursor: Optional[Cursor] = None,
    ) -> None:
        self.store = store
        self.cursor = cursor
        self._source = source
        self._on_entries = on_entries
        self._debounce_s = max(0.0, float(debounce_s))
        self._deadline = 0.0
        self._pending: Optional[asyncio.Event] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._listen_task: Optional[asyncio.Task[None]] = None
        self._worker_task: Optional[asyncio.Task[None]] = None
        self._in_pass = False
        self._stopped = False
        self.passes = 0

    @property
    def running(self) -> bool:
        return self._worker_task is not None and not self._stopped

    @property
    def in_pass(self) -> bool:
        return self._in_pass

    async def start(self) -> None:
        """Seed the cursor from the current tail and begin listening.

        Entries already in the store at start are treated as seen.
        """
        if self._worker_task is not None:
            raise RuntimeError("watcher already started")
        if self.cursor is None:
            self.cursor = Cursor(last_seen_id=self.store.last_id())
        self._pending = asyncio.Event()
        self._stop_requested = asyncio.Event()
        self._worker_task = asyncio.create_task(self._run_worker())
        self._listen_task = asyncio.create_task(self._listen())

    def notify(self) -> None:
        """Record a change notification and (re)start the debounce timer."""
        if self._stopped or self._pending is None:
            return
        self._deadline = time.monotonic() + self._debounce_s
        self._pending.set()

    async def _listen(self) -> None:
        try:
            async for _ in self._source:
                self.notify()
        except Exception:
            logger.exception("watcher: notification source failed")

    async def _wait_quiet(self) -> bool:
        """Sleep until the debounce deadline stops moving. False if stopped."""
        assert self._stop_requested is not None
        while not self._stopped:
            remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                return True
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass
        return False

    async def _run_worker(self) -> None:
        assert self._pending is not None
        while not self._stopped:
            await self._pending.wait()
            if not await self._wait_quiet():
                return
            self._pending.clear()
            await self.process_pass()

    async def process_pass(self) -> List[InboundMessage]:
        """Read the store once and hand the entries after the cursor downstream.

        The cursor moves to the last entry read even if delivery of some
        entries failed. A failed read leaves it where it was.

        The store read is synchronous and runs on the event loop; it is one
        file of at most `max_messages` entries.
        """
        if self.cursor is None:
            self.cursor = Cursor()
        self._in_pass = True
        try:
            try:
                entries = self.store.list()
            except Exception:
                logger.exception("watcher: failed to read inbox")
                return []
            if not entries:
                return []

            new_entries = self.cursor.slice_new(entries)
            if not new_entries:
                return []

            self.passes += 1
            try:
                outcome = await self._on_entries(new_entries)
            except Exception:
                logger.exception("watcher: entries handler failed")
            else:
                if outcome is not None:
                    logger.info(f"watcher: pass over {len(new_entries)} new entries ({outcome})")
            finally:
                self.cursor.advance(entries)
            return new_entries
        finally:
            self._in_pass = False

    def stop(self) -> None:
        """Stop scheduling passes. A pass already dispatching runs to completion."""
        if self._stopped:
            return
        self._stopped = True
        self._source.close()
        if self._stop_requested is not None:
            self._stop_requested.set()
        if self._pending is not None:
            # Wake an idle worker so it can observe _stopped and exit.
            self._pending.set()
        if self._listen_task is not None and not self._listen_task.done():
            self._listen_task.cancel()

    async def wait_stopped(self) -> None:
        """Join the background tasks after stop(), including an in-flight pass."""
        tasks = [t for t in (self._listen_task, self._worker_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
