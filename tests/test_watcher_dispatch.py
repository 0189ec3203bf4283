import asyncio
import tempfile
import time
import unittest
from pathlib import Path
from typing import Any, List, Optional


def _msg(mid: str, *, sender: str = "0xPeer", text: Optional[str] = None, ts: str = "2025-01-01T00:00:00Z"):
    from reef.contracts.v1 import InboundMessage

    return InboundMessage(id=mid, sender=sender, text=text if text is not None else f"text {mid}", timestamp=ts)


class QueueSource:
    """Notification source driven by the test."""

    def __init__(self) -> None:
        self.queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self.closed = False

    async def __aiter__(self):
        while True:
            item = await self.queue.get()
            if item is None:
                return
            yield item

    def fire(self, n: int = 1) -> None:
        for _ in range(n):
            self.queue.put_nowait(object())

    def close(self) -> None:
        self.closed = True
        self.queue.put_nowait(None)


class Recorder:
    """RouteResolver + Dispatcher that records calls."""

    def __init__(self, *, no_route_for=(), fail_for=()) -> None:
        self.no_route_for = set(no_route_for)
        self.fail_for = set(fail_for)
        self.calls: List[dict] = []

    async def resolve_route(self, sender: str):
        if sender in self.no_route_for:
            return None
        return {"peer": sender}

    async def dispatch(self, route, text, *, message_id, timestamp, session_key) -> None:
        await asyncio.sleep(0)
        if route["peer"] in self.fail_for:
            raise RuntimeError("host rejected")
        self.calls.append(
            {"route": route, "text": text, "message_id": message_id, "timestamp": timestamp, "session_key": session_key}
        )


class TestCursor(unittest.TestCase):
    def test_unset_cursor_yields_everything(self) -> None:
        from reef.kernel.watcher import Cursor

        entries = [_msg("a"), _msg("b")]
        self.assertEqual([m.id for m in Cursor().slice_new(entries)], ["a", "b"])

    def test_slice_after_cursor(self) -> None:
        from reef.kernel.watcher import Cursor

        entries = [_msg("a"), _msg("b"), _msg("c")]
        self.assertEqual([m.id for m in Cursor("a").slice_new(entries)], ["b", "c"])
        self.assertEqual(Cursor("c").slice_new(entries), [])

    def test_evicted_cursor_yields_everything(self) -> None:
        from reef.kernel.watcher import Cursor

        entries = [_msg("x"), _msg("y")]
        self.assertEqual([m.id for m in Cursor("gone").slice_new(entries)], ["x", "y"])


class TestDispatchCoordinator(unittest.IsolatedAsyncioTestCase):
    async def test_dispatches_in_order_with_session_key(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator

        rec = Recorder()
        coord = DispatchCoordinator(self_address="0xMe", resolver=rec, dispatcher=rec)
        report = await coord.dispatch_pass([_msg("1"), _msg("2", sender="0xOther"), _msg("3")])

        self.assertEqual([c["message_id"] for c in rec.calls], ["1", "2", "3"])
        self.assertEqual(rec.calls[1]["session_key"], "agent:main:reef:dm:0xOther")
        self.assertEqual(report.dispatched, ["1", "2", "3"])

    async def test_self_echo_suppressed_case_insensitive(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator

        rec = Recorder()
        coord = DispatchCoordinator(self_address="0xABCdef", resolver=rec, dispatcher=rec)
        report = await coord.dispatch_pass([_msg("1", sender="0xabcDEF"), _msg("2")])

        self.assertEqual([c["message_id"] for c in rec.calls], ["2"])
        self.assertEqual(report.skipped_self, ["1"])

    async def test_missing_route_is_skipped_and_logged(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator

        rec = Recorder(no_route_for={"0xLost"})
        coord = DispatchCoordinator(self_address="0xMe", resolver=rec, dispatcher=rec)
        with self.assertLogs("reef.dispatch", level="WARNING") as cm:
            report = await coord.dispatch_pass([_msg("1", sender="0xLost"), _msg("2")])

        self.assertEqual(report.skipped_no_route, ["1"])
        self.assertEqual(report.dispatched, ["2"])
        self.assertTrue(any("No route for sender 0xLost" in line for line in cm.output))

    async def test_failure_is_isolated(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator

        rec = Recorder(fail_for={"0xBad"})
        coord = DispatchCoordinator(self_address="0xMe", resolver=rec, dispatcher=rec)
        with self.assertLogs("reef.dispatch", level="ERROR") as cm:
            report = await coord.dispatch_pass([_msg("1", sender="0xBad"), _msg("2"), _msg("3", sender="0xBad")])

        self.assertEqual(report.failed, ["1", "3"])
        self.assertEqual(report.dispatched, ["2"])
        self.assertEqual(report.total, 3)
        self.assertTrue(any("0xBad" in line for line in cm.output))

    async def test_display_text_is_extracted(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator
        from reef.protocol import (
            build_app_action_data_part,
            create_message,
            create_send_message_request,
            encode_a2a_message,
            text_part,
        )

        raw = encode_a2a_message(
            create_send_message_request(
                create_message("user", [text_part("your move"), build_app_action_data_part("chess", "move", {"to": "e4"})])
            )
        )
        rec = Recorder()
        coord = DispatchCoordinator(self_address="0xMe", resolver=rec, dispatcher=rec)
        await coord.dispatch_pass([_msg("1", text=raw)])
        self.assertEqual(rec.calls[0]["text"], 'your move\n[app-action] chess/move: {"to":"e4"}')


class TestChangeWatcher(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        from reef.kernel.inbox import InboxStore

        self._td = tempfile.TemporaryDirectory()
        self.store = InboxStore(Path(self._td.name))
        self.source = QueueSource()
        self.batches: List[List[str]] = []

    async def asyncTearDown(self) -> None:
        self._td.cleanup()

    async def _record(self, entries) -> None:
        self.batches.append([m.id for m in entries])

    async def _eventually(self, cond, timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while not cond():
            if time.monotonic() > deadline:
                self.fail("condition not met in time")
            await asyncio.sleep(0.01)

    def _watcher(self, handler=None, debounce_s: float = 0.02):
        from reef.kernel.watcher import ChangeWatcher

        return ChangeWatcher(self.store, self.source, handler or self._record, debounce_s=debounce_s)

    async def test_existing_entries_are_not_replayed(self) -> None:
        self.store.append(_msg("old1"))
        self.store.append(_msg("old2"))
        w = self._watcher()
        await w.start()
        try:
            self.assertEqual(w.cursor.last_seen_id, "old2")
            self.store.append(_msg("new1"))
            self.source.fire()
            await self._eventually(lambda: self.batches)
            self.assertEqual(self.batches, [["new1"]])
        finally:
            w.stop()
            await w.wait_stopped()

    async def test_cursor_monotonic(self) -> None:
        w = self._watcher()
        for i in range(5, 10):
            self.store.append(_msg(f"e{i}"))
        self.assertEqual([m.id for m in await w.process_pass()], ["e5", "e6", "e7", "e8", "e9"])
        self.assertEqual(w.cursor.last_seen_id, "e9")
        self.assertEqual(await w.process_pass(), [])
        self.assertEqual(self.batches, [["e5", "e6", "e7", "e8", "e9"]])

    async def test_empty_store_is_noop(self) -> None:
        w = self._watcher()
        self.assertEqual(await w.process_pass(), [])
        self.assertEqual(self.batches, [])
        self.assertIsNone(w.cursor.last_seen_id)

    async def test_cursor_advances_when_handler_fails(self) -> None:
        async def boom(entries) -> None:
            raise RuntimeError("downstream exploded")

        w = self._watcher(handler=boom)
        self.store.append(_msg("a"))
        with self.assertLogs("reef.watcher", level="ERROR"):
            await w.process_pass()
        self.assertEqual(w.cursor.last_seen_id, "a")

    async def test_cursor_holds_when_store_unreadable(self) -> None:
        w = self._watcher()
        self.store.append(_msg("a"))
        await w.process_pass()
        self.store.path.write_text("garbage", encoding="utf-8")
        with self.assertLogs("reef.watcher", level="ERROR"):
            self.assertEqual(await w.process_pass(), [])
        self.assertEqual(w.cursor.last_seen_id, "a")

    async def test_evicted_cursor_redelivers_current_list(self) -> None:
        from reef.kernel.inbox import InboxStore

        self.store = InboxStore(self.store.config_dir, max_messages=2)
        w = self._watcher()
        self.store.append(_msg("a"))
        await w.process_pass()
        self.store.append(_msg("b"))
        self.store.append(_msg("c"))
        self.assertEqual([m.id for m in await w.process_pass()], ["b", "c"])

    async def test_self_echo_advances_cursor(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator

        rec = Recorder()
        coord = DispatchCoordinator(self_address="0xMe", resolver=rec, dispatcher=rec)
        w = self._watcher(handler=coord.dispatch_pass)
        self.store.append(_msg("mine", sender="0xME"))
        await w.process_pass()
        self.assertEqual(rec.calls, [])
        self.assertEqual(w.cursor.last_seen_id, "mine")

    async def test_unrouted_entry_advances_cursor(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator

        rec = Recorder(no_route_for={"0xLost"})
        coord = DispatchCoordinator(self_address="0xMe", resolver=rec, dispatcher=rec)
        w = self._watcher(handler=coord.dispatch_pass)
        self.store.append(_msg("lost", sender="0xLost"))
        with self.assertLogs("reef.dispatch", level="WARNING"):
            await w.process_pass()
        self.assertEqual(rec.calls, [])
        self.assertEqual(w.cursor.last_seen_id, "lost")
        self.assertEqual(await w.process_pass(), [])

    async def test_pass_summary_is_logged(self) -> None:
        from reef.kernel.dispatch import DispatchCoordinator

        rec = Recorder(no_route_for={"0xLost"})
        coord = DispatchCoordinator(self_address="0xMe", resolver=rec, dispatcher=rec)
        w = self._watcher(handler=coord.dispatch_pass)
        self.store.append(_msg("a"))
        self.store.append(_msg("b", sender="0xLost"))
        with self.assertLogs("reef.watcher", level="INFO") as cm:
            await w.process_pass()
        self.assertTrue(
            any("pass over 2 new entries (dispatched=1 self=0 no_route=1 failed=0)" in line for line in cm.output)
        )

    async def test_burst_is_debounced_into_one_pass(self) -> None:
        w = self._watcher(debounce_s=0.05)
        await w.start()
        try:
            for i in range(3):
                self.store.append(_msg(f"m{i}"))
                self.source.fire(3)
                await asyncio.sleep(0.005)
            await self._eventually(lambda: self.batches)
            await asyncio.sleep(0.15)
            self.assertEqual(self.batches, [["m0", "m1", "m2"]])
            self.assertEqual(w.passes, 1)
        finally:
            w.stop()
            await w.wait_stopped()

    async def test_passes_do_not_overlap(self) -> None:
        release = asyncio.Event()
        active = {"now": 0, "max": 0}

        async def slow(entries) -> None:
            active["now"] += 1
            active["max"] = max(active["max"], active["now"])
            self.batches.append([m.id for m in entries])
            await release.wait()
            active["now"] -= 1

        w = self._watcher(handler=slow)
        await w.start()
        try:
            self.store.append(_msg("a"))
            self.source.fire()
            await self._eventually(lambda: w.in_pass)

            self.store.append(_msg("b"))
            self.source.fire()
            await asyncio.sleep(0.1)
            self.assertEqual(self.batches, [["a"]])

            release.set()
            await self._eventually(lambda: len(self.batches) == 2)
            self.assertEqual(self.batches, [["a"], ["b"]])
            self.assertEqual(active["max"], 1)
        finally:
            w.stop()
            await w.wait_stopped()

    async def test_stop_cancels_pending_timer(self) -> None:
        w = self._watcher(debounce_s=0.1)
        await w.start()
        self.store.append(_msg("a"))
        self.source.fire()
        await asyncio.sleep(0.02)
        w.stop()
        await w.wait_stopped()
        self.assertEqual(self.batches, [])
        self.assertTrue(self.source.closed)
        self.assertFalse(w.running)

    async def test_stop_does_not_cancel_inflight_pass(self) -> None:
        release = asyncio.Event()
        done: List[str] = []

        async def slow(entries) -> None:
            await release.wait()
            done.extend(m.id for m in entries)

        w = self._watcher(handler=slow)
        await w.start()
        self.store.append(_msg("a"))
        self.source.fire()
        await self._eventually(lambda: w.in_pass)
        w.stop()
        self.assertEqual(done, [])
        release.set()
        await w.wait_stopped()
        self.assertEqual(done, ["a"])
        self.assertEqual(w.cursor.last_seen_id, "a")


class TestPollingNotificationSource(unittest.IsolatedAsyncioTestCase):
    async def test_yields_on_atomic_replace(self) -> None:
        from reef.kernel.inbox import InboxStore
        from reef.kernel.watcher import PollingNotificationSource

        with tempfile.TemporaryDirectory() as td:
            store = InboxStore(Path(td))
            store.ensure_exists()
            source = PollingNotificationSource(store.path, interval_s=0.01)
            seen: List[Any] = []

            async def consume() -> None:
                async for item in source:
                    seen.append(item)

            task = asyncio.create_task(consume())
            await asyncio.sleep(0.05)
            store.append(_msg("a"))
            deadline = time.monotonic() + 2.0
            while not seen and time.monotonic() < deadline:
                await asyncio.sleep(0.01)
            source.close()
            await asyncio.wait_for(task, timeout=1.0)
            self.assertGreaterEqual(len(seen), 1)


if __name__ == "__main__":
    unittest.main()
