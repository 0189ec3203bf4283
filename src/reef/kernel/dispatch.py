from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

from ..contracts.v1 import InboundMessage
from ..protocol import extract_display_text

logger = logging.getLogger("reef.dispatch")

SESSION_KEY_PREFIX = "agent:main:reef:dm:"


def session_key_for(sender: str) -> str:
    return f"{SESSION_KEY_PREFIX}{sender}"


class RouteResolver(Protocol):
    async def resolve_route(self, sender: str) -> Optional[Any]: ...


class Dispatcher(Protocol):
    async def dispatch(
        self,
        route: Any,
        text: str,
        *,
        message_id: str,
        timestamp: str,
        session_key: str,
    ) -> None: ...


@dataclass
class DispatchReport:
    """What one pass did with each entry, by message id."""

    dispatched: List[str] = field(default_factory=list)
    skipped_self: List[str] = field(default_factory=list)
    skipped_no_route: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.dispatched) + len(self.skipped_self) + len(self.skipped_no_route) + len(self.failed)

    def __str__(self) -> str:
        return (
            f"dispatched={len(self.dispatched)} self={len(self.skipped_self)} "
            f"no_route={len(self.skipped_no_route)} failed={len(self.failed)}"
        )


class DispatchCoordinator:
    """Delivers one pass of new inbox entries to the host, strictly in order.

    Entries are awaited one at a time. A failure on one entry is logged and
    the pass moves on; nothing is retried.
    """

    def __init__(
        self,
        *,
        self_address: str,
        resolver: RouteResolver,
        dispatcher: Dispatcher,
        extract_text: Callable[[str], str] = extract_display_text,
    ) -> None:
        self.self_address = str(self_address or "").strip().lower()
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._extract_text = extract_text

    def is_self(self, msg: InboundMessage) -> bool:
        return bool(self.self_address) and msg.sender.strip().lower() == self.self_address

    async def dispatch_pass(self, entries: List[InboundMessage]) -> DispatchReport:
        report = DispatchReport()
        for msg in entries:
            if self.is_self(msg):
                report.skipped_self.append(msg.id)
                continue

            sender = msg.sender
            try:
                text = self._extract_text(msg.text)
                route = await self._resolver.resolve_route(sender)
                if route is None:
                    logger.warning(f"No route for sender {sender}", extra={"sender": sender, "message_id": msg.id})
                    report.skipped_no_route.append(msg.id)
                    continue
                await self._dispatcher.dispatch(
                    route,
                    text,
                    message_id=msg.id,
                    timestamp=msg.timestamp,
                    session_key=session_key_for(sender),
                )
            except Exception as e:
                logger.error(
                    f"Error dispatching message from {sender}: {e}",
                    exc_info=True,
                    extra={"sender": sender, "message_id": msg.id},
                )
                report.failed.append(msg.id)
                continue
            report.dispatched.append(msg.id)
        return report
