"""Durable inbox for one identity: <config_dir>/messages.json.

The file holds a pretty-printed JSON array of InboundMessage in append order.
Every mutation rewrites the whole array through an atomic rename, so a
concurrent reader sees either the old list or the new one, never a torn file.

Appends are assumed to come from a single writer (the transport ingestion
path). Two dedup guards apply before anything is stored:

- same `id` as any stored entry;
- same (from, text) as a stored entry whose timestamp is 0 <= delta < window
  earlier than the candidate. Only non-negative deltas count: a redelivery
  stamped *older* than the stored copy is kept. This is accepted behavior.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from ..contracts.v1 import InboundMessage
from ..protocol import decode_a2a_message, is_a2a_request
from ..util.fs import atomic_write_json
from ..util.time import delta_ms, utc_now_iso
from .settings import DEFAULT_DEDUP_WINDOW_MS, DEFAULT_MAX_MESSAGES, ReefSettings

logger = logging.getLogger("reef.inbox")

MESSAGES_FILENAME = "messages.json"


class InboxCorruptError(RuntimeError):
    """messages.json exists but is not a JSON array of inbox entries."""


def messages_path(config_dir: Path) -> Path:
    return Path(config_dir) / MESSAGES_FILENAME


def inbound_from_transport(
    message_id: str,
    sender: str,
    raw: str,
    timestamp: Optional[str] = None,
) -> InboundMessage:
    """Build an inbox entry from a raw transport payload.

    `method` is filled from the JSON-RPC method when the payload is an A2A
    request; plain text leaves it unset.
    """
    decoded = decode_a2a_message(raw)
    method = decoded.get("method") if decoded is not None and is_a2a_request(decoded) else None
    return InboundMessage(
        id=str(message_id),
        sender=str(sender),
        text=raw,
        method=method,
        timestamp=timestamp or utc_now_iso(),
    )


class InboxStore:
    def __init__(
        self,
        config_dir: Path,
        *,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        dedup_window_ms: int = DEFAULT_DEDUP_WINDOW_MS,
    ) -> None:
        if max_messages <= 0:
            raise ValueError("max_messages must be positive")
        self.config_dir = Path(config_dir)
        self.max_messages = int(max_messages)
        self.dedup_window_ms = int(dedup_window_ms)

    @classmethod
    def from_settings(cls, config_dir: Path, settings: ReefSettings) -> "InboxStore":
        return cls(config_dir, max_messages=settings.max_messages, dedup_window_ms=settings.dedup_window_ms)

    @property
    def path(self) -> Path:
        return messages_path(self.config_dir)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> List[InboundMessage]:
        """All stored entries in append order. Missing file reads as empty."""
        p = self.path
        if not p.exists():
            return []
        raw = p.read_text(encoding="utf-8")
        if not raw.strip():
            return []
        try:
            doc = json.loads(raw)
        except ValueError as e:
            raise InboxCorruptError(f"{p}: invalid JSON: {e}") from e
        if not isinstance(doc, list):
            raise InboxCorruptError(f"{p}: expected a JSON array, got {type(doc).__name__}")
        return self._parse_entries(doc)

    def _parse_entries(self, docs: Iterable[Any]) -> List[InboundMessage]:
        out: List[InboundMessage] = []
        for i, item in enumerate(docs):
            try:
                out.append(InboundMessage.model_validate(item))
            except ValidationError as e:
                raise InboxCorruptError(f"{self.path}: entry {i} is not an inbox message") from e
        return out

    def last_id(self) -> Optional[str]:
        entries = self.list()
        return entries[-1].id if entries else None

    def count(self) -> int:
        return len(self.list())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, msg: InboundMessage) -> bool:
        """Store `msg` unless it is a duplicate. Returns True when stored.

        Evicts the oldest entries once the store exceeds `max_messages`.
        Write errors propagate.
        """
        entries = self.list()

        if any(m.id == msg.id for m in entries):
            logger.debug("inbox: duplicate id, skipped", extra={"message_id": msg.id, "sender": msg.sender})
            return False

        if self._within_dedup_window(entries, msg):
            logger.debug(
                "inbox: duplicate content within window, skipped",
                extra={"message_id": msg.id, "sender": msg.sender},
            )
            return False

        entries.append(msg)
        overflow = len(entries) - self.max_messages
        if overflow > 0:
            entries = entries[overflow:]
            logger.debug(f"inbox: evicted {overflow} oldest entr{'y' if overflow == 1 else 'ies'}")

        self._write(entries)
        return True

    def _within_dedup_window(self, entries: List[InboundMessage], msg: InboundMessage) -> bool:
        for m in entries:
            if m.sender != msg.sender or m.text != msg.text:
                continue
            age = delta_ms(msg.timestamp, m.timestamp)
            if age is not None and 0 <= age < self.dedup_window_ms:
                return True
        return False

    def clear(self) -> None:
        self._write([])

    def ensure_exists(self) -> None:
        if not self.path.exists():
            self._write([])

    def _write(self, entries: List[InboundMessage]) -> None:
        atomic_write_json(self.path, [m.to_doc() for m in entries])
