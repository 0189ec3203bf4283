"""Settings for the inbox pipeline.

Stored in <home>/settings.yaml, e.g.:

    inbox:
      max_messages: 1000
      dedup_window_ms: 30000
    watch:
      debounce_ms: 200
      poll_interval_ms: 100
    log_level: INFO
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # type: ignore

from ..paths import resolve_config_dir
from ..util.fs import atomic_write_text

DEFAULT_MAX_MESSAGES = 1000
DEFAULT_DEDUP_WINDOW_MS = 30_000
DEFAULT_DEBOUNCE_MS = 200
DEFAULT_POLL_INTERVAL_MS = 100


@dataclass(frozen=True)
class ReefSettings:
    max_messages: int = DEFAULT_MAX_MESSAGES
    dedup_window_ms: int = DEFAULT_DEDUP_WINDOW_MS
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    log_level: str = "INFO"

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inbox": {"max_messages": self.max_messages, "dedup_window_ms": self.dedup_window_ms},
            "watch": {"debounce_ms": self.debounce_ms, "poll_interval_ms": self.poll_interval_ms},
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ReefSettings":
        inbox = d.get("inbox") if isinstance(d.get("inbox"), dict) else {}
        watch = d.get("watch") if isinstance(d.get("watch"), dict) else {}
        return cls(
            max_messages=_positive_int(inbox.get("max_messages"), DEFAULT_MAX_MESSAGES),
            dedup_window_ms=_positive_int(inbox.get("dedup_window_ms"), DEFAULT_DEDUP_WINDOW_MS, allow_zero=True),
            debounce_ms=_positive_int(watch.get("debounce_ms"), DEFAULT_DEBOUNCE_MS, allow_zero=True),
            poll_interval_ms=_positive_int(watch.get("poll_interval_ms"), DEFAULT_POLL_INTERVAL_MS),
            log_level=str(d.get("log_level") or "INFO").strip().upper() or "INFO",
        )


def _positive_int(value: Any, default: int, *, allow_zero: bool = False) -> int:
    if isinstance(value, bool):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    if n < 0 or (n == 0 and not allow_zero):
        return default
    return n


def settings_path(config_dir: Optional[Path] = None) -> Path:
    return resolve_config_dir(config_dir) / "settings.yaml"


def load_settings(config_dir: Optional[Path] = None) -> ReefSettings:
    """Load settings; a missing or unreadable file yields the defaults."""
    p = settings_path(config_dir)
    if not p.exists():
        return ReefSettings()
    try:
        doc = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        return ReefSettings()
    return ReefSettings.from_dict(doc if isinstance(doc, dict) else {})


def save_settings(settings: ReefSettings, config_dir: Optional[Path] = None) -> None:
    p = settings_path(config_dir)
    atomic_write_text(p, yaml.safe_dump(settings.to_dict(), allow_unicode=True, sort_keys=False))
