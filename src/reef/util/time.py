from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# fromisoformat before 3.11 only takes 3 or 6 fraction digits.
_FRACTION = re.compile(r"\.(\d+)(?=[+-]\d{2}:\d{2}$|$)")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_utc_iso(ts: str) -> Optional[datetime]:
    s = (ts or "").strip()
    if not s:
        return None
    try:
        if s.endswith("Z"):
            s = s[: -len("Z")] + "+00:00"
        s = _FRACTION.sub(lambda m: "." + (m.group(1) + "000000")[:6], s, count=1)
        dt = datetime.fromisoformat(s)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except ValueError:
        return None


def delta_ms(later: str, earlier: str) -> Optional[float]:
    """Milliseconds from `earlier` to `later`; None if either side is unparseable."""
    a = parse_utc_iso(later)
    b = parse_utc_iso(earlier)
    if a is None or b is None:
        return None
    return (a - b).total_seconds() * 1000.0
