"""Client side of the local relay daemon.

The daemon owns the transport connection. Anything else on the machine hands
it pre-encoded messages over a Unix socket, one JSON request per line.
"""
from __future__ import annotations

import json
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from ..contracts.v1 import DaemonError, DaemonRequest, DaemonResponse
from ..paths import resolve_config_dir


class DaemonNotRunningError(RuntimeError):
    """The relay daemon did not accept the request."""


@dataclass
class DaemonPaths:
    home: Path

    @property
    def daemon_dir(self) -> Path:
        return self.home / "daemon"

    @property
    def sock_path(self) -> Path:
        return self.daemon_dir / "reef.sock"


def default_paths(config_dir: Optional[Path] = None) -> DaemonPaths:
    return DaemonPaths(home=resolve_config_dir(config_dir))


def call_daemon(req: Dict[str, Any], *, paths: Optional[DaemonPaths] = None, timeout_s: float = 10.0) -> Dict[str, Any]:
    p = paths or default_paths()
    try:
        request = DaemonRequest.model_validate(req)
    except ValueError as e:
        return DaemonResponse(
            ok=False,
            error=DaemonError(code="invalid_request", message=f"invalid request: {e}"),
        ).model_dump()
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as s:
            s.settimeout(timeout_s)
            s.connect(str(p.sock_path))
            s.sendall((json.dumps(request.model_dump(), ensure_ascii=False) + "\n").encode("utf-8"))
            data = s.recv(1_000_000)
        line = (data or b"").split(b"\n", 1)[0]
        obj = json.loads(line.decode("utf-8", errors="replace"))
        resp = DaemonResponse.model_validate(obj)
        return resp.model_dump()
    except (OSError, ValueError):
        return DaemonResponse(ok=False, error=DaemonError(code="daemon_unavailable", message="daemon unavailable")).model_dump()


def send_via_daemon(target_address: str, encoded_message: str, config_dir: Optional[Path] = None) -> bool:
    """True iff a running daemon accepted the message for relay."""
    resp = call_daemon(
        {"op": "send", "args": {"to": target_address, "message": encoded_message}},
        paths=default_paths(config_dir),
    )
    return bool(resp.get("ok"))
