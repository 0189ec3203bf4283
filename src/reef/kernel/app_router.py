"""App-aware routing: extract app actions, log them, acknowledge.

The router makes no decisions. It pulls the first structured app action out
of an inbound message, logs it for the agent loop to read, and hands back a
"working" task. Actions for apps that are not installed are routed the same
way so every proposal stays visible to whoever decides how to answer.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..contracts.v1 import AppAction, AppManifest, Message, Task, TaskState, TaskStatus
from ..protocol import create_message, extract_app_action, text_part
from .app_store import load_all_installed_apps

logger = logging.getLogger("reef.app")

ManifestLoader = Callable[[Optional[Path]], Sequence[AppManifest]]


class AppRegistry:
    """Installed app manifests by appId. Lives as long as its owner."""

    def __init__(self) -> None:
        self._apps: Dict[str, AppManifest] = {}

    def register(self, app_id: str, manifest: AppManifest) -> None:
        self._apps[app_id] = manifest

    def unregister(self, app_id: str) -> bool:
        return self._apps.pop(app_id, None) is not None

    def get(self, app_id: str) -> Optional[AppManifest]:
        return self._apps.get(app_id)

    def list_apps(self) -> List[str]:
        return list(self._apps.keys())

    def __contains__(self, app_id: object) -> bool:
        return app_id in self._apps


@dataclass(frozen=True)
class RouteResult:
    ack_task: Task
    app_action: AppAction
    known: bool


def make_task(state: TaskState, status_message: str) -> Task:
    return Task(
        status=TaskStatus(
            state=state,
            message=create_message("agent", [text_part(status_message)]),
        )
    )


class AppRouter:
    def __init__(
        self,
        registry: Optional[AppRegistry] = None,
        *,
        manifest_loader: ManifestLoader = load_all_installed_apps,
    ) -> None:
        self.registry = registry if registry is not None else AppRegistry()
        self._manifest_loader = manifest_loader
        self.last_load_error: Optional[BaseException] = None

    def register(self, app_id: str, manifest: AppManifest) -> None:
        self.registry.register(app_id, manifest)

    def unregister(self, app_id: str) -> bool:
        return self.registry.unregister(app_id)

    def get(self, app_id: str) -> Optional[AppManifest]:
        return self.registry.get(app_id)

    def list_apps(self) -> List[str]:
        return self.registry.list_apps()

    def auto_load_defaults(self, config_dir: Optional[Path] = None) -> List[str]:
        """Register every installed manifest. Returns the loaded appIds.

        Loading is best effort: a failure leaves the registry untouched,
        returns [] and is logged and kept on `last_load_error`.
        """
        try:
            manifests = list(self._manifest_loader(config_dir))
        except Exception as e:
            self.last_load_error = e
            logger.warning(f"App manifests unavailable, continuing with none: {e}", exc_info=True)
            return []
        self.last_load_error = None

        for manifest in manifests:
            self.register(manifest.app_id, manifest)
        return [m.app_id for m in manifests]

    def route(self, message: Message, from_address: str) -> Optional[RouteResult]:
        """Acknowledge the first app action in `message`; None if it has none."""
        for part in message.parts:
            if part.kind != "data":
                continue
            app_action = extract_app_action(part)
            if app_action is None:
                continue

            known = app_action.app_id in self.registry
            tag = "" if known else " (unknown app)"
            payload = json.dumps(app_action.payload, ensure_ascii=False, separators=(",", ":"))
            logger.info(
                f"[reef:app:{app_action.app_id}]{tag} from {from_address}: {app_action.action} {payload}",
                extra={"app_id": app_action.app_id, "sender": from_address},
            )

            return RouteResult(
                ack_task=make_task("working", f"Received {app_action.action} for {app_action.app_id}"),
                app_action=app_action,
                known=known,
            )

        return None
