"""Bridge between the reef inbox and a host agent runtime.

Inbound: watch <config_dir>/messages.json and hand each new peer message to
the host through its RouteResolver / Dispatcher.

Outbound: encode the agent's text reply as an A2A `message/send` request and
relay it through the local daemon.

Structured app actions are answered by the agent itself through the CLI;
this bridge only carries text.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .daemon.client import DaemonNotRunningError, send_via_daemon
from .kernel.dispatch import DispatchCoordinator, Dispatcher, RouteResolver
from .kernel.identity import load_identity
from .kernel.inbox import InboxStore
from .kernel.settings import ReefSettings, load_settings
from .kernel.watcher import ChangeWatcher, NotificationSource, PollingNotificationSource
from .paths import resolve_config_dir
from .protocol import create_message, create_send_message_request, encode_a2a_message, text_part

logger = logging.getLogger("reef.channel")


class ChannelHandle:
    def __init__(self, watcher: Optional[ChangeWatcher] = None, *, address: str = "") -> None:
        self.watcher = watcher
        self.address = address

    @property
    def active(self) -> bool:
        return self.watcher is not None and self.watcher.running

    def stop(self) -> None:
        """Stop watching. Dispatches already in flight are not awaited."""
        if self.watcher is None:
            return
        self.watcher.stop()
        logger.info("Channel stopped", extra={"address": self.address})


async def start_channel(
    config_dir: Optional[Path] = None,
    *,
    resolver: RouteResolver,
    dispatcher: Dispatcher,
    source: Optional[NotificationSource] = None,
    settings: Optional[ReefSettings] = None,
) -> ChannelHandle:
    cfg_dir = resolve_config_dir(config_dir)
    settings = settings or load_settings(cfg_dir)

    identity = load_identity(cfg_dir)
    if identity is None:
        logger.error("No identity found. Run `reef start --name <name>` first.")
        return ChannelHandle()

    store = InboxStore.from_settings(cfg_dir, settings)
    store.ensure_exists()
    existing = store.count()

    coordinator = DispatchCoordinator(self_address=identity.address, resolver=resolver, dispatcher=dispatcher)
    watcher = ChangeWatcher(
        store,
        source or PollingNotificationSource(store.path, interval_s=settings.poll_interval_seconds),
        coordinator.dispatch_pass,
        debounce_s=settings.debounce_seconds,
    )
    await watcher.start()

    logger.info(f"Watching {store.path} ({existing} existing messages)", extra={"address": identity.address})
    logger.info(f"Channel active for {identity.address}", extra={"address": identity.address})
    return ChannelHandle(watcher, address=identity.address)


def send_text(to: str, text: str, config_dir: Optional[Path] = None) -> None:
    """Relay an agent text reply to a peer. Raises DaemonNotRunningError."""
    msg = create_message("user", [text_part(text)])
    encoded = encode_a2a_message(create_send_message_request(msg))
    if not send_via_daemon(to, encoded, config_dir):
        raise DaemonNotRunningError("Daemon is not running. Start it with: reef start --name <name>")
