from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .channel import send_text, start_channel
from .daemon.client import DaemonNotRunningError
from .kernel.app_router import AppRouter
from .kernel.app_store import install_well_known_apps
from .kernel.inbox import InboxCorruptError, InboxStore
from .kernel.settings import load_settings
from .paths import resolve_config_dir
from .protocol import extract_display_text
from .util.obslog import setup_root_json_logging


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _config_dir(args: argparse.Namespace) -> Path:
    raw = str(getattr(args, "config_dir", "") or "").strip()
    return resolve_config_dir(Path(raw) if raw else None)


def _store(args: argparse.Namespace) -> InboxStore:
    cfg = _config_dir(args)
    return InboxStore.from_settings(cfg, load_settings(cfg))


def cmd_messages_list(args: argparse.Namespace) -> int:
    try:
        entries = _store(args).list()
    except InboxCorruptError as e:
        _print_json({"ok": False, "error": str(e)})
        return 2
    if args.limit > 0:
        entries = entries[-args.limit :]
    if args.json:
        _print_json({"ok": True, "result": {"messages": [m.to_doc() for m in entries]}})
        return 0
    if not entries:
        print("(inbox empty)")
        return 0
    for m in entries:
        print(f"{m.timestamp}  {m.sender}: {extract_display_text(m.text)}")
    return 0


def cmd_messages_clear(args: argparse.Namespace) -> int:
    _store(args).clear()
    _print_json({"ok": True, "result": {"cleared": True}})
    return 0


def cmd_apps_list(args: argparse.Namespace) -> int:
    router = AppRouter()
    loaded = router.auto_load_defaults(_config_dir(args))
    apps = []
    for app_id in loaded:
        manifest = router.get(app_id)
        if manifest is None:
            continue
        apps.append({"app_id": app_id, "name": manifest.name, "actions": manifest.action_ids()})
    result: Dict[str, Any] = {"apps": apps}
    if router.last_load_error is not None:
        result["error"] = str(router.last_load_error)
    _print_json({"ok": router.last_load_error is None, "result": result})
    return 0 if router.last_load_error is None else 2


def cmd_apps_install_defaults(args: argparse.Namespace) -> int:
    installed = install_well_known_apps(_config_dir(args))
    _print_json({"ok": True, "result": {"installed": installed}})
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    try:
        send_text(args.address, args.text, _config_dir(args))
    except DaemonNotRunningError as e:
        print(f"reef: {e}", file=sys.stderr)
        return 1
    print("Message sent.")
    return 0


class _PrintRoutes:
    """Every sender gets a route; dispatch prints to stdout."""

    async def resolve_route(self, sender: str) -> Optional[Dict[str, str]]:
        return {"peer": sender}

    async def dispatch(self, route: Any, text: str, *, message_id: str, timestamp: str, session_key: str) -> None:
        print(f"[{timestamp}] {route.get('peer')} ({message_id}): {text}", flush=True)


async def _watch(cfg: Path) -> int:
    printer = _PrintRoutes()
    handle = await start_channel(cfg, resolver=printer, dispatcher=printer)
    if handle.watcher is None:
        return 1
    try:
        await handle.watcher.wait_stopped()
    finally:
        handle.stop()
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    cfg = _config_dir(args)
    setup_root_json_logging(component="reef.watch", level=load_settings(cfg).log_level)
    try:
        return asyncio.run(_watch(cfg))
    except KeyboardInterrupt:
        return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="reef", description="reef inbox and app-action tools")
    p.add_argument("--version", action="version", version=f"reef {__version__}")
    p.add_argument("--config-dir", dest="config_dir", default="", help="Identity directory (default: $REEF_HOME or ~/.reef)")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_messages = sub.add_parser("messages", help="List stored messages (oldest first); `messages clear` empties the inbox")
    p_messages.add_argument("--limit", type=int, default=0, help="Only the last N messages (default: all)")
    p_messages.add_argument("--json", action="store_true", help="Print raw entries as JSON")
    p_messages.set_defaults(func=cmd_messages_list)
    messages_sub = p_messages.add_subparsers(dest="action")

    p_messages_clear = messages_sub.add_parser("clear", help="Remove all stored messages")
    p_messages_clear.set_defaults(func=cmd_messages_clear)

    p_apps = sub.add_parser("apps", help="Installed app manifests")
    apps_sub = p_apps.add_subparsers(dest="action", required=True)

    p_apps_list = apps_sub.add_parser("list", help="List installed apps")
    p_apps_list.set_defaults(func=cmd_apps_list)

    p_apps_install = apps_sub.add_parser("install-defaults", help="Install the bundled well-known apps")
    p_apps_install.set_defaults(func=cmd_apps_install_defaults)

    p_send = sub.add_parser("send", help="Send a text message through the running daemon")
    p_send.add_argument("address", help="Peer address")
    p_send.add_argument("text", help="Message text")
    p_send.set_defaults(func=cmd_send)

    p_watch = sub.add_parser("watch", help="Watch the inbox and print new peer messages")
    p_watch.set_defaults(func=cmd_watch)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
