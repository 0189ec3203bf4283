"""Installed app manifests under <config_dir>/apps/.

Each app is one file: either markdown with YAML front matter (the rules text
follows the front matter) or a plain YAML document.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml  # type: ignore
from pydantic import ValidationError

from ..contracts.v1 import AppManifest
from ..paths import resolve_config_dir
from ..util.fs import atomic_write_text

_FRONT_MATTER_DELIM = "---"
_SUFFIXES = (".md", ".yaml", ".yml")


class ManifestError(ValueError):
    """An app file exists but does not describe a valid manifest."""


WELL_KNOWN_APPS: Dict[str, str] = {
    "tic-tac-toe": """---
appId: tic-tac-toe
name: Tic-Tac-Toe
description: Classic 3x3 game between two agents.
actions:
  - actionId: move
    label: Move
    description: Place your mark on a cell (position 0-8, row-major).
  - actionId: resign
    label: Resign
    description: Concede the current game.
---
# Tic-Tac-Toe

Players alternate moves. The proposer plays X and moves first.
A move payload is `{"position": <0-8>}`. Three in a row wins.
""",
}


def apps_dir(config_dir: Optional[Path] = None) -> Path:
    return resolve_config_dir(config_dir) / "apps"


def _split_front_matter(text: str) -> Optional[str]:
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIM:
        return None
    for i in range(1, len(lines)):
        if lines[i].strip() == _FRONT_MATTER_DELIM:
            return "\n".join(lines[1:i])
    return None


def parse_manifest(path: Path) -> AppManifest:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".md":
        header = _split_front_matter(text)
        if header is None:
            raise ManifestError(f"{path}: missing YAML front matter")
        text = header
    try:
        doc: Any = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(f"{path}: {e}") from e
    if not isinstance(doc, dict):
        raise ManifestError(f"{path}: manifest must be a mapping")
    try:
        return AppManifest.model_validate(doc)
    except ValidationError as e:
        raise ManifestError(f"{path}: {e}") from e


def load_all_installed_apps(config_dir: Optional[Path] = None) -> List[AppManifest]:
    """Parse every app file in name order. Raises ManifestError on a bad file."""
    d = apps_dir(config_dir)
    if not d.is_dir():
        return []
    out: List[AppManifest] = []
    for p in sorted(d.iterdir()):
        if p.is_file() and p.suffix in _SUFFIXES:
            out.append(parse_manifest(p))
    return out


def install_well_known_apps(config_dir: Optional[Path] = None) -> List[str]:
    d = apps_dir(config_dir)
    installed: List[str] = []
    for app_id, body in WELL_KNOWN_APPS.items():
        p = d / f"{app_id}.md"
        if not p.exists():
            atomic_write_text(p, body)
        installed.append(app_id)
    return installed
