from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


def reef_home() -> Path:
    env = os.environ.get("REEF_HOME", "").strip()
    if env:
        return Path(env).expanduser().resolve()
    return (Path.home() / ".reef").resolve()


def resolve_config_dir(config_dir: Optional[Path] = None) -> Path:
    """Explicit per-identity directory, or the home directory."""
    if config_dir is not None:
        return Path(config_dir).expanduser().resolve()
    return reef_home()
