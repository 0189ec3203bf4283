from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..contracts.v1 import AgentIdentity
from ..paths import resolve_config_dir
from ..util.fs import read_json


def identity_path(config_dir: Optional[Path] = None) -> Path:
    return resolve_config_dir(config_dir) / "identity.json"


def load_identity(config_dir: Optional[Path] = None) -> Optional[AgentIdentity]:
    """Identity written by the transport side, or None if absent/invalid."""
    doc = read_json(identity_path(config_dir))
    if not doc:
        return None
    try:
        return AgentIdentity.model_validate(doc)
    except ValidationError:
        return None
