from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class SendArgs(BaseModel):
    """Relay `message` (an encoded A2A request) to the peer at `to`."""

    to: str
    message: str

    model_config = ConfigDict(extra="forbid")


class DaemonRequest(BaseModel):
    v: int = 1
    op: Literal["send"]
    args: SendArgs

    model_config = ConfigDict(extra="forbid")


class DaemonError(BaseModel):
    code: str
    message: str

    model_config = ConfigDict(extra="ignore")


class DaemonResponse(BaseModel):
    """Only `ok` is acted on; anything else a newer daemon sends is dropped."""

    v: int = 1
    ok: bool
    error: Optional[DaemonError] = None

    model_config = ConfigDict(extra="ignore")
