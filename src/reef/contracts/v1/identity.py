from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class AgentIdentity(BaseModel):
    """Local identity as written by the transport side into identity.json."""

    version: int = 1
    address: str = Field(min_length=1)
    public_key: str = Field(default="", alias="publicKey")
    created_at: str = Field(default="", alias="createdAt")
    xmtp_env: str = Field(default="dev", alias="xmtpEnv")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
