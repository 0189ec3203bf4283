from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class AppActionSpec(BaseModel):
    """One action an installed app declares."""

    action_id: str = Field(alias="actionId", min_length=1)
    label: str = ""
    description: str = ""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AppManifest(BaseModel):
    app_id: str = Field(alias="appId", min_length=1)
    name: str = ""
    description: str = ""
    actions: List[AppActionSpec] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def action_ids(self) -> List[str]:
        return [a.action_id for a in self.actions]


class AppAction(BaseModel):
    """Structured app instruction found in a data part. Extracted, never stored."""

    app_id: str = Field(alias="appId", min_length=1)
    action: str = Field(min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
