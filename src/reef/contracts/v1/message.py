from __future__ import annotations

import uuid
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ...util.time import utc_now_iso


def _new_id() -> str:
    return str(uuid.uuid4())


class InboundMessage(BaseModel):
    """One entry of the inbox as persisted in messages.json."""

    id: str
    sender: str = Field(alias="from")
    text: str
    method: Optional[str] = None
    timestamp: str

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# A2A message shapes (the payload carried inside InboundMessage.text)


class TextPart(BaseModel):
    kind: Literal["text"] = "text"
    text: str

    model_config = ConfigDict(extra="allow")


class DataPart(BaseModel):
    kind: Literal["data"] = "data"
    data: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


Part = Annotated[Union[TextPart, DataPart], Field(discriminator="kind")]


class Message(BaseModel):
    kind: Literal["message"] = "message"
    message_id: str = Field(default_factory=_new_id, alias="messageId")
    role: Literal["user", "agent"] = "user"
    parts: List[Part] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow", populate_by_name=True)


TaskState = Literal["working", "completed", "failed"]


class TaskStatus(BaseModel):
    state: TaskState
    timestamp: str = Field(default_factory=utc_now_iso)
    message: Optional[Message] = None

    model_config = ConfigDict(extra="forbid")


class Task(BaseModel):
    """Acknowledgment handed back synchronously for a routed app action."""

    kind: Literal["task"] = "task"
    id: str = Field(default_factory=_new_id)
    context_id: str = Field(default_factory=_new_id, alias="contextId")
    status: TaskStatus

    model_config = ConfigDict(extra="forbid", populate_by_name=True)
