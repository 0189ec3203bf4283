from __future__ import annotations

from .app import AppAction, AppActionSpec, AppManifest
from .identity import AgentIdentity
from .ipc import DaemonError, DaemonRequest, DaemonResponse, SendArgs
from .message import DataPart, InboundMessage, Message, Part, Task, TaskState, TaskStatus, TextPart

__all__ = [
    "AgentIdentity",
    "AppAction",
    "AppActionSpec",
    "AppManifest",
    "DaemonError",
    "DaemonRequest",
    "DaemonResponse",
    "DataPart",
    "InboundMessage",
    "Message",
    "Part",
    "SendArgs",
    "Task",
    "TaskState",
    "TaskStatus",
    "TextPart",
]
