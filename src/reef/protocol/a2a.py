"""A2A wire helpers: JSON-RPC `message/send` envelopes and app-action parts.

Peers exchange A2A requests as JSON strings over the transport. The inbox
stores those strings verbatim in `InboundMessage.text`; everything here turns
them back into structured values without ever raising on bad input.
"""
from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..contracts.v1 import AppAction, DataPart, Message, TextPart

SEND_MESSAGE_METHOD = "message/send"


def text_part(text: str) -> TextPart:
    return TextPart(text=text)


def build_app_action_data_part(app_id: str, action: str, payload: Optional[Dict[str, Any]] = None) -> DataPart:
    return DataPart(data={"appId": app_id, "action": action, "payload": dict(payload or {})})


def create_message(role: str, parts: Sequence[Union[TextPart, DataPart]]) -> Message:
    return Message(role=role, parts=list(parts))


def create_send_message_request(message: Message) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": str(uuid.uuid4()),
        "method": SEND_MESSAGE_METHOD,
        "params": {"message": message.model_dump(by_alias=True)},
    }


def encode_a2a_message(obj: Mapping[str, Any]) -> str:
    return json.dumps(dict(obj), ensure_ascii=False, separators=(",", ":"))


def decode_a2a_message(raw: str) -> Optional[Dict[str, Any]]:
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


def is_a2a_request(obj: Any) -> bool:
    if not isinstance(obj, dict):
        return False
    return obj.get("jsonrpc") == "2.0" and isinstance(obj.get("method"), str)


def _part_data(part: Any) -> Optional[Dict[str, Any]]:
    if isinstance(part, DataPart):
        return part.data
    if isinstance(part, dict) and part.get("kind") == "data":
        data = part.get("data")
        return data if isinstance(data, dict) else None
    return None


def extract_app_action(part: Any) -> Optional[AppAction]:
    """Return the app action carried by a data part, or None.

    Accepts model parts or raw dict parts. Requires non-empty string `appId`
    and `action`; `payload`, when present, must be an object.
    """
    data = _part_data(part)
    if data is None:
        return None
    app_id = data.get("appId")
    action = data.get("action")
    if not isinstance(app_id, str) or not isinstance(action, str):
        return None
    payload = data.get("payload", {})
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return None
    try:
        return AppAction(appId=app_id, action=action, payload=payload)
    except ValidationError:
        return None


def format_app_action(action: AppAction) -> str:
    return f"[app-action] {action.app_id}/{action.action}: {json.dumps(action.payload, ensure_ascii=False, separators=(',', ':'))}"


def request_parts(obj: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Parts of a `message/send` request's message, as raw dicts."""
    params = obj.get("params")
    if not isinstance(params, dict):
        return []
    message = params.get("message")
    if not isinstance(message, dict):
        return []
    parts = message.get("parts")
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


def extract_display_text(raw: str) -> str:
    """Human-readable text for an inbound transport payload.

    Text parts are joined with newlines and app actions are rendered inline.
    Anything that is not a `message/send` request, or has nothing to show,
    comes back unchanged.
    """
    decoded = decode_a2a_message(raw)
    if decoded is None or not is_a2a_request(decoded) or decoded.get("method") != SEND_MESSAGE_METHOD:
        return raw

    segments: List[str] = []
    for part in request_parts(decoded):
        kind = part.get("kind")
        if kind == "text" and isinstance(part.get("text"), str):
            segments.append(part["text"])
        elif kind == "data":
            action = extract_app_action(part)
            if action is not None:
                segments.append(format_app_action(action))

    return "\n".join(segments) if segments else raw
