from __future__ import annotations

from .a2a import (
    SEND_MESSAGE_METHOD,
    build_app_action_data_part,
    create_message,
    create_send_message_request,
    decode_a2a_message,
    encode_a2a_message,
    extract_app_action,
    extract_display_text,
    format_app_action,
    is_a2a_request,
    text_part,
)

__all__ = [
    "SEND_MESSAGE_METHOD",
    "build_app_action_data_part",
    "create_message",
    "create_send_message_request",
    "decode_a2a_message",
    "encode_a2a_message",
    "extract_app_action",
    "extract_display_text",
    "format_app_action",
    "is_a2a_request",
    "text_part",
]
