# channel/metadata.py
"""WhatsApp 原始事件 -> 统一 Message

输入为 Baileys WAMessage 的 JSON 形态（由桥接进程原样转发）::

    {
        "key": {"remoteJid": "...", "fromMe": false, "id": "...", "participant": "..."},
        "pushName": "...",
        "messageTimestamp": 1700000000 | "1700000000" | {"low": ..., "high": ...},
        "message": {"conversation": "..."} | {"imageMessage": {...}} | ...
    }

这里的函数都是纯函数：相同的输入总是得到相同的输出。
"""

import base64
import binascii
import logging
from typing import Any

from constants import GROUP_JID_SUFFIX, SELF_SENDER
from .base import GroupInfo, MediaRef, Message, MessageType

logger = logging.getLogger(__name__)

# 包装型消息，真正的内容在其内部的 message 字段
_WRAPPER_KEYS = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "documentWithCaptionMessage",
)

# 按优先级排列的内容字段
_CONTENT_TYPES: list[tuple[str, MessageType]] = [
    ("conversation", MessageType.TEXT),
    ("extendedTextMessage", MessageType.TEXT),
    ("imageMessage", MessageType.IMAGE),
    ("videoMessage", MessageType.VIDEO),
    ("audioMessage", MessageType.AUDIO),
    ("documentMessage", MessageType.DOCUMENT),
    ("contactMessage", MessageType.CONTACT),
    ("contactsArrayMessage", MessageType.CONTACT),
    ("locationMessage", MessageType.LOCATION),
    ("liveLocationMessage", MessageType.LOCATION),
]

_MEDIA_TYPES = {
    MessageType.IMAGE,
    MessageType.VIDEO,
    MessageType.AUDIO,
    MessageType.DOCUMENT,
}

# 引用链最大解析深度
MAX_QUOTE_DEPTH = 2


def is_group_jid(jid: str) -> bool:
    return bool(jid) and jid.endswith(GROUP_JID_SUFFIX)


def to_timestamp(value: Any) -> int:
    """把 int / 数字字符串 / protobuf Long 统一转换为秒级整数"""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return 0
    if isinstance(value, dict):
        try:
            low = int(value.get("low", 0))
            high = int(value.get("high", 0))
        except (TypeError, ValueError):
            return 0
        return (high << 32) | (low & 0xFFFFFFFF)
    return 0


def unwrap_message(message: dict) -> dict:
    """剥离 ephemeral / viewOnce 等包装层"""
    depth = 0
    while isinstance(message, dict) and depth < 5:
        for key in _WRAPPER_KEYS:
            inner = message.get(key)
            if isinstance(inner, dict) and isinstance(inner.get("message"), dict):
                message = inner["message"]
                break
        else:
            return message
        depth += 1
    return message if isinstance(message, dict) else {}


def classify(message: dict) -> tuple[MessageType, str | None]:
    """返回消息类型以及承载内容的字段名"""
    for key, msg_type in _CONTENT_TYPES:
        if message.get(key) is not None:
            return msg_type, key
    return MessageType.UNKNOWN, None


def _decode_media_data(encoded: Any) -> bytes | None:
    if not encoded or not isinstance(encoded, str):
        return None
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("媒体 base64 数据无法解码，忽略")
        return None


def _extract_text(msg_type: MessageType, body: Any) -> str:
    if isinstance(body, str):
        return body
    if not isinstance(body, dict):
        return ""
    if msg_type == MessageType.TEXT:
        return body.get("text") or ""
    if msg_type == MessageType.CONTACT:
        return body.get("displayName") or ""
    if msg_type == MessageType.LOCATION:
        return body.get("name") or body.get("caption") or ""
    return body.get("caption") or ""


def _extract_media(msg_type: MessageType, body: Any) -> MediaRef | None:
    if msg_type not in _MEDIA_TYPES or not isinstance(body, dict):
        return None
    return MediaRef(
        url=body.get("url") or "",
        mimetype=body.get("mimetype") or "",
        caption=body.get("caption") or "",
        data=_decode_media_data(body.get("base64")),
    )


def parse_group_info(group_metadata: dict | None) -> GroupInfo | None:
    """解析 Baileys GroupMetadata"""
    if not isinstance(group_metadata, dict) or not group_metadata.get("id"):
        return None
    participants = []
    for p in group_metadata.get("participants") or []:
        if isinstance(p, dict) and p.get("id"):
            participants.append(p["id"])
        elif isinstance(p, str):
            participants.append(p)
    return GroupInfo(
        id=group_metadata["id"],
        subject=group_metadata.get("subject") or "",
        announce=bool(group_metadata.get("announce")),
        restrict=bool(group_metadata.get("restrict")),
        participants=participants,
    )


def _parse_quoted(context_info: Any, chat_id: str, depth: int, bot_id: str) -> Message | None:
    if not isinstance(context_info, dict):
        return None
    quoted_message = context_info.get("quotedMessage")
    if not isinstance(quoted_message, dict):
        return None
    raw_quoted = {
        "key": {
            "remoteJid": context_info.get("remoteJid") or chat_id,
            "id": context_info.get("stanzaId") or "",
            "participant": context_info.get("participant"),
            "fromMe": False,
        },
        "message": quoted_message,
    }
    return _parse(raw_quoted, None, depth + 1, bot_id)


def _parse(raw: Any, group_metadata: dict | None, depth: int, bot_id: str) -> Message | None:
    if not isinstance(raw, dict):
        return None
    key = raw.get("key")
    if not isinstance(key, dict):
        return None
    chat_id = key.get("remoteJid")
    if not chat_id:
        return None
    message = raw.get("message")
    if not isinstance(message, dict):
        return None

    message = unwrap_message(message)
    msg_type, content_key = classify(message)
    body = message.get(content_key) if content_key else None

    is_group = is_group_jid(chat_id)
    from_me = bool(key.get("fromMe"))
    if from_me:
        # 自己发出的消息，remoteJid 是对方（私聊）或群
        sender = bot_id or SELF_SENDER
    elif is_group:
        sender = key.get("participant") or raw.get("participant") or chat_id
    else:
        sender = chat_id

    quoted = None
    if depth < MAX_QUOTE_DEPTH and isinstance(body, dict):
        quoted = _parse_quoted(body.get("contextInfo"), chat_id, depth, bot_id)

    group = parse_group_info(group_metadata) if is_group else None

    return Message(
        id=key.get("id") or "",
        chat_id=chat_id,
        sender=sender,
        content=_extract_text(msg_type, body).strip(),
        type=msg_type,
        is_group=is_group,
        from_me=from_me,
        sender_name=raw.get("pushName") or "",
        timestamp=to_timestamp(raw.get("messageTimestamp")),
        media=_extract_media(msg_type, body),
        quoted=quoted,
        group=group,
        raw=raw,
    )


def parse_message(raw: Any, group_metadata: dict | None = None, bot_id: str = "") -> Message | None:
    """把一条原始事件解析为 Message

    Args:
        raw: Baileys WAMessage（dict）
        group_metadata: 该群的 GroupMetadata（群消息时由传输层提供）
        bot_id: 本账号 JID，自己发出的消息以它作为 sender

    Returns:
        Message；事件缺少 key / remoteJid / message 时返回 None
    """
    return _parse(raw, group_metadata, 0, bot_id)


def parse_batch(events: Any, groups: dict[str, dict] | None = None, bot_id: str = "") -> list[Message]:
    """解析一批事件，丢弃无法解析的条目"""
    if not isinstance(events, list):
        return []
    groups = groups or {}
    messages = []
    for raw in events:
        chat_id = raw.get("key", {}).get("remoteJid") if isinstance(raw, dict) and isinstance(raw.get("key"), dict) else None
        msg = parse_message(raw, groups.get(chat_id) if chat_id else None, bot_id)
        if msg is None:
            logger.debug(f"忽略无法解析的事件: {str(raw)[:100]}")
            continue
        messages.append(msg)
    return messages
