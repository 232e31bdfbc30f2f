# channel/__init__.py
from .base import Channel, GroupInfo, MediaRef, Message, MessageType
from .local import LocalChannel
from .metadata import parse_batch, parse_message
from .whatsapp import WhatsAppChannel

__all__ = [
    "Channel",
    "GroupInfo",
    "MediaRef",
    "Message",
    "MessageType",
    "LocalChannel",
    "WhatsAppChannel",
    "parse_batch",
    "parse_message",
]
