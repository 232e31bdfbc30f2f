# ai_providers/base.py
"""模型适配器的统一接口

每个适配器都实现 send_message(request) -> ModelReply，且保证：
- 成功时返回文本或图片回复（已加上模型图标）
- 失败时返回一个 error 回复，异常不会抛出适配器边界
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TYPE_CHECKING

from session import SessionManager

if TYPE_CHECKING:
    from channel import Message
    from configuration import ProviderSettings


class ReplyKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    ERROR = "error"


@dataclass
class ModelRequest:
    """一次模型调用的输入"""
    sender: str                          # 用户 JID，即 session key
    prompt: str                          # 去掉前缀后的文本
    metadata: "Message | None" = None    # 原始消息（图片、引用等）
    prefix: str = ""                     # 命中的前缀


@dataclass
class ModelReply:
    """模型调用结果：text / image / error 三选一"""
    kind: ReplyKind
    text: str = ""
    image_url: str = ""
    caption: str = ""
    error: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def text_reply(cls, text: str) -> "ModelReply":
        return cls(kind=ReplyKind.TEXT, text=text)

    @classmethod
    def image_reply(cls, image_url: str, caption: str = "") -> "ModelReply":
        return cls(kind=ReplyKind.IMAGE, image_url=image_url, caption=caption)

    @classmethod
    def failure(cls, error: str) -> "ModelReply":
        return cls(kind=ReplyKind.ERROR, error=error or "unknown error")

    @property
    def ok(self) -> bool:
        return self.kind != ReplyKind.ERROR


def select_image(metadata: "Message | None"):
    """选择要交给视觉模型的图片：引用的图片优先于消息本身附带的图片"""
    if metadata is None:
        return None
    quoted = metadata.quoted_image
    if quoted is not None:
        return quoted
    if metadata.has_image:
        return metadata.media
    return None


class AIModel(ABC):
    """模型适配器抽象基类

    session 相关操作委托给组合进来的 SessionManager，子类只需实现 send_message。
    """

    def __init__(self, settings: "ProviderSettings") -> None:
        self.settings = settings
        self.name = settings.name
        self.prefix = settings.prefix
        self.icon = settings.icon
        self.sessions = SessionManager(owner=settings.name, max_history=settings.max_history_messages)
        self.LOG = logging.getLogger(settings.name)

    def __repr__(self) -> str:
        return self.name

    @staticmethod
    def value_check(settings: "ProviderSettings") -> bool:
        """检查启用该模型所需的配置是否齐全"""
        return bool(settings and settings.enabled and settings.api_key)

    @abstractmethod
    async def send_message(self, request: ModelRequest) -> ModelReply:
        """调用模型"""
        ...

    def session_create(self, user: str) -> None:
        self.sessions.create(user)

    def session_exists(self, user: str) -> bool:
        return self.sessions.exists(user)

    def session_remove(self, user: str) -> bool:
        return self.sessions.remove(user)

    def session_add_message(self, user: str, role: str, content: Any) -> None:
        self.sessions.add_message(user, role, content)

    def ensure_session(self, user: str) -> None:
        if not self.session_exists(user):
            self.session_create(user)

    def add_prefix_icon(self, text: str) -> str:
        if not self.icon:
            return text
        return f"{self.icon} {text}"

    def error_reply(self, error: Exception | str) -> ModelReply:
        detail = str(error) or error.__class__.__name__
        return ModelReply.failure(self.add_prefix_icon(f"{self.name} error: {detail}"))
