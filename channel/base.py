# channel/base.py
"""Channel 抽象基类"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Any


class MessageType(IntEnum):
    """消息类型"""
    TEXT = 1
    IMAGE = 2
    VIDEO = 3
    AUDIO = 4
    DOCUMENT = 5
    CONTACT = 6
    LOCATION = 7
    UNKNOWN = 0


@dataclass
class MediaRef:
    """媒体引用（图片/视频/音频/文档）"""
    url: str = ""
    mimetype: str = ""
    caption: str = ""
    data: bytes | None = None        # 桥接进程已下载的原始字节

    @property
    def is_image(self) -> bool:
        return self.mimetype.startswith("image/")


@dataclass
class GroupInfo:
    """群信息"""
    id: str
    subject: str = ""
    announce: bool = False           # 仅管理员可发言
    restrict: bool = False           # 仅管理员可修改群设置
    participants: list[str] = field(default_factory=list)

    @property
    def is_locked(self) -> bool:
        return self.announce or self.restrict


@dataclass
class Message:
    """统一消息格式"""
    id: str                          # 消息 ID
    chat_id: str                     # 会话 JID（群 JID 或私聊 JID）
    sender: str                      # 发送者 JID
    content: str                     # 文本内容（或媒体说明）
    type: MessageType = MessageType.TEXT
    is_group: bool = False           # 是否群聊
    from_me: bool = False            # 是否由本账号发出
    sender_name: str = ""            # 发送者昵称（pushName）
    timestamp: int = 0               # 秒级时间戳
    media: MediaRef | None = None
    quoted: "Message | None" = None  # 被引用的消息
    group: GroupInfo | None = None
    raw: Any = None                  # 原始事件（平台特定）

    def get_chat_id(self) -> str:
        """获取会话 ID"""
        return self.chat_id

    @property
    def has_image(self) -> bool:
        return self.type == MessageType.IMAGE and self.media is not None

    @property
    def quoted_image(self) -> MediaRef | None:
        if self.quoted is not None and self.quoted.has_image:
            return self.quoted.media
        return None


class Channel(ABC):
    """Channel 抽象基类 - 定义消息收发接口"""

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel 名称"""
        ...

    @property
    @abstractmethod
    def bot_id(self) -> str:
        """机器人自身 ID"""
        ...

    @abstractmethod
    async def send_text(
        self,
        content: str,
        receiver: str,
        quoted: Message | None = None,
    ) -> str | None:
        """发送文本消息

        Args:
            content: 消息内容
            receiver: 接收者 JID（用户或群）
            quoted: 需要引用回复的消息

        Returns:
            发出消息的 ID，失败时为 None
        """
        ...

    @abstractmethod
    async def send_image(self, url: str, receiver: str, caption: str = "") -> str | None:
        """发送图片（url 可以是 http(s) 地址或 data: URL）"""
        ...

    @abstractmethod
    async def edit_message(self, receiver: str, message_id: str, content: str) -> bool:
        """编辑已发送的文本消息"""
        ...

    @abstractmethod
    async def delete_message(self, receiver: str, message_id: str) -> bool:
        """撤回已发送的消息"""
        ...

    @abstractmethod
    async def start(self, on_message: Callable[[Message], Any]) -> None:
        """启动消息接收循环

        Args:
            on_message: 消息处理回调（可以是 async 函数）
        """
        ...

    @abstractmethod
    async def stop(self) -> None:
        """停止消息接收"""
        ...
