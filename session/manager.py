# session/manager.py
"""会话管理器 - 每个模型实例持有一个，按用户保存对话历史"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

logger = logging.getLogger("SessionManager")

DEFAULT_MAX_HISTORY = 30


@dataclass
class Session:
    """会话对象 - 单个用户与单个模型之间的对话"""

    key: str  # 用户 JID
    max_history: int = DEFAULT_MAX_HISTORY
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def add_message(self, role: str, content: Any, **kwargs) -> None:
        """添加消息，超出上限时丢弃最早的记录"""
        self.messages.append(
            {
                "role": role,
                "content": content,
                "timestamp": datetime.now().isoformat(),
                **kwargs,
            }
        )
        if self.max_history > 0 and len(self.messages) > self.max_history:
            del self.messages[: len(self.messages) - self.max_history]
        self.updated_at = datetime.now()

    def get_history(self, max_messages: int | None = None) -> list[dict]:
        """获取最近的消息历史"""
        limit = max_messages or self.max_history
        if limit <= 0:
            return list(self.messages)
        return self.messages[-limit:]

    def clear(self) -> None:
        """清空消息"""
        self.messages.clear()
        self.updated_at = datetime.now()


class SessionManager:
    """会话管理器

    - 以用户 JID 为 key，每个模型实例各自持有，天然隔离
    - 每个 session 最多保留 max_history 条消息
    - 同一用户的请求通过 lock() 串行化
    """

    def __init__(self, owner: str = "", max_history: int = DEFAULT_MAX_HISTORY):
        self.owner = owner
        self.max_history = max_history
        self._cache: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def create(self, key: str) -> Session:
        """创建（或重置）会话"""
        session = Session(key=key, max_history=self.max_history)
        self._cache[key] = session
        logger.debug(f"[{self.owner}] 创建 session: {key}")
        return session

    def exists(self, key: str) -> bool:
        return key in self._cache

    def get(self, key: str) -> Session | None:
        """获取已存在的会话"""
        return self._cache.get(key)

    def get_or_create(self, key: str) -> Session:
        """获取或创建会话"""
        session = self._cache.get(key)
        if session is None:
            session = self.create(key)
        return session

    def add_message(self, key: str, role: str, content: Any, **kwargs) -> None:
        """向已存在的会话追加消息"""
        session = self._cache.get(key)
        if session is None:
            raise KeyError(f"session 不存在: {key}")
        session.add_message(role, content, **kwargs)

    def remove(self, key: str) -> bool:
        """移除会话

        锁不随会话删除，正在进行的请求仍持有它，后续请求继续排队

        Returns:
            是否成功移除
        """
        if self._cache.pop(key, None) is None:
            return False
        logger.debug(f"[{self.owner}] 移除 session: {key}")
        return True

    def lock(self, key: str) -> asyncio.Lock:
        """获取某个用户的串行锁"""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def list_sessions(self) -> list[dict]:
        """列出所有 session 信息"""
        result = []
        for key, session in self._cache.items():
            result.append({
                "key": key,
                "message_count": len(session.messages),
                "updated_at": session.updated_at.isoformat(),
            })
        return result

    def clear_all(self) -> None:
        """清空所有会话"""
        self._cache.clear()
