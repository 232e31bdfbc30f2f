# channel/whatsapp.py
"""WhatsApp Channel - 基于 Baileys 桥接进程

WhatsApp Web 的连接、扫码登录与重连都由外部桥接进程负责（Node.js + Baileys），
这里只通过 HTTP 与它交互：

    GET  /me               -> {"id": "<bot jid>"}
    GET  /events?timeout=N -> {"messages": [WAMessage, ...], "groups": {jid: GroupMetadata}}
    POST /messages/text    -> {"id": "<message id>"}
    POST /messages/image   -> {"id": "<message id>"}
    POST /messages/edit
    POST /messages/delete
"""

import asyncio
import logging
from typing import Callable, Any

import httpx

from .base import Channel, Message
from .metadata import parse_batch

logger = logging.getLogger(__name__)

STATUS_BROADCAST_JID = "status@broadcast"


class WhatsAppChannel(Channel):
    """WhatsApp Channel - 封装桥接进程的 HTTP 接口"""

    def __init__(
        self,
        bridge_url: str = "http://127.0.0.1:3000",
        token: str | None = None,
        poll_timeout: int = 25,
        client: httpx.AsyncClient | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._client = client or httpx.AsyncClient(
            base_url=bridge_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(poll_timeout + 10, connect=10),
        )
        self._poll_timeout = poll_timeout
        self._bot_id = ""
        self._running = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return "whatsapp"

    @property
    def bot_id(self) -> str:
        return self._bot_id

    async def connect(self) -> None:
        """查询桥接进程当前登录的账号"""
        resp = await self._client.get("/me")
        resp.raise_for_status()
        self._bot_id = resp.json().get("id", "")
        logger.info(f"已连接 WhatsApp 桥接进程，账号: {self._bot_id}")

    async def _post(self, path: str, payload: dict) -> dict | None:
        try:
            resp = await self._client.post(path, json=payload)
            resp.raise_for_status()
            return resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"请求桥接接口 {path} 失败: {e}")
            return None

    async def send_text(
        self,
        content: str,
        receiver: str,
        quoted: Message | None = None,
    ) -> str | None:
        payload = {"jid": receiver, "text": content}
        if quoted is not None and quoted.raw is not None:
            payload["quoted"] = quoted.raw
        data = await self._post("/messages/text", payload)
        if data is None:
            return None
        return data.get("id")

    async def send_image(self, url: str, receiver: str, caption: str = "") -> str | None:
        data = await self._post(
            "/messages/image", {"jid": receiver, "url": url, "caption": caption}
        )
        if data is None:
            return None
        return data.get("id")

    async def edit_message(self, receiver: str, message_id: str, content: str) -> bool:
        data = await self._post(
            "/messages/edit", {"jid": receiver, "id": message_id, "text": content}
        )
        return data is not None

    async def delete_message(self, receiver: str, message_id: str) -> bool:
        data = await self._post("/messages/delete", {"jid": receiver, "id": message_id})
        return data is not None

    async def poll(self) -> list[Message]:
        """长轮询一次，返回解析后的消息"""
        try:
            resp = await self._client.get("/events", params={"timeout": self._poll_timeout})
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"接收消息失败: {e}")
            await asyncio.sleep(1)
            return []

        if not isinstance(payload, dict):
            return []
        groups = payload.get("groups") if isinstance(payload.get("groups"), dict) else {}
        messages = parse_batch(payload.get("messages"), groups, self._bot_id)
        return [m for m in messages if m.chat_id != STATUS_BROADCAST_JID]

    async def start(self, on_message: Callable[[Message], Any]) -> None:
        """启动消息接收循环，每条消息在独立的 task 中处理"""
        self._running = True
        if not self._bot_id:
            await self.connect()

        logger.info("WhatsAppChannel 已启动")

        while self._running:
            try:
                for msg in await self.poll():
                    logger.debug(f"收到消息: {msg.sender}: {msg.content[:50]}")
                    task = asyncio.create_task(self._dispatch(on_message, msg))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"处理消息批次时出错: {e}", exc_info=True)

    @staticmethod
    async def _dispatch(on_message: Callable[[Message], Any], msg: Message) -> None:
        try:
            if asyncio.iscoroutinefunction(on_message):
                await on_message(msg)
            else:
                on_message(msg)
        except Exception as e:
            logger.error(f"处理消息时出错: {e}", exc_info=True)

    async def stop(self) -> None:
        self._running = False
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("WhatsAppChannel 已停止")

    async def cleanup(self) -> None:
        """关闭 HTTP 连接"""
        await self._client.aclose()
