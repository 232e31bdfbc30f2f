# channel/local.py
"""本地命令行 Channel - 用于调试"""

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Any

from constants import GROUP_JID_SUFFIX, USER_JID_SUFFIX
from .base import Channel, Message
from .metadata import parse_message

logger = logging.getLogger(__name__)


class LocalChannel(Channel):
    """本地命令行 Channel - 用于在没有 WhatsApp 的环境下调试"""

    def __init__(self, bot_name: str = "WhatsAI", user_name: str = "User", max_sent: int = 500):
        self._bot_id = f"10000{USER_JID_SUFFIX}"
        self._bot_name = bot_name
        self._user_id = f"10001{USER_JID_SUFFIX}"
        self._user_name = user_name
        self._running = False
        self._message_queue: asyncio.Queue[Message] = asyncio.Queue()
        self._msg_counter = 0
        self._sent: OrderedDict[str, str] = OrderedDict()  # message id -> 内容，只保留最近 max_sent 条
        self._max_sent = max_sent

    @property
    def name(self) -> str:
        return "local"

    @property
    def bot_id(self) -> str:
        return self._bot_id

    def _next_id(self) -> str:
        self._msg_counter += 1
        return f"local_{self._msg_counter}"

    def _remember(self, message_id: str, content: str) -> None:
        self._sent[message_id] = content
        while len(self._sent) > self._max_sent:
            self._sent.popitem(last=False)

    def _print(self, text: str) -> None:
        print(f"\n\033[36m[{self._bot_name}]\033[0m {text}\n")

    async def send_text(
        self,
        content: str,
        receiver: str,
        quoted: Message | None = None,
    ) -> str | None:
        # 在命令行打印机器人回复
        message_id = self._next_id()
        self._remember(message_id, content)
        self._print(content)
        return message_id

    async def send_image(self, url: str, receiver: str, caption: str = "") -> str | None:
        message_id = self._next_id()
        shown = url if not url.startswith("data:") else f"{url[:40]}..."
        self._remember(message_id, caption)
        self._print(f"[图片: {shown}]\n{caption}")
        return message_id

    async def edit_message(self, receiver: str, message_id: str, content: str) -> bool:
        if message_id not in self._sent:
            return False
        self._sent[message_id] = content
        self._print(f"(编辑 {message_id}) {content}")
        return True

    async def delete_message(self, receiver: str, message_id: str) -> bool:
        if self._sent.pop(message_id, None) is None:
            return False
        print(f"\033[90m[{self._bot_name}] (撤回 {message_id})\033[0m")
        return True

    async def start(self, on_message: Callable[[Message], Any]) -> None:
        """启动命令行交互循环"""
        self._running = True
        print(f"\n{'='*50}")
        print(f"  {self._bot_name} Local Channel 已启动")
        print(f"  输入消息与机器人对话，输入 'quit' 退出")
        print(f"{'='*50}\n")

        # 启动输入读取任务
        input_task = asyncio.create_task(self._read_input_loop())

        # 消息处理循环
        while self._running:
            try:
                msg = await asyncio.wait_for(
                    self._message_queue.get(),
                    timeout=0.5
                )
                if asyncio.iscoroutinefunction(on_message):
                    await on_message(msg)
                else:
                    on_message(msg)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"处理消息时出错: {e}", exc_info=True)

        input_task.cancel()
        try:
            await input_task
        except asyncio.CancelledError:
            pass

    async def _read_input_loop(self) -> None:
        """异步读取命令行输入"""
        loop = asyncio.get_running_loop()
        while self._running:
            try:
                # 在线程中读取输入（避免阻塞事件循环）
                line = await loop.run_in_executor(None, self._read_line)
                if line is None:
                    continue

                line = line.strip()
                if not line:
                    continue

                if line.lower() in ('quit', 'exit', 'q'):
                    print("\n再见！")
                    self._running = False
                    break

                await self._message_queue.put(self.simulate_message(line))

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"读取输入时出错: {e}")

    def _read_line(self) -> str | None:
        """同步读取一行输入"""
        try:
            print(f"\033[33m[{self._user_name}]\033[0m ", end="", flush=True)
            return input()
        except EOFError:
            return None
        except KeyboardInterrupt:
            return "quit"

    async def stop(self) -> None:
        self._running = False

    def build_event(
        self,
        content: str,
        sender: str | None = None,
        group_id: str | None = None,
        from_me: bool = False,
    ) -> dict:
        """构造 Baileys 形态的原始事件"""
        sender = sender or self._user_id
        key = {
            "remoteJid": group_id or sender,
            "fromMe": from_me,
            "id": self._next_id(),
        }
        if group_id:
            key["participant"] = sender
        return {
            "key": key,
            "pushName": self._user_name,
            "messageTimestamp": int(time.time()),
            "message": {"conversation": content},
        }

    def simulate_message(
        self,
        content: str,
        sender: str | None = None,
        group_id: str | None = None,
        from_me: bool = False,
    ) -> Message:
        """模拟收到消息（走与 WhatsApp 相同的解析流程）"""
        if group_id and not group_id.endswith(GROUP_JID_SUFFIX):
            group_id = f"{group_id}{GROUP_JID_SUFFIX}"
        raw = self.build_event(content, sender=sender, group_id=group_id, from_me=from_me)
        group_metadata = {"id": group_id, "subject": "local"} if group_id else None
        return parse_message(raw, group_metadata, self._bot_id)
