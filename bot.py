# bot.py
"""WhatsAIBot - 把 WhatsApp 消息按前缀分派给各个 AI 模型"""

import logging
import os
from collections import deque

from channel import Channel, Message
from ai_providers import (
    AIModel,
    ChatGPT,
    CustomModel,
    DALLE,
    Gemini,
    ModelReply,
    ModelRequest,
    Ollama,
    ReplyKind,
    StabilityAI,
)
from commands import PrefixRouter, RouteKind, build_help_text
from configuration import Config
from constants import ChatType

__version__ = "1.0.0"

logger = logging.getLogger("WhatsAIBot")

MODEL_CLASSES: dict[str, type[AIModel]] = {
    ChatType.CHATGPT.value: ChatGPT,
    ChatType.GEMINI.value: Gemini,
    ChatType.OLLAMA.value: Ollama,
    ChatType.DALLE.value: DALLE,
    ChatType.STABILITY.value: StabilityAI,
}

# 记录最近发出的消息 ID，用于忽略自己回复产生的回显
SENT_ID_CACHE_SIZE = 500


class WhatsAIBot:
    """基于 Channel 抽象的多模型机器人"""

    def __init__(self, channel: Channel, config: Config, chat_models: dict[str, AIModel] | None = None):
        self.channel = channel
        self.config = config
        self.LOG = logger

        # 初始化 AI 模型
        if chat_models is None:
            self.chat_models: dict[str, AIModel] = {}
            self._init_chat_models()
        else:
            self.chat_models = dict(chat_models)

        if not self.chat_models:
            self.LOG.warning("未配置任何可用的模型")

        registrations = [r for r in self.config.registrations if r.name in self.chat_models]
        self.router = PrefixRouter(
            registrations,
            prefix_enabled=self.config.PREFIX_ENABLED,
            default_model=self.config.DEFAULT_MODEL,
        )
        self._sent_ids: deque[str] = deque(maxlen=SENT_ID_CACHE_SIZE)

    def _init_chat_models(self) -> None:
        """初始化所有 AI 模型，缺少配置的模型不会被创建"""
        self.LOG.info("开始初始化 AI 模型...")

        for settings in self.config.PROVIDERS:
            model_cls = MODEL_CLASSES.get(settings.name)
            if model_cls is None:
                continue
            if not settings.enabled:
                self.LOG.info(f"{settings.name} 未启用")
                continue
            if not model_cls.value_check(settings):
                self.LOG.error(f"{settings.name} 缺少 API key，已跳过")
                continue
            try:
                self.chat_models[settings.name] = model_cls(settings)
                self.LOG.info(f"已加载 {settings.name}: 前缀 {settings.prefix}")
            except Exception as e:
                self.LOG.error(f"初始化 {settings.name} 失败: {e}")

        base_dir = os.path.dirname(os.path.abspath(self.config.path)) if self.config.path else None
        for settings in self.config.CUSTOM_MODELS:
            if not settings.enabled:
                self.LOG.info(f"自定义模型 {settings.name} 未启用")
                continue
            if settings.name in self.chat_models:
                self.LOG.error(f"自定义模型名称 {settings.name} 与已有模型重复，已跳过")
                continue
            if not CustomModel.value_check(settings):
                self.LOG.error(f"自定义模型 {settings.name} 缺少 API key 或上下文，已跳过")
                continue
            try:
                self.chat_models[settings.name] = CustomModel(settings, base_dir=base_dir)
                self.LOG.info(f"已加载自定义模型 {settings.name}: 前缀 {settings.prefix}")
            except Exception as e:
                self.LOG.error(f"初始化自定义模型 {settings.name} 失败: {e}")

    async def start(self) -> None:
        """启动机器人"""
        self.LOG.info(f"WhatsAIBot v{__version__} 启动中，可用模型: {', '.join(self.chat_models) or '无'}")
        await self.channel.start(self._on_message)

    async def stop(self) -> None:
        """停止机器人"""
        await self.channel.stop()
        self.LOG.info("WhatsAIBot 已停止")

    async def _on_message(self, msg: Message) -> None:
        """消息处理入口，单条消息出错不影响其他消息"""
        try:
            await self.handle_message(msg)
        except Exception as e:
            self.LOG.error(f"处理消息时出错: {e}", exc_info=True)

    def _remember(self, message_id: str | None) -> None:
        if message_id:
            self._sent_ids.append(message_id)

    def should_skip(self, msg: Message) -> bool:
        """判断消息是否需要忽略"""
        if msg.is_group and msg.group is not None and msg.group.is_locked:
            self.LOG.debug(f"群 {msg.chat_id} 已锁定，忽略")
            return True

        if msg.from_me:
            if msg.id in self._sent_ids:
                return True
            if not self.config.SELF_MESSAGE_ENABLED:
                return True
            skip_prefix = self.config.SELF_SKIP_PREFIX
            if skip_prefix and msg.content.startswith(skip_prefix):
                return True

        if not msg.content and msg.media is None:
            return True
        return False

    async def handle_message(self, msg: Message) -> None:
        """处理单条消息：路由 -> 占位消息 -> 调用模型 -> 替换占位消息"""
        if self.should_skip(msg):
            return

        if await self._handle_command(msg):
            return

        route = self.router.route(msg.content)
        if not route.matched:
            # bot.debug 打开时以 INFO 输出
            log = self.LOG.info if self.config.DEBUG else self.LOG.debug
            log(f"未匹配任何模型，忽略: {msg.content[:50]}")
            return

        model = self.chat_models.get(route.provider)
        if model is None:
            return

        self.LOG.info(f"{msg.sender} -> {model.name} ({route.kind.value})")
        placeholder_id = await self.channel.send_text(self.config.PROCESSING_TEXT, msg.chat_id, quoted=msg)
        self._remember(placeholder_id)

        request = ModelRequest(
            sender=msg.sender,
            prompt=route.prompt,
            metadata=msg,
            prefix=model.prefix if route.kind in (RouteKind.MODEL, RouteKind.CUSTOM) else "",
        )
        try:
            reply = await model.send_message(request)
        except Exception as e:
            self.LOG.error(f"{model.name} 抛出异常: {e}", exc_info=True)
            reply = model.error_reply(e)

        if not isinstance(reply, ModelReply):
            self.LOG.error(f"{model.name} 返回了非 ModelReply 类型: {type(reply)}")
            reply = model.error_reply("invalid reply")

        await self.deliver(msg, placeholder_id, reply)

    async def deliver(self, msg: Message, placeholder_id: str | None, reply: ModelReply) -> None:
        """文本/错误：编辑占位消息；图片：撤回占位消息后发送图片"""
        chat_id = msg.chat_id

        if reply.kind == ReplyKind.IMAGE:
            if placeholder_id:
                await self.channel.delete_message(chat_id, placeholder_id)
            self._remember(await self.channel.send_image(reply.image_url, chat_id, reply.caption))
            return

        text = reply.text if reply.ok else reply.error
        if placeholder_id:
            if await self.channel.edit_message(chat_id, placeholder_id, text):
                return
            self.LOG.warning(f"编辑占位消息 {placeholder_id} 失败，改为撤回后重新发送")
            await self.channel.delete_message(chat_id, placeholder_id)
        self._remember(await self.channel.send_text(text, chat_id, quoted=msg))

    async def _handle_command(self, msg: Message) -> bool:
        """内置命令，返回是否已处理"""
        command = msg.content.strip().lower()

        if command == self.config.HELP_COMMAND.lower():
            text = build_help_text(
                self.router.enabled_registrations(),
                self.config.PREFIX_ENABLED,
                self.config.DEFAULT_MODEL,
                self.config.RESET_COMMAND,
            )
            self._remember(await self.channel.send_text(text, msg.chat_id, quoted=msg))
            return True

        if command == self.config.RESET_COMMAND.lower():
            removed = [m.name for m in self.chat_models.values() if m.session_remove(msg.sender)]
            self.LOG.info(f"{msg.sender} 清空会话: {removed}")
            self._remember(await self.channel.send_text("🧹 Conversation history cleared.", msg.chat_id, quoted=msg))
            return True

        return False

    def cleanup(self) -> None:
        """清理资源"""
        self.LOG.info("正在清理 WhatsAIBot 资源...")
        for model in self.chat_models.values():
            model.sessions.clear_all()
        self.LOG.info("WhatsAIBot 资源清理完成")
