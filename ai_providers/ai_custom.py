# ai_providers/ai_custom.py
#! /usr/bin/env python3
# -*- coding: utf-8 -*-

from constants import ChatType
from configuration import CustomModelSettings
from .ai_chatgpt import ChatGPT
from .ai_gemini import Gemini
from .ai_ollama import Ollama
from .base import AIModel, ModelReply, ModelRequest
from .context_source import load_context

BASE_MODELS: dict[str, type[ChatGPT]] = {
    ChatType.CHATGPT.value: ChatGPT,
    ChatType.GEMINI.value: Gemini,
    ChatType.OLLAMA.value: Ollama,
}


class CustomModel(AIModel):
    """在文本模型之上叠加固定上下文

    include_mode:
        system  上下文作为系统指令传给模型（默认）
        prompt  上下文拼接到每条消息前面，效果不如 system 稳定
    """

    def __init__(
        self,
        settings: CustomModelSettings,
        context: str | None = None,
        base_dir: str | None = None,
        backend: ChatGPT | None = None,
    ) -> None:
        super().__init__(settings)
        if settings.base not in BASE_MODELS:
            raise ValueError(f"不支持的底座模型: {settings.base}，可选: {', '.join(BASE_MODELS)}")

        self.include_mode = settings.include_mode
        self.context = context if context is not None else load_context(settings.context, base_dir)

        base_cls = BASE_MODELS[settings.base]
        instruction = self.context if self.include_mode == "system" else None
        # 底座实例私有，会话只在本模型内可见
        self.backend = backend or base_cls(settings, system_instruction=instruction)
        self.sessions = self.backend.sessions
        self.LOG.info(f"自定义模型 {self.name} 基于 {settings.base}，上下文注入方式: {self.include_mode}")

    @staticmethod
    def value_check(settings: CustomModelSettings) -> bool:
        if not settings or not settings.enabled or not settings.context:
            return False
        if settings.base == ChatType.OLLAMA.value:
            return True
        return bool(settings.api_key)

    async def send_message(self, request: ModelRequest) -> ModelReply:
        prompt_prefix = self.context if self.include_mode == "prompt" else ""
        try:
            return await self.backend.send_message(request, prompt_prefix=prompt_prefix)
        except Exception as e:
            self.LOG.error(f"{self.name} 调用失败: {e}", exc_info=True)
            return self.error_reply(e)
