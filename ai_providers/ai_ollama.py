# ai_providers/ai_ollama.py
#! /usr/bin/env python3
# -*- coding: utf-8 -*-

from openai import AsyncOpenAI

from configuration import ProviderSettings
from .ai_chatgpt import ChatGPT


class Ollama(ChatGPT):
    """本地 Ollama 服务 (兼容OpenAI SDK)，仅文本"""

    default_api = "http://localhost:11434/v1"
    default_model = "llama3.2"
    default_prompt = ""

    def __init__(
        self,
        settings: ProviderSettings,
        system_instruction: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        # Ollama 不校验 key，但 SDK 要求非空
        if not settings.api_key:
            settings = settings.model_copy(update={"api_key": "ollama"})
        super().__init__(settings, system_instruction=system_instruction, client=client)

    @staticmethod
    def value_check(settings: ProviderSettings) -> bool:
        return bool(settings and settings.enabled)

    @staticmethod
    def check_vision(model: str) -> bool:
        return False
