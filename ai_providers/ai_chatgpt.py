# ai_providers/ai_chatgpt.py
#! /usr/bin/env python3
# -*- coding: utf-8 -*-

import base64
from typing import Any

import httpx
from openai import APIConnectionError, APIError, AuthenticationError, AsyncOpenAI

from configuration import ProviderSettings
from .base import AIModel, ModelReply, ModelRequest, select_image


class ChatGPT(AIModel):
    """OpenAI Chat Completions，多轮对话，视觉模型支持图片理解"""

    default_api = "https://api.openai.com/v1"
    default_model = "gpt-4o-mini"
    default_prompt = "You are a helpful assistant."

    def __init__(
        self,
        settings: ProviderSettings,
        system_instruction: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        super().__init__(settings)
        key = settings.api_key
        api = settings.api_base or self.default_api
        proxy = settings.proxy
        self.model = settings.model or self.default_model

        if client is not None:
            self.client = client
        elif proxy:
            self.client = AsyncOpenAI(api_key=key, base_url=api, http_client=httpx.AsyncClient(proxy=proxy))
        else:
            self.client = AsyncOpenAI(api_key=key, base_url=api)

        self.system_prompt = system_instruction or settings.prompt or self.default_prompt
        self.support_vision = self.check_vision(self.model)

    @staticmethod
    def check_vision(model: str) -> bool:
        return model.startswith(("gpt-4o", "gpt-4.1", "gpt-5")) or "-vision" in model

    @staticmethod
    def encode_image(media) -> str:
        """把媒体引用转换为 image_url 可用的地址"""
        if media.data:
            mimetype = media.mimetype or "image/jpeg"
            return f"data:{mimetype};base64,{base64.b64encode(media.data).decode('utf-8')}"
        return media.url

    def build_user_content(self, request: ModelRequest, prompt_prefix: str = "") -> Any:
        """视觉模型且带图片时走 image+prompt，否则走纯文本"""
        prompt = request.prompt
        if prompt_prefix and prompt:
            prompt = f"{prompt_prefix}\n\n{prompt}"
        media = select_image(request.metadata) if self.support_vision else None
        image_url = self.encode_image(media) if media is not None else ""
        if not image_url:
            return prompt
        return [
            {"type": "text", "text": prompt or "Describe this image."},
            {"type": "image_url", "image_url": {"url": image_url}},
        ]

    def build_messages(self, user: str, user_content: Any) -> list[dict]:
        api_messages = []
        if self.system_prompt:
            api_messages.append({"role": "system", "content": self.system_prompt})

        session = self.sessions.get(user)
        for msg in session.get_history() if session else []:
            if msg.get("content"):
                api_messages.append({"role": msg["role"], "content": msg["content"]})

        api_messages.append({"role": "user", "content": user_content})
        return api_messages

    async def complete(self, api_messages: list[dict]) -> str:
        ret = await self.client.chat.completions.create(model=self.model, messages=api_messages)
        message = ret.choices[0].message
        response_text = message.content if message and message.content else ""
        if response_text.startswith("\n\n"):
            response_text = response_text[2:]
        return response_text.strip()

    async def send_message(self, request: ModelRequest, prompt_prefix: str = "") -> ModelReply:
        """prompt_prefix 只拼接到本次发出的消息，不进入会话历史"""
        user = request.sender
        async with self.sessions.lock(user):
            self.ensure_session(user)
            try:
                user_content = self.build_user_content(request, prompt_prefix)
                if not user_content:
                    return self.error_reply("empty prompt")
                answer = await self.complete(self.build_messages(user, user_content))
            except (AuthenticationError, APIConnectionError, APIError) as e:
                self.LOG.error(f"{self.name} API 调用失败: {e}")
                return self.error_reply(e)
            except Exception as e:
                self.LOG.error(f"{self.name} 未知错误: {e}", exc_info=True)
                return self.error_reply(e)

            if not answer:
                return self.error_reply("empty response")

            # 历史中只保存文字，图片不随会话累积
            self.session_add_message(user, "user", request.prompt or "[image]")
            self.session_add_message(user, "assistant", answer)
            return ModelReply.text_reply(self.add_prefix_icon(answer))
