# ai_providers/ai_dalle.py
#! /usr/bin/env python3
# -*- coding: utf-8 -*-

import httpx
from openai import APIConnectionError, APIError, AuthenticationError, AsyncOpenAI

from configuration import ProviderSettings
from .base import AIModel, ModelReply, ModelRequest


class DALLE(AIModel):
    """OpenAI 图片生成"""

    default_api = "https://api.openai.com/v1"
    default_model = "dall-e-3"

    def __init__(self, settings: ProviderSettings, client: AsyncOpenAI | None = None) -> None:
        super().__init__(settings)
        api = settings.api_base or self.default_api
        self.model = settings.model or self.default_model
        self.size = settings.option("size", "1024x1024")

        if client is not None:
            self.client = client
        elif settings.proxy:
            self.client = AsyncOpenAI(
                api_key=settings.api_key,
                base_url=api,
                http_client=httpx.AsyncClient(proxy=settings.proxy),
            )
        else:
            self.client = AsyncOpenAI(api_key=settings.api_key, base_url=api)

    async def send_message(self, request: ModelRequest) -> ModelReply:
        user = request.sender
        prompt = request.prompt.strip()
        async with self.sessions.lock(user):
            self.ensure_session(user)
            if not prompt:
                return self.error_reply("empty prompt")
            try:
                response = await self.client.images.generate(
                    model=self.model,
                    prompt=prompt,
                    n=1,
                    size=self.size,
                )
                image = response.data[0]
            except (AuthenticationError, APIConnectionError, APIError) as e:
                self.LOG.error(f"DALLE API 调用失败: {e}")
                return self.error_reply(e)
            except Exception as e:
                self.LOG.error(f"DALLE 未知错误: {e}", exc_info=True)
                return self.error_reply(e)

            if not image.url:
                return self.error_reply("no image returned")

            self.session_add_message(user, "user", prompt)
            caption = getattr(image, "revised_prompt", None) or prompt
            return ModelReply.image_reply(image.url, self.add_prefix_icon(caption))
