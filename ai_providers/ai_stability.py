# ai_providers/ai_stability.py
#! /usr/bin/env python3
# -*- coding: utf-8 -*-

import httpx

from configuration import ProviderSettings
from .base import AIModel, ModelReply, ModelRequest


class StabilityAI(AIModel):
    """Stability AI 图片生成（REST），结果以 data: URL 返回"""

    default_api = "https://api.stability.ai/v2beta/stable-image/generate/core"

    def __init__(self, settings: ProviderSettings, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(settings)
        self.api = settings.api_base or self.default_api
        self.output_format = settings.option("output_format", "png")
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(120, connect=10),
            proxy=settings.proxy or None,
        )

    async def generate(self, prompt: str) -> str:
        """返回 base64 编码的图片"""
        resp = await self.client.post(
            self.api,
            headers={
                "Authorization": f"Bearer {self.settings.api_key}",
                "Accept": "application/json",
            },
            # multipart/form-data
            files={"none": ""},
            data={"prompt": prompt, "output_format": self.output_format},
        )
        if resp.status_code != 200:
            try:
                detail = resp.json().get("errors") or resp.json().get("message")
            except ValueError:
                detail = resp.text[:200]
            raise RuntimeError(f"HTTP {resp.status_code}: {detail}")

        payload = resp.json()
        if payload.get("finish_reason") == "CONTENT_FILTERED":
            raise RuntimeError("content filtered")
        image = payload.get("image")
        if not image:
            raise RuntimeError("no image returned")
        return image

    async def send_message(self, request: ModelRequest) -> ModelReply:
        user = request.sender
        prompt = request.prompt.strip()
        async with self.sessions.lock(user):
            self.ensure_session(user)
            if not prompt:
                return self.error_reply("empty prompt")
            try:
                image = await self.generate(prompt)
            except httpx.HTTPError as e:
                self.LOG.error(f"StabilityAI 请求失败: {e}")
                return self.error_reply(e)
            except Exception as e:
                self.LOG.error(f"StabilityAI 调用失败: {e}", exc_info=True)
                return self.error_reply(e)

            self.session_add_message(user, "user", prompt)
            url = f"data:image/{self.output_format};base64,{image}"
            return ModelReply.image_reply(url, self.add_prefix_icon(prompt))
