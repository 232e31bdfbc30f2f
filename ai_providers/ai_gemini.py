# ai_providers/ai_gemini.py
#! /usr/bin/env python3
# -*- coding: utf-8 -*-

from .ai_chatgpt import ChatGPT


class Gemini(ChatGPT):
    """Google Gemini (兼容OpenAI SDK)，支持图片理解"""

    default_api = "https://generativelanguage.googleapis.com/v1beta/openai/"
    default_model = "gemini-2.0-flash"
    default_prompt = ""

    @staticmethod
    def check_vision(model: str) -> bool:
        return model.startswith("gemini")
