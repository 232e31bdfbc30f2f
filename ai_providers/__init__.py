"""
AI Providers Module

这个包包含了与各种 AI 服务提供商的集成实现。
"""

from .ai_chatgpt import ChatGPT
from .ai_custom import CustomModel
from .ai_dalle import DALLE
from .ai_gemini import Gemini
from .ai_ollama import Ollama
from .ai_stability import StabilityAI
from .base import AIModel, ModelReply, ModelRequest, ReplyKind

__all__ = [
    "AIModel",
    "ModelReply",
    "ModelRequest",
    "ReplyKind",
    "ChatGPT",
    "CustomModel",
    "DALLE",
    "Gemini",
    "Ollama",
    "StabilityAI",
]
