#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import logging
import logging.config
import os
import shutil
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from constants import ChatType

logger = logging.getLogger("Config")

# YAML 段落名 -> 模型名
PROVIDER_SECTIONS = {
    "chatgpt": ChatType.CHATGPT.value,
    "gemini": ChatType.GEMINI.value,
    "ollama": ChatType.OLLAMA.value,
    "dalle": ChatType.DALLE.value,
    "stability": ChatType.STABILITY.value,
}

# 未在 YAML 中填写 key 时读取的环境变量
ENV_API_KEYS = {
    ChatType.CHATGPT.value: "OPENAI_API_KEY",
    ChatType.DALLE.value: "OPENAI_API_KEY",
    ChatType.GEMINI.value: "GEMINI_API_KEY",
    ChatType.STABILITY.value: "STABILITY_API_KEY",
}


class ProviderSettings(BaseModel):
    """单个模型的注册信息，启动时加载，之后不可变"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str
    prefix: str
    enabled: bool = Field(True, alias="enable")
    icon: str = ""
    api_key: str | None = Field(None, alias="key")
    api_base: str | None = Field(None, alias="api")
    model: str | None = None
    proxy: str | None = None
    prompt: str | None = None
    max_history_messages: int = 30

    @property
    def is_custom(self) -> bool:
        return False

    def option(self, name: str, default: Any = None) -> Any:
        """读取 YAML 中的额外参数"""
        return (self.model_extra or {}).get(name, default)


class CustomModelSettings(ProviderSettings):
    """带固定上下文的自定义模型"""

    base: str = ChatType.CHATGPT.value
    context: str = ""
    include_mode: Literal["system", "prompt"] = "system"

    @property
    def is_custom(self) -> bool:
        return True


class Config(object):
    def __init__(self, path: str | None = None) -> None:
        self.path = path
        self.reload()

    def _load_config(self) -> dict:
        if self.path:
            with open(self.path, "rb") as fp:
                return yaml.safe_load(fp) or {}

        pwd = os.path.dirname(os.path.abspath(__file__))
        try:
            with open(f"{pwd}/config.yaml", "rb") as fp:
                yconfig = yaml.safe_load(fp)
        except FileNotFoundError:
            shutil.copyfile(f"{pwd}/config.yaml.template", f"{pwd}/config.yaml")
            with open(f"{pwd}/config.yaml", "rb") as fp:
                yconfig = yaml.safe_load(fp)

        return yconfig or {}

    @staticmethod
    def _with_env_key(name: str, conf: dict) -> dict:
        conf = dict(conf)
        if not conf.get("key") and name in ENV_API_KEYS:
            env_key = os.environ.get(ENV_API_KEYS[name])
            if env_key:
                conf["key"] = env_key
        return conf

    def _load_providers(self, yconfig: dict) -> list[ProviderSettings]:
        # 按配置文件中出现的顺序注册，决定前缀重叠时的优先级
        providers = []
        for section, conf in yconfig.items():
            name = PROVIDER_SECTIONS.get(section)
            if name is None or not isinstance(conf, dict):
                continue
            conf = self._with_env_key(name, conf)
            conf.pop("name", None)
            conf.setdefault("prefix", f"!{section}")
            try:
                providers.append(ProviderSettings(name=name, **conf))
            except ValidationError as e:
                logger.error(f"{name} 配置无效，已跳过: {e}")
        return providers

    def _load_custom_models(self, entries: Any) -> list[CustomModelSettings]:
        models = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            conf = self._with_env_key(entry.get("base", ChatType.CHATGPT.value), entry)
            try:
                models.append(CustomModelSettings(**conf))
            except ValidationError as e:
                logger.error(f"自定义模型 {entry.get('name', '?')} 配置无效，已跳过: {e}")
        return models

    def reload(self) -> None:
        yconfig = self._load_config()
        if yconfig.get("logging"):
            logging.config.dictConfig(yconfig["logging"])

        bot = yconfig.get("bot", {}) or {}
        self.PREFIX_ENABLED = bool(bot.get("prefix_enabled", True))
        self.DEFAULT_MODEL = bot.get("default_model", ChatType.CHATGPT.value)
        self.PROCESSING_TEXT = bot.get("processing_text", "⏳ Processing...")
        self.DEBUG = bool(bot.get("debug", False))

        self_message = yconfig.get("self_message", {}) or {}
        self.SELF_MESSAGE_ENABLED = bool(self_message.get("enabled", True))
        self.SELF_SKIP_PREFIX = self_message.get("skip_prefix", "»")

        commands = yconfig.get("commands", {}) or {}
        self.HELP_COMMAND = commands.get("help", "!help")
        self.RESET_COMMAND = commands.get("reset", "!reset")

        self.WHATSAPP = yconfig.get("whatsapp", {}) or {}

        self.PROVIDERS = self._load_providers(yconfig)
        self.CUSTOM_MODELS = self._load_custom_models(yconfig.get("custom_models"))

    def get_provider(self, name: str) -> ProviderSettings | None:
        for settings in self.PROVIDERS:
            if settings.name == name:
                return settings
        return None

    @property
    def registrations(self) -> list[ProviderSettings]:
        """全部注册信息：内置模型在前，自定义模型在后"""
        return [*self.PROVIDERS, *self.CUSTOM_MODELS]
