"""前缀路由：根据消息开头的命令前缀选择模型"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from configuration import ProviderSettings

logger = logging.getLogger(__name__)


class RouteKind(str, Enum):
    MODEL = "model"          # 命中内置模型前缀
    CUSTOM = "custom"        # 命中自定义模型前缀
    DEFAULT = "default"      # 未启用前缀路由，交给默认模型
    NO_MATCH = "no_match"    # 没有可用模型，消息忽略


@dataclass(frozen=True)
class Route:
    kind: RouteKind
    provider: str | None = None
    prompt: str = ""

    @property
    def matched(self) -> bool:
        return self.kind != RouteKind.NO_MATCH


NO_MATCH = Route(RouteKind.NO_MATCH)


class PrefixRouter:
    """前缀路由器

    registrations 的顺序即优先级：多个已启用模型的前缀同时匹配时，
    配置中先出现的模型胜出。
    """

    def __init__(
        self,
        registrations: Sequence["ProviderSettings"],
        prefix_enabled: bool = True,
        default_model: str | None = None,
    ):
        self.registrations = list(registrations)
        self.prefix_enabled = prefix_enabled
        self.default_model = default_model

    def enabled_registrations(self) -> list["ProviderSettings"]:
        return [r for r in self.registrations if r.enabled]

    def match_prefix(self, text: str) -> Route:
        for registration in self.enabled_registrations():
            prefix = registration.prefix
            # 按原文长度切片后再比较，casefold 可能改变字符串长度
            if prefix and text[:len(prefix)].casefold() == prefix.casefold():
                kind = RouteKind.CUSTOM if registration.is_custom else RouteKind.MODEL
                return Route(kind, registration.name, text[len(prefix):].strip())
        return NO_MATCH

    def route(self, text: str) -> Route:
        """返回消息应交给的模型以及去掉前缀后的 prompt"""
        text = (text or "").strip()
        if not text:
            return NO_MATCH

        if self.prefix_enabled:
            return self.match_prefix(text)

        for registration in self.enabled_registrations():
            if registration.name == self.default_model:
                kind = RouteKind.CUSTOM if registration.is_custom else RouteKind.DEFAULT
                return Route(kind, registration.name, text)

        logger.warning(f"默认模型 {self.default_model} 不可用")
        return NO_MATCH
