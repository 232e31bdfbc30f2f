# commands package
"""
消息处理组件包

- router: 前缀路由，把消息分派到对应的模型
- help: 内置命令的帮助文本
"""

from .help import build_help_text
from .router import NO_MATCH, PrefixRouter, Route, RouteKind

__all__ = ["NO_MATCH", "PrefixRouter", "Route", "RouteKind", "build_help_text"]
