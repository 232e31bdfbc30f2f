# ai_providers/context_source.py
"""自定义模型的固定上下文：本地文件、远程 URL 或直接写在配置中的文本"""

import logging
from enum import Enum
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

URL_SCHEMES = ("http://", "https://")

TEXT_EXTENSIONS = {
    ".txt", ".md", ".markdown", ".json", ".csv", ".html", ".htm",
    ".yaml", ".yml", ".xml", ".rst",
}


class SourceKind(str, Enum):
    FILE = "file"
    URL = "url"
    INLINE = "inline"


class ContextSourceError(Exception):
    """上下文无法加载"""


def detect_source_kind(source: str) -> SourceKind:
    """根据前缀/扩展名判断上下文来源"""
    value = source.strip()
    if value.lower().startswith(URL_SCHEMES):
        return SourceKind.URL
    if "\n" not in value:
        if Path(value).suffix.lower() in TEXT_EXTENSIONS:
            return SourceKind.FILE
        try:
            if Path(value).is_file():
                return SourceKind.FILE
        except OSError:
            pass
    return SourceKind.INLINE


def read_file(path: str, base_dir: str | None = None) -> str:
    file_path = Path(path).expanduser()
    if base_dir and not file_path.is_absolute():
        file_path = Path(base_dir) / file_path
    try:
        return file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ContextSourceError(f"读取上下文文件失败 {file_path}: {e}") from e


def fetch_url(url: str, timeout: float = 30.0) -> str:
    try:
        resp = httpx.get(url, timeout=timeout, follow_redirects=True)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise ContextSourceError(f"下载上下文失败 {url}: {e}") from e
    return resp.text


def load_context(source: str, base_dir: str | None = None) -> str:
    """解析上下文来源并返回文本，启动时调用一次"""
    if not source or not source.strip():
        raise ContextSourceError("上下文为空")

    kind = detect_source_kind(source)
    if kind == SourceKind.URL:
        text = fetch_url(source.strip())
    elif kind == SourceKind.FILE:
        text = read_file(source.strip(), base_dir)
    else:
        text = source

    logger.info(f"已加载上下文 ({kind.value}, {len(text)} 字符)")
    return text.strip()
