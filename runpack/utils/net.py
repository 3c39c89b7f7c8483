"""网络工具 - URL 安全校验 + 制品仓库 HTTP 传输

通过 CatalogTransport 协议抽象 HTTP 读取，测试时可注入内存实现，无需 patch urllib。
"""

from __future__ import annotations

import logging
import shutil
import urllib.error
import urllib.request
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, urlparse

from runpack.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_ALLOWED_SCHEMES = frozenset(("http", "https"))

# urlopen 默认超时（秒），制品仓库不可达时不至于无限挂起
DEFAULT_TIMEOUT = 60

# 网络读取可能抛出的异常集合（HTTPError 是 URLError 的子类）
NETWORK_ERRORS = (urllib.error.URLError, TimeoutError, OSError)


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """校验 URL 仅使用 http/https，防止 file:// 等非预期协议访问

    Raises:
        ValidationError: URL scheme 不在白名单内
    """
    parsed = urlparse(url)
    if parsed.scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{parsed.scheme}'{label}，"
            f"仅支持 http/https: {url}"
        )


def package_url(catalog_url: str, identifier: str, suffix: str) -> str:
    """拼接制品资源地址: <catalog>/package/<identifier><suffix>

    identifier 可包含 '/' 命名空间（如 ext/20100525/php-redis），保留原样。
    """
    return f"{catalog_url.rstrip('/')}/package/{quote(identifier, safe='/')}{suffix}"


class CatalogTransport(Protocol):
    """制品仓库传输协议"""

    def read_text(self, url: str) -> str:
        """读取小体积文本资源（校验和）"""
        ...

    def download(self, url: str, dest: Path) -> None:
        """将资源流式写入 dest，失败时抛出 NETWORK_ERRORS 之一"""
        ...


class HttpTransport:
    """基于 urllib 的默认传输实现"""

    def __init__(self, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def read_text(self, url: str) -> str:
        validate_url_scheme(url, context="checksum")
        with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
            return resp.read().decode("utf-8", errors="replace")

    def download(self, url: str, dest: Path) -> None:
        validate_url_scheme(url, context="artifact download")
        logger.debug("下载: %s -> %s", url, dest)
        with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
            with open(dest, "wb") as f:
                shutil.copyfileobj(resp, f)
