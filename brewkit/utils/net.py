"""网络工具 — URL 协议校验"""

from __future__ import annotations

from urllib.parse import urlparse

from brewkit.core.exceptions import ValidationError

_ALLOWED_SCHEMES = frozenset(("http", "https", "ftp", "file"))


def validate_url_scheme(url: str, *, context: str = "") -> None:
    """只允许 http/https/ftp/file 下载，拒绝其他协议

    Raises:
        ValidationError: URL 协议不在白名单内
    """
    scheme = urlparse(url).scheme
    if scheme not in _ALLOWED_SCHEMES:
        label = f" ({context})" if context else ""
        raise ValidationError(
            f"不允许的 URL 协议 '{scheme}'{label}: {url}",
        )


def url_basename(url: str) -> str:
    """取 URL 路径的最后一段（忽略查询串）"""
    path = urlparse(url).path if "://" in url else url
    return path.rstrip("/").rsplit("/", 1)[-1]
