"""版本号与产物命名约定

- 源码包: 从下载 URL 的文件名推断版本（foo-1.2.3.tar.gz、v1.2.zip ...）
- bottle: <name>-<version>.<platform-tag>.bottle.tar.gz
- 旧式 bottle: <name>-<version>-bottle.tar.gz（无平台标识）
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from brewkit.utils.net import url_basename

BOTTLE_SUFFIX = ".bottle.tar.gz"

_NATIVE_BOTTLE_RE = re.compile(r"^(?P<stem>.+)\.(?P<tag>[a-z0-9_]+)\.bottle\.tar\.gz$")
_LEGACY_BOTTLE_RE = re.compile(r"^(?P<stem>.+)-bottle\.tar\.gz$")

_ARCHIVE_EXTS = (
    ".tar.gz", ".tar.bz2", ".tar.xz", ".tar.lz", ".tar.Z",
    ".tgz", ".tbz", ".tbz2", ".txz", ".zip", ".tar", ".7z",
    ".gz", ".bz2", ".xz",
)

_STEM_PATTERNS = (
    # 纯版本号: 1.2.3 / v1.2
    re.compile(r"^v?(\d+(?:\.\d+)*[a-z0-9._+~-]*)$", re.IGNORECASE),
    # 带源码后缀: foo-1.2.3-src
    re.compile(r"[-_]v?(\d+(?:\.\d+)+)[-_.](?:src|source|sources|orig)$", re.IGNORECASE),
    # 常规: foo-1.2.3 / foo_1.2 / foo-1.0-rc1 / foo-1.0b2
    re.compile(r"[-_]v?(\d+(?:\.\d+)*(?:[-_.+~]?[a-z]+\d*)?)$", re.IGNORECASE),
)


def strip_archive_ext(filename: str) -> str:
    """去掉归档扩展名"""
    lowered = filename.lower()
    for ext in _ARCHIVE_EXTS:
        if lowered.endswith(ext.lower()):
            return filename[: -len(ext)]
    return filename


def version_from_stem(stem: str) -> str | None:
    for pattern in _STEM_PATTERNS:
        m = pattern.search(stem)
        if m:
            return m.group(1)
    return None


def version_from_url(url: str) -> str | None:
    """从下载地址推断版本号，无法推断时返回 None"""
    filename = url_basename(url)
    parsed = parse_bottle_filename(filename)
    if parsed is not None:
        return parsed.version
    return version_from_stem(strip_archive_ext(filename))


@dataclass(frozen=True)
class BottleName:
    """bottle 文件名解析结果"""

    version: str | None
    platform_tag: str | None  # 旧式命名为 None

    @property
    def legacy(self) -> bool:
        return self.platform_tag is None


def parse_bottle_filename(filename: str, name: str | None = None) -> BottleName | None:
    """解析 bottle 文件名；不是 bottle 命名时返回 None

    已知包名时按 "<name>-" 前缀切出版本，包名本身可以含连字符。
    """
    m = _NATIVE_BOTTLE_RE.match(filename)
    tag: str | None = None
    if m:
        tag = m.group("tag")
    else:
        m = _LEGACY_BOTTLE_RE.match(filename)
        if not m:
            return None
    stem = m.group("stem")
    if name and stem.lower().startswith(name.lower() + "-"):
        version: str | None = stem[len(name) + 1:] or None
    else:
        version = version_from_stem(stem)
    return BottleName(version=version, platform_tag=tag)


def bottle_filename(name: str, version: str, platform_tag: str) -> str:
    """当前平台的 bottle 文件名"""
    return f"{name}-{version}.{platform_tag}{BOTTLE_SUFFIX}"
