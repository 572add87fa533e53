"""Bottle 选择

bottle 只是加速手段: 任何一项不满足都退回源码构建。
"""

from __future__ import annotations

import logging
import re

from brewkit.core.models import Package
from brewkit.core.version import parse_bottle_filename
from brewkit.utils.net import url_basename

logger = logging.getLogger(__name__)


class BottleSelector:
    """判断某个包能否使用预编译产物"""

    def __init__(
        self,
        platform_tag: str,
        *,
        build_from_source: bool = False,
        legacy_platform: str = "lion",
    ) -> None:
        self.platform_tag = platform_tag
        self.build_from_source = build_from_source
        self.legacy_platform = legacy_platform

    def native_regex(self) -> re.Pattern[str]:
        return re.compile(rf"\.{re.escape(self.platform_tag)}\.bottle\.tar\.gz$")

    @staticmethod
    def legacy_regex() -> re.Pattern[str]:
        return re.compile(r"-bottle\.tar\.gz$")

    def filename_eligible(self, filename: str) -> bool:
        """文件名符合当前平台命名；旧式命名只在指定的历史平台上认可"""
        if self.native_regex().search(filename):
            return True
        return (
            self.platform_tag == self.legacy_platform
            and self.legacy_regex().search(filename) is not None
        )

    def should_use_bottle(self, package: Package) -> bool:
        if self.build_from_source:
            return False
        if package.bottle is None:
            return False

        filename = url_basename(package.bottle.url)
        parsed = parse_bottle_filename(filename, package.name)
        if parsed is None or parsed.version != package.version:
            logger.debug(
                "%s: bottle 版本与包版本 %s 不一致，改为源码构建: %s",
                package.name, package.version, filename,
            )
            return False

        if not self.filename_eligible(filename):
            logger.debug("%s: bottle 不适用于平台 %s: %s", package.name, self.platform_tag, filename)
            return False
        return True
