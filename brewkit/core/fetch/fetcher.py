"""产物拉取器

职责:
- 按主地址 -> 镜像的顺序拉取源码包或 bottle（只有 stable 规格才用镜像）
- 每换一个地址都重新构造下载策略
- 拉取成功后的完整性校验
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import NamedTuple

from brewkit.core.exceptions import DownloadError, FetchFailed, IntegrityMismatch, ValidationError
from brewkit.core.fetch.strategies import DownloadStrategy, build_strategy
from brewkit.core.models import (
    DEFAULT_CHECKSUM_TYPE,
    Checksum,
    DownloadSpec,
    IntegrityUnverified,
    Package,
    SpecKind,
)
from brewkit.utils.hashing import compute_checksum
from brewkit.utils.net import url_basename
from brewkit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

StrategyFactory = Callable[..., DownloadStrategy]


class FetchResult(NamedTuple):
    """拉取结果；mirror_index 为 None 表示主地址成功"""

    path: Path
    mirror_index: int | None
    strategy: DownloadStrategy


class ArtifactFetcher:
    """拉取 + 镜像回退 + 完整性校验"""

    def __init__(
        self,
        cache_dir: Path,
        *,
        executor: CommandExecutor | None = None,
        strategy_factory: StrategyFactory = build_strategy,
    ) -> None:
        self.cache_dir = cache_dir
        self.executor = executor
        self.strategy_factory = strategy_factory

    def fetch(
        self,
        spec: DownloadSpec,
        *,
        name: str,
        version: str,
        cache_dir: Path | None = None,
        filename: str = "",
    ) -> FetchResult:
        """拉取一个下载规格

        主地址失败时依次尝试镜像，每次使用新构造的策略；
        head / devel 规格不回退到镜像。

        Raises:
            FetchFailed: 所有可用地址都失败，cause 为主地址的原始错误
        """
        mirrors = list(spec.mirrors) if spec.kind is SpecKind.STABLE else []
        url = spec.url
        index: int | None = None
        attempts: list[str] = []
        first_error: DownloadError | None = None

        while True:
            attempts.append(url)
            strategy = self.strategy_factory(
                url,
                name=name,
                version=version,
                cache_dir=cache_dir or self.cache_dir,
                specs=spec.specs,
                filename=filename,
                executor=self.executor,
            )
            try:
                path = strategy.fetch()
            except DownloadError as e:
                first_error = first_error or e
                if not mirrors:
                    raise FetchFailed(spec.url, attempts, first_error) from first_error
                index = 0 if index is None else index + 1
                url = mirrors.pop(0)
                logger.warning("%s 下载失败，尝试镜像 %s", name, url)
                continue
            if index is not None:
                logger.info("%s 已从镜像 #%d 拉取: %s", name, index, url)
            return FetchResult(path, index, strategy)

    def fetch_package(self, package: Package) -> FetchResult:
        """拉取包当前规格的源码"""
        return self.fetch(package.active, name=package.name, version=package.version)

    def fetch_bottle(self, package: Package, bottles_dir: Path) -> FetchResult:
        """拉取 bottle 到 bottles 缓存目录，保留原文件名"""
        if package.bottle is None:
            raise ValidationError(f"{package.name} 没有声明 bottle")
        spec = DownloadSpec(url=package.bottle.url, checksum=package.bottle.checksum)
        return self.fetch(
            spec,
            name=package.name,
            version=package.version,
            cache_dir=bottles_dir,
            filename=url_basename(package.bottle.url),
        )

    @staticmethod
    def verify(path: Path, checksum: Checksum | None) -> IntegrityUnverified | None:
        """校验产物完整性

        未声明校验和时返回 IntegrityUnverified（附计算出的摘要）；
        不匹配时抛 IntegrityMismatch，产物留在原处。
        """
        if checksum is None:
            actual = compute_checksum(path, DEFAULT_CHECKSUM_TYPE)
            record = IntegrityUnverified(path=path, algorithm=DEFAULT_CHECKSUM_TYPE, actual=actual)
            logger.warning("%s", record.message)
            return record

        actual = compute_checksum(path, checksum.algorithm)
        if not checksum.matches(actual):
            raise IntegrityMismatch(checksum.algorithm, checksum.hexdigest, actual, path)
        logger.debug("%s 校验通过: %s", checksum.algorithm, path.name)
        return None
