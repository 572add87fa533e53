"""补丁处理

- 按 strip 级别升序分组，组内保持声明顺序
- 远程补丁在应用任何补丁之前一次性全部下载
- 支持 gzip / bzip2 压缩的远程补丁
- 内联补丁中的 BREWKIT_PREFIX 替换为实际前缀
"""

from __future__ import annotations

import bz2
import gzip
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from brewkit.core.exceptions import BuildStepFailed, StagingFailed
from brewkit.core.fetch.strategies import CurlDownloadStrategy
from brewkit.core.models import Package, PatchSpec
from brewkit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

PATCH_FILENAME = "{:03d}-brewkit.diff"

_DECOMPRESSORS = {"gzip": (gzip.open, ".gz"), "bzip2": (bz2.open, ".bz2")}


@dataclass
class PreparedPatch:
    """已落盘、待应用的补丁"""

    strip: int
    path: Path
    spec: PatchSpec


def ordered(patches: tuple[PatchSpec, ...] | list[PatchSpec]) -> list[PatchSpec]:
    """strip 级别升序，同级保持声明顺序"""
    return sorted(patches, key=lambda p: p.strip)


class PatchApplier:
    """准备并应用补丁"""

    def __init__(self, executor: CommandExecutor, brew_prefix: Path) -> None:
        self.executor = executor
        self.brew_prefix = brew_prefix

    def prepare(self, package: Package, workdir: Path) -> list[PreparedPatch]:
        """把所有补丁落盘到 workdir，远程补丁一次性下载完"""
        prepared: list[PreparedPatch] = []
        remote: list[tuple[PreparedPatch, str]] = []

        for n, spec in enumerate(ordered(package.patches), start=1):
            target = workdir / PATCH_FILENAME.format(n)
            item = PreparedPatch(strip=spec.strip, path=target, spec=spec)
            if spec.is_remote:
                remote.append((item, spec.url))
            elif spec.path:
                try:
                    shutil.copyfile(spec.path, target)
                except OSError as e:
                    raise StagingFailed(spec.path, f"补丁文件不可读: {e}") from e
            else:
                target.write_text(
                    spec.data.replace("BREWKIT_PREFIX", str(self.brew_prefix)),
                    encoding="utf-8",
                )
            prepared.append(item)

        if remote:
            logger.info("下载 %d 个补丁", len(remote))
            downloaded = [
                (item, self._download(package, item, url, workdir)) for item, url in remote
            ]
            for item, raw in downloaded:
                self._decompress(item, raw)
        return prepared

    def _download(self, package: Package, item: PreparedPatch, url: str, workdir: Path) -> Path:
        suffix = _DECOMPRESSORS[item.spec.compression][1] if item.spec.compression else ""
        strategy = CurlDownloadStrategy(
            url,
            name=package.name,
            version=package.version,
            cache_dir=workdir,
            filename=item.path.name + suffix,
        )
        return strategy.fetch()

    @staticmethod
    def _decompress(item: PreparedPatch, raw: Path) -> None:
        if not item.spec.compression:
            return
        opener, _ = _DECOMPRESSORS[item.spec.compression]
        try:
            with opener(raw, "rb") as src, open(item.path, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except (OSError, EOFError, ValueError) as e:
            raise StagingFailed(raw, f"无法解压 {item.spec.compression} 补丁: {e}") from e
        raw.unlink()

    def apply(self, package: Package, prepared: list[PreparedPatch], workdir: Path) -> None:
        """逐个执行 patch -f -p<n> -i <file>

        Raises:
            BuildStepFailed: patch 返回非零
        """
        if not prepared:
            return
        logger.info("应用 %d 个补丁", len(prepared))
        for item in prepared:
            cmd = ["patch", "-f", f"-p{item.strip}", "-i", str(item.path)]
            result = self.executor.execute(cmd, cwd=str(workdir), capture=True)
            if not result.success:
                raise BuildStepFailed(package.name, cmd, result.returncode, result.output)

    def apply_all(self, package: Package, workdir: Path) -> int:
        prepared = self.prepare(package, workdir)
        self.apply(package, prepared, workdir)
        return len(prepared)
