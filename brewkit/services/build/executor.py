"""构建步骤执行

BuildContext 是构建期间提供给步骤和自定义构建过程的唯一接口:
路径、环境变量和 system() 子进程调用都从这里取。
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from brewkit.core.exceptions import BuildStepFailed
from brewkit.core.models import BuildStep, Package
from brewkit.utils.shell import CommandExecutor, CommandResult

logger = logging.getLogger(__name__)


@dataclass
class BuildContext:
    """一次构建的上下文"""

    package: Package
    buildpath: Path
    keg_path: Path
    brew_prefix: Path
    cellar: Path
    executor: CommandExecutor
    jobs: int = 1
    verbose: bool = False
    env: dict[str, str] = field(default_factory=dict)

    # ---- keg 内的标准目录 ----

    @property
    def bin(self) -> Path:
        return self.keg_path / "bin"

    @property
    def lib(self) -> Path:
        return self.keg_path / "lib"

    @property
    def include(self) -> Path:
        return self.keg_path / "include"

    @property
    def share(self) -> Path:
        return self.keg_path / "share"

    @property
    def man(self) -> Path:
        return self.share / "man"

    @property
    def etc(self) -> Path:
        return self.keg_path / "etc"

    @property
    def var(self) -> Path:
        return self.keg_path / "var"

    def placeholders(self) -> dict[str, str]:
        """构建步骤中可用的 {占位符}"""
        return {
            "prefix": str(self.keg_path),
            "bin": str(self.bin),
            "lib": str(self.lib),
            "include": str(self.include),
            "share": str(self.share),
            "man": str(self.man),
            "etc": str(self.etc),
            "var": str(self.var),
            "brew_prefix": str(self.brew_prefix),
            "name": self.package.name,
            "version": self.package.version,
            "jobs": str(self.jobs),
        }

    def environment(self) -> dict[str, str]:
        return {
            **os.environ,
            "PREFIX": str(self.keg_path),
            "BREWKIT_PREFIX": str(self.brew_prefix),
            "BREWKIT_CELLAR": str(self.cellar),
            "MAKEFLAGS": f"-j{self.jobs}",
            **self.env,
        }

    def system(self, *args: str | Path, cwd: Path | None = None) -> CommandResult:
        """运行一个构建命令；非零退出抛 BuildStepFailed

        非 verbose 模式下收集输出，失败时随异常一并给出。
        """
        cmd = [str(a) for a in args]
        logger.info("%s", shlex.join(cmd))
        result = self.executor.execute(
            cmd,
            cwd=str(cwd or self.buildpath),
            env=self.environment(),
            capture=not self.verbose,
        )
        if not result.success:
            raise BuildStepFailed(self.package.name, cmd, result.returncode, result.output)
        return result


def run_steps(ctx: BuildContext, steps: tuple[BuildStep, ...] | list[BuildStep]) -> None:
    """按顺序执行声明式构建步骤"""
    values = ctx.placeholders()
    for step in steps:
        ctx.system(*step.render(values))
