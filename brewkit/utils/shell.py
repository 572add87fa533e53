"""子进程执行 — CommandExecutor 协议

构建步骤、打补丁、git 检出、依赖探测都通过执行器启动子进程，
测试时注入假执行器即可，无需 patch subprocess。
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """合并后的输出，用于失败时展示"""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


class CommandExecutor(Protocol):
    """命令执行器协议

    capture=True 时收集输出（stderr 并入 stdout，保持原始交错顺序），
    capture=False 时直接输出到终端。
    """

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        capture: bool = True,
    ) -> CommandResult:
        ...


class LocalExecutor:
    """本地子进程执行器（默认实现）"""

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        capture: bool = True,
    ) -> CommandResult:
        args = shlex.split(cmd) if isinstance(cmd, str) else [str(a) for a in cmd]
        logger.debug("exec: %s (cwd=%s)", shlex.join(args), cwd)
        try:
            if capture:
                r = subprocess.run(
                    args, cwd=cwd, env=env, timeout=timeout, check=False,
                    stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True,
                )
                return CommandResult(returncode=r.returncode, stdout=r.stdout or "")
            r = subprocess.run(args, cwd=cwd, env=env, timeout=timeout, check=False)
            return CommandResult(returncode=r.returncode)
        except FileNotFoundError as e:
            # 与 shell 的 "command not found" 保持一致
            return CommandResult(returncode=127, stderr=str(e))
