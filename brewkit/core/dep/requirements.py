"""外部条件（非包依赖）

Requirement 描述构建前必须满足、但不由 brewkit 管理的条件，
例如某语言运行时里的模块、PATH 上的某个命令。
探测可能启动子进程，因此执行器由调用方注入。
"""

from __future__ import annotations

import logging
import shutil
from typing import Protocol, runtime_checkable

from brewkit.core.exceptions import ValidationError
from brewkit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


@runtime_checkable
class Requirement(Protocol):
    """外部条件协议"""

    fatal: bool

    def satisfied(self, executor: CommandExecutor) -> bool:
        ...

    @property
    def message(self) -> str:
        ...


# 语言 -> (探测命令模板, 安装命令)
_LANGUAGE_PROBES: dict[str, tuple[list[str], str]] = {
    "chicken": (["csi", "-e", "(use {module})"], "chicken-install"),
    "jruby": (["jruby", "-rubygems", "-e", "require '{module}'"], "jruby -S gem install"),
    "lua": (["luarocks", "show", "{module}"], "luarocks install"),
    "node": (["node", "-e", "require('{module}');"], "npm install"),
    "perl": (["perl", "-e", "use {module}"], "cpan -i"),
    "python": (["python3", "-c", "import {module}"], "pip install"),
    "rbx": (["rbx", "-rubygems", "-e", "require '{module}'"], "rbx gem install"),
    "ruby": (["ruby", "-rubygems", "-e", "require '{module}'"], "gem install"),
}

SUPPORTED_LANGUAGES = tuple(_LANGUAGE_PROBES)


class LanguageModuleRequirement:
    """某语言运行时中必须可导入的模块（致命）"""

    fatal = True

    def __init__(self, module: str, language: str, import_name: str = "") -> None:
        if language not in _LANGUAGE_PROBES:
            raise ValidationError(
                f"不支持的语言: {language}，可选: {', '.join(SUPPORTED_LANGUAGES)}",
            )
        self.module = module
        self.language = language
        # 安装名与导入名不同时（如 pip 的 PyYAML / yaml）
        self.import_name = import_name or module

    def probe_command(self) -> list[str]:
        template, _ = _LANGUAGE_PROBES[self.language]
        return [arg.replace("{module}", self.import_name) for arg in template]

    def install_command(self) -> str:
        _, installer = _LANGUAGE_PROBES[self.language]
        return f"{installer} {self.module}"

    def satisfied(self, executor: CommandExecutor) -> bool:
        result = executor.execute(self.probe_command(), capture=True)
        logger.debug(
            "探测 %s 模块 %s: rc=%d", self.language, self.import_name, result.returncode,
        )
        return result.success

    @property
    def message(self) -> str:
        return (
            f"缺少 {self.language} 模块 {self.module}，"
            f"可以用以下命令安装:\n    {self.install_command()}"
        )

    def __repr__(self) -> str:
        return f"LanguageModuleRequirement({self.module!r}, {self.language!r})"


class CommandRequirement:
    """PATH 上必须存在的命令；默认只告警"""

    def __init__(self, command: str, *, fatal: bool = False, hint: str = "") -> None:
        self.command = command
        self.fatal = fatal
        self.hint = hint

    def satisfied(self, executor: CommandExecutor) -> bool:
        return shutil.which(self.command) is not None

    @property
    def message(self) -> str:
        text = f"PATH 中找不到命令: {self.command}"
        return f"{text} ({self.hint})" if self.hint else text

    def __repr__(self) -> str:
        return f"CommandRequirement({self.command!r}, fatal={self.fatal})"
