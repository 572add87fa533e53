"""自定义构建过程注册表

包定义里的 procedure 字段按名称引用这里注册的可调用对象，
加载包定义本身不会执行任何代码。
插件模块提供 register(registry) 即可注册新的构建过程。
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable

from brewkit.core.exceptions import ValidationError
from brewkit.services.build.executor import BuildContext

logger = logging.getLogger(__name__)

BuildProcedure = Callable[[BuildContext], None]


class BuildProcedureRegistry:
    """名称 -> 构建过程"""

    def __init__(self) -> None:
        self._procedures: dict[str, BuildProcedure] = {}

    def register(self, name: str, procedure: BuildProcedure) -> None:
        if name in self._procedures:
            logger.warning("构建过程 '%s' 被覆盖", name)
        self._procedures[name] = procedure

    def get(self, name: str) -> BuildProcedure:
        procedure = self._procedures.get(name)
        if procedure is None:
            raise ValidationError(
                f"未知的构建过程: {name}，可用: {', '.join(sorted(self._procedures)) or '无'}",
            )
        return procedure

    def names(self) -> list[str]:
        return sorted(self._procedures)

    def __contains__(self, name: object) -> bool:
        return name in self._procedures


# ---- 内置构建过程 ----


def autotools(ctx: BuildContext) -> None:
    """./configure --prefix && make && make install"""
    ctx.system("./configure", "--disable-debug", "--disable-dependency-tracking",
               f"--prefix={ctx.keg_path}")
    ctx.system("make")
    ctx.system("make", "install")


def cmake(ctx: BuildContext) -> None:
    """cmake 源码外构建"""
    build_dir = ctx.buildpath / "brewkit-build"
    build_dir.mkdir(exist_ok=True)
    ctx.system("cmake", "..", f"-DCMAKE_INSTALL_PREFIX={ctx.keg_path}",
               "-DCMAKE_BUILD_TYPE=None", cwd=build_dir)
    ctx.system("make", cwd=build_dir)
    ctx.system("make", "install", cwd=build_dir)


def make(ctx: BuildContext) -> None:
    """make install PREFIX=<keg>"""
    ctx.system("make", "install", f"PREFIX={ctx.keg_path}")


def default_registry() -> BuildProcedureRegistry:
    registry = BuildProcedureRegistry()
    registry.register("autotools", autotools)
    registry.register("cmake", cmake)
    registry.register("make", make)
    return registry


def load_plugins(plugin_names: list[str] | tuple[str, ...], registry: BuildProcedureRegistry) -> None:
    """按模块名加载插件并注册构建过程"""
    for name in plugin_names:
        try:
            mod = importlib.import_module(name)
        except ImportError:
            logger.error("加载插件失败: %s", name)
            continue
        if hasattr(mod, "register"):
            mod.register(registry)
            logger.info("插件已加载: %s", name)
        else:
            logger.warning("插件 '%s' 没有 register() 函数，跳过。", name)
