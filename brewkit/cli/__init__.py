"""brewkit 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
业务异常（BrewError）统一转成一行错误提示并以状态 1 退出。
"""

from __future__ import annotations

import os
from typing import Any

import click

from brewkit import __version__
from brewkit.core.config import init_config
from brewkit.core.exceptions import BrewError
from brewkit.services.container import ServiceContainer, get_container, reset_container
from brewkit.utils.logger import setup_logging


class BrewGroup(click.Group):
    """把 BrewError 转成 click 的错误输出"""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except BrewError as e:
            raise click.ClickException(str(e)) from e


def _svc(**overrides: Any) -> ServiceContainer:
    """获取服务容器；带配置覆盖项时派生一个新容器"""
    container = get_container()
    inspector = overrides.pop("inspector", None)
    if not overrides and inspector is None:
        return container
    return ServiceContainer(
        container.config.with_overrides(**overrides),
        executor=container.executor,
        inspector=inspector,
    )


@click.group(cls=BrewGroup)
@click.version_option(version=__version__)
@click.option("--config", "config_path", default="", help="配置文件路径（默认 $BREWKIT_CONFIG）")
@click.option("-v", "--verbose", is_flag=True, help="输出调试日志，构建输出直接显示")
def main(config_path: str, verbose: bool) -> None:
    """brewkit - 源码 / 预编译包管理器"""
    setup_logging(
        level="DEBUG" if verbose else os.getenv("BREWKIT_LOG_LEVEL", "INFO"),
        json_output=os.getenv("BREWKIT_LOG_JSON", "") == "1",
    )
    config = init_config(config_path)
    if verbose:
        config = config.with_overrides(verbose=True)
    reset_container(ServiceContainer(config))


# 注册各领域子命令
from brewkit.cli.cmd_install import register as _reg_install  # noqa: E402
from brewkit.cli.cmd_keg import register as _reg_keg  # noqa: E402
from brewkit.cli.cmd_query import register as _reg_query  # noqa: E402

_reg_install(main)
_reg_keg(main)
_reg_query(main)
