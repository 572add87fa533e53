"""CLI — 安装 / 卸载 / 拉取"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import click

from brewkit.cli import _svc
from brewkit.core.models import InstallEvent, InstallReport, Package, Phase, SpecKind
from brewkit.utils.shell import LocalExecutor


def register(group: click.Group) -> None:
    group.add_command(install)
    group.add_command(uninstall)
    group.add_command(fetch)


def interactive_shell(package: Package, buildpath: Path, error: BaseException) -> None:
    """构建失败后在临时目录中启动 $SHELL，退出后安装中止"""
    click.echo(f"\n{package.name} 构建失败: {error}", err=True)
    click.echo("进入构建目录的交互 shell，退出 shell 后安装将中止。", err=True)
    click.echo(f"构建目录: {buildpath}", err=True)
    shell = os.environ.get("SHELL", "/bin/sh")
    env = {**os.environ, "BREWKIT_BUILDPATH": str(buildpath)}
    LocalExecutor().execute([shell], cwd=str(buildpath), env=env, capture=False)


def _spec_kind(head: bool, devel: bool) -> SpecKind | None:
    if head and devel:
        raise click.UsageError("--HEAD 与 --devel 不能同时使用")
    if head:
        return SpecKind.HEAD
    if devel:
        return SpecKind.DEVEL
    return None


def _echo_event(event: InstallEvent) -> None:
    if event.phase in (Phase.FETCHING, Phase.BUILDING, Phase.POURING, Phase.LINKED):
        click.echo(f"==> {event.package}: {event.phase.value}")


def _print_report(report: InstallReport) -> None:
    if report.installed:
        click.echo("已安装: " + ", ".join(
            f"{o.name} {o.version}" + (" (bottle)" if o.poured else "")
            for o in report.installed
        ))
    if report.already_installed:
        click.echo("已存在: " + ", ".join(report.already_installed))
    for outcome in report.installed:
        if outcome.caveats:
            click.echo(f"==> {outcome.name} 注意事项\n{outcome.caveats}")
    for warning in report.warnings:
        click.echo(f"警告: {warning.message}", err=True)
    for failure in report.failed:
        click.echo(f"失败: {failure.message}", err=True)
    if report.skipped:
        click.echo("已跳过（依赖失败）: " + ", ".join(report.skipped), err=True)


@click.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--HEAD", "head", is_flag=True, help="安装版本库最新代码")
@click.option("--devel", is_flag=True, help="安装开发版")
@click.option("-s", "--build-from-source", is_flag=True, help="不使用 bottle")
@click.option("--ignore-dependencies", is_flag=True, help="不安装依赖")
@click.option("-d", "--debug", "--non-interactive", "non_interactive", is_flag=True,
              help="构建失败时直接报错，不进入交互 shell")
@click.pass_context
def install(
    ctx: click.Context,
    names: tuple[str, ...],
    head: bool,
    devel: bool,
    build_from_source: bool,
    ignore_dependencies: bool,
    non_interactive: bool,
) -> None:
    """安装包及其依赖"""
    overrides: dict[str, Any] = {}
    if build_from_source:
        overrides["build_from_source"] = True
    if non_interactive:
        overrides["non_interactive"] = True
    else:
        overrides["inspector"] = interactive_shell
    svc = _svc(**overrides).install
    svc.subscribe(_echo_event)
    report = svc.install(
        list(names), spec=_spec_kind(head, devel), ignore_dependencies=ignore_dependencies,
    )
    _print_report(report)
    ctx.exit(report.exit_status)


@click.command()
@click.argument("names", nargs=-1, required=True)
def uninstall(names: tuple[str, ...]) -> None:
    """取消链接并删除包的所有已安装版本"""
    svc = _svc().install
    for name in names:
        for keg in svc.uninstall(name):
            click.echo(f"已删除 {keg.path}")


@click.command()
@click.argument("names", nargs=-1, required=True)
@click.option("--HEAD", "head", is_flag=True, help="拉取版本库最新代码")
@click.option("--devel", is_flag=True, help="拉取开发版")
@click.option("-s", "--build-from-source", is_flag=True, help="拉取源码而不是 bottle")
def fetch(names: tuple[str, ...], head: bool, devel: bool, build_from_source: bool) -> None:
    """只下载并校验产物"""
    svc = _svc().install
    for name in names:
        result, warning = svc.fetch(
            name, spec=_spec_kind(head, devel), force_source=build_from_source,
        )
        click.echo(f"{name}: {result.path}")
        if warning is not None:
            click.echo(f"警告: {warning.message}", err=True)
