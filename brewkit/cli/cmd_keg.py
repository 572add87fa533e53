"""CLI — 链接 / 取消链接"""

from __future__ import annotations

import click

from brewkit.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(link)
    group.add_command(unlink)


@click.command(name="link")
@click.argument("names", nargs=-1, required=True)
@click.option("-n", "--dry-run", is_flag=True, help="只列出将要创建的链接")
def link(names: tuple[str, ...], dry_run: bool) -> None:
    """把已安装的 keg 链接到前缀"""
    svc = _svc().install
    for name in names:
        keg, count = svc.link(name, dry_run=dry_run)
        verb = "将创建" if dry_run else "已创建"
        click.echo(f"链接 {keg.path}... {verb} {count} 个链接")


@click.command(name="unlink")
@click.argument("names", nargs=-1, required=True)
def unlink(names: tuple[str, ...]) -> None:
    """删除前缀中指向该包的符号链接"""
    svc = _svc().install
    for name in names:
        count = svc.unlink(name)
        click.echo(f"取消链接 {name}... 删除了 {count} 个链接")
