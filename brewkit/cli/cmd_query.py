"""CLI — 查询命令"""

from __future__ import annotations

import click

from brewkit.cli import _svc


def register(group: click.Group) -> None:
    group.add_command(deps)
    group.add_command(list_installed)
    group.add_command(info)


@click.command()
@click.argument("name")
@click.option("--tree", is_flag=True, help="按树形输出直接依赖")
def deps(name: str, tree: bool) -> None:
    """按安装顺序列出全部依赖"""
    container = _svc()
    if not tree:
        for pkg in container.install.deps(name):
            click.echo(pkg.name)
        return

    resolver = container.resolver

    def walk(pkg_name: str, depth: int) -> None:
        pkg = container.registry.load(pkg_name)
        for dep in resolver.direct(pkg):
            click.echo(f"{'  ' * depth}{dep.name}")
            walk(dep.name, depth + 1)

    root = container.registry.load(name)
    resolver.expand(root)  # 先做环检测
    click.echo(root.name)
    walk(root.name, 1)


@click.command(name="list")
@click.option("--versions", is_flag=True, help="同时显示版本")
def list_installed(versions: bool) -> None:
    """列出已安装的包"""
    kegs = _svc().install.list_installed()
    if not kegs:
        click.echo("没有已安装的包。")
        return
    if not versions:
        for name in sorted({k.name for k in kegs}):
            click.echo(name)
        return
    by_name: dict[str, list[str]] = {}
    for keg in kegs:
        by_name.setdefault(keg.name, []).append(keg.version)
    for name, vers in sorted(by_name.items()):
        click.echo(f"{name} {' '.join(vers)}")


@click.command()
@click.argument("name")
def info(name: str) -> None:
    """显示包定义与安装状态"""
    data = _svc().install.info(name)
    click.echo(f"{data['name']} {data['version']}")
    if data["homepage"]:
        click.echo(data["homepage"])
    click.echo(f"源码: {data['url']}")
    if data["bottle"]:
        click.echo("bottle: 可用")
    if data["keg_only"]:
        click.echo(f"keg-only: {data['keg_only']}")
    if data["dependencies"]:
        click.echo("依赖: " + ", ".join(data["dependencies"]))
    if data["requirements"]:
        click.echo("外部条件: " + ", ".join(data["requirements"]))
    if data["installed"]:
        for path in data["installed"]:
            mark = " *" if data["linked"] and path.endswith("/" + data["linked"]) else ""
            click.echo(f"{path}{mark}")
    else:
        click.echo("未安装")
    if data["caveats"]:
        click.echo(f"==> 注意事项\n{data['caveats']}")
