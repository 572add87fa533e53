"""测试共享 fixture — 隔离的目录布局 + 假执行器 + 包 / keg / 归档工厂

目录布局（全部位于 tmp_path 下）:

  prefix/      共享前缀（只有链接器会写）
  Cellar/      keg 目录 <name>/<version>
  repo/        Library/LinkedKegs、Library/Locks
  Formula/     包定义 <name>.yml
  cache/       下载缓存
  logs/        构建失败诊断文件
  tmp/         构建临时目录
"""

from __future__ import annotations

import shlex
import tarfile
from pathlib import Path
from typing import Any

import pytest
import yaml

from brewkit.core.config import Config
from brewkit.core.dep.registry import parse_package
from brewkit.core.keg import Keg
from brewkit.core.linker import KegLinker
from brewkit.core.models import Package
from brewkit.utils.shell import CommandResult


class FakeExecutor:
    """记录所有命令；按命令名（argv[0]）返回预设结果，默认成功"""

    def __init__(self, results: dict[str, CommandResult] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.results = results or {}

    def execute(
        self,
        cmd: str | list[str],
        *,
        cwd: str = ".",
        env: dict[str, str] | None = None,
        timeout: int | None = None,
        capture: bool = True,
    ) -> CommandResult:
        argv = shlex.split(cmd) if isinstance(cmd, str) else [str(a) for a in cmd]
        self.calls.append({"cmd": argv, "cwd": cwd, "env": env, "capture": capture})
        return self.results.get(argv[0], CommandResult(returncode=0))

    @property
    def commands(self) -> list[list[str]]:
        return [c["cmd"] for c in self.calls]


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    prefix = tmp_path / "prefix"
    prefix.mkdir()
    return Config(
        prefix=str(prefix),
        cellar=str(tmp_path / "Cellar"),
        repository=str(tmp_path / "repo"),
        cache_dir=str(tmp_path / "cache"),
        log_dir=str(tmp_path / "logs"),
        tmp_dir=str(tmp_path / "tmp"),
        formula_dir=str(tmp_path / "Formula"),
        platform_tag="x86_64_linux",
        non_interactive=True,
        jobs=2,
    )


@pytest.fixture()
def linker(config: Config, fake_executor: FakeExecutor) -> KegLinker:
    return KegLinker(
        config.prefix_path, config.cellar_path, config.linked_kegs_dir,
        executor=fake_executor,
    )


@pytest.fixture()
def make_keg(config: Config):
    """在 cellar 中创建 keg: make_keg("foo", "1.0", {"bin/foo": "..."})"""

    def _make(name: str, version: str, files: dict[str, str]) -> Keg:
        root = config.cellar_path / name / version
        root.mkdir(parents=True, exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return Keg(root, config.cellar_path)

    return _make


@pytest.fixture()
def make_package():
    """直接从定义映射构造 Package（不经过文件）"""

    def _make(name: str, version: str = "1.0", deps: list[Any] | None = None,
              **data: Any) -> Package:
        data.setdefault("url", f"https://example.com/{name}-{version}.tar.gz")
        data.setdefault("version", version)
        data.setdefault("build", [["true"]])
        if deps:
            data["dependencies"] = deps
        return parse_package(name, data)

    return _make


@pytest.fixture()
def write_formula(config: Config):
    """写包定义文件 <Formula>/<name>.yml"""

    def _write(name: str, data: dict[str, Any]) -> Path:
        path = config.formula_path / f"{name}.yml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def make_tarball(tmp_path: Path):
    """生成源码包 <dist>/<top>.tar.gz，内容位于单个顶层目录 <top>/ 下"""

    def _make(top: str, files: dict[str, str], *, dest: Path | None = None) -> Path:
        src = tmp_path / "src" / top
        for rel, content in files.items():
            path = src / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        src.mkdir(parents=True, exist_ok=True)
        out_dir = dest or tmp_path / "dist"
        out_dir.mkdir(parents=True, exist_ok=True)
        archive = out_dir / f"{top}.tar.gz"
        with tarfile.open(archive, "w:gz") as tf:
            tf.add(src, arcname=top)
        return archive

    return _make


@pytest.fixture()
def tree_snapshot():
    """目录树快照: (文件与链接集合, 目录集合)，路径相对 root"""

    def _snap(root: Path) -> tuple[set[str], set[str]]:
        files: set[str] = set()
        dirs: set[str] = set()
        for path in root.rglob("*"):
            rel = path.relative_to(root).as_posix()
            if path.is_dir() and not path.is_symlink():
                dirs.add(rel)
            else:
                files.add(rel)
        return files, dirs

    return _snap
