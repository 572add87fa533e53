"""Keg 与链接记录

keg: <cellar>/<name>/<version>，某个包某个版本的安装目录。
链接记录: <repository>/Library/LinkedKegs/<name> -> keg 的符号链接，
是"当前链接的是哪个版本"的唯一依据。
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Any

from brewkit.core.exceptions import NotAKeg
from brewkit.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

RECEIPT_FILE = "INSTALL_RECEIPT.yml"
_METADATA_FILES = frozenset((RECEIPT_FILE, ".DS_Store"))


class Keg:
    """一个已安装的 (包, 版本) 目录"""

    def __init__(self, path: Path, cellar: Path) -> None:
        path = Path(path)
        if not path.is_dir():
            raise NotAKeg(path)
        if path.resolve().parent.parent != cellar.resolve():
            raise NotAKeg(path)
        self.path = path.resolve()
        self.cellar = cellar

    @classmethod
    def for_path(cls, path: Path, cellar: Path) -> Keg:
        """从 keg 内任意路径向上找到所属 keg

        Raises:
            NotAKeg: 路径不在 cellar 的任何 keg 内
        """
        cellar_real = cellar.resolve()
        current = Path(os.path.realpath(path))
        while current != current.parent:
            if current.parent.parent == cellar_real:
                return cls(current, cellar)
            current = current.parent
        raise NotAKeg(Path(path))

    @classmethod
    def installed(cls, cellar: Path, name: str) -> list[Keg]:
        """某个包在 cellar 中的全部 keg，按目录名排序"""
        rack = cellar / name.lower()
        if not rack.is_dir():
            return []
        return [
            cls(p, cellar) for p in sorted(rack.iterdir())
            if p.is_dir() and not p.is_symlink() and not p.name.startswith(".")
        ]

    @property
    def name(self) -> str:
        return self.path.parent.name

    @property
    def version(self) -> str:
        return self.path.name

    @property
    def rack(self) -> Path:
        return self.path.parent

    def is_empty(self) -> bool:
        """除元数据文件外没有任何内容"""
        return not any(p.name not in _METADATA_FILES for p in self.path.iterdir())

    # ---- 安装回执 ----

    @property
    def receipt_path(self) -> Path:
        return self.path / RECEIPT_FILE

    def write_receipt(self, data: dict[str, Any]) -> None:
        save_yaml(self.receipt_path, data)

    def read_receipt(self) -> dict[str, Any]:
        return load_yaml(self.receipt_path)

    # ---- 删除 ----

    def uninstall(self) -> None:
        """强制可写后递归删除 keg，rack 变空时一并删除"""
        logger.info("删除 %s", self.path)
        make_writable(self.path)
        shutil.rmtree(self.path)
        try:
            self.rack.rmdir()
        except OSError:
            pass

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keg):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __fspath__(self) -> str:
        return str(self.path)

    def __repr__(self) -> str:
        return f"Keg({str(self.path)!r})"


def make_writable(root: Path) -> None:
    """递归 chmod 0777，跳过符号链接"""
    mode = stat.S_IRWXU | stat.S_IRWXG | stat.S_IRWXO
    os.chmod(root, mode)
    for dirpath, dirnames, filenames in os.walk(root):
        for entry in (*dirnames, *filenames):
            p = os.path.join(dirpath, entry)
            if not os.path.islink(p):
                os.chmod(p, mode)


class LinkRecord:
    """LinkedKegs 目录下的一条链接记录"""

    def __init__(self, linked_kegs_dir: Path, name: str) -> None:
        self.path = linked_kegs_dir / name.lower()

    def exists(self) -> bool:
        return self.path.is_symlink()

    @property
    def dangling(self) -> bool:
        """记录存在但指向的 keg 已不在"""
        return self.path.is_symlink() and not self.path.is_dir()

    def target(self) -> Path | None:
        if not self.path.is_symlink():
            return None
        return Path(os.path.realpath(self.path))

    def points_to(self, keg: Keg) -> bool:
        return self.exists() and self.target() == keg.path

    def create(self, keg: Keg) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(os.path.relpath(keg.path, self.path.parent), self.path)

    def remove(self) -> None:
        self.path.unlink(missing_ok=True)
