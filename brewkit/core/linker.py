"""Keg 链接器

把 keg 的目录树以符号链接的形式合并进共享前缀，并支持精确的反向撤销。

规则按顶层目录划分（etc / bin / sbin / include / share / lib），
每个条目被归为四种动作之一:
  link    在前缀中创建指向 keg 的符号链接（目录则整体链接，不再深入）
  skip    忽略（目录则不深入）
  mkpath  在前缀中建立真实目录，继续逐个链接其内容
  info    链接后向 info 目录登记（仅 keep_info 时）

多个包共享的目录（locale、man、各语言库目录）必须是真实目录。
前缀中的目录若已是指向另一个 keg 的符号链接，先把它展开成真实目录，
再把对方的内容逐个链回去，然后继续链接当前 keg。

链接和撤销都不是事务性的: 中途失败会留下部分链接。
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from brewkit.core.exceptions import AlreadyLinked, LinkConflict, NotAKeg
from brewkit.core.keg import Keg, LinkRecord
from brewkit.utils.shell import CommandExecutor, LocalExecutor

logger = logging.getLogger(__name__)

# 语言区域目录: language[_territory][.codeset][@modifier]
LOCALEDIR_RX = re.compile(r"(locale|man)/([a-z]{2}|C|POSIX)(_[A-Z]{2})?(\.[a-zA-Z\-0-9]+(@.+)?)?")
INFOFILE_RX = re.compile(r"info/[^.].*?\.info$")

LINKED_DIRS = ("etc", "bin", "sbin", "include", "share", "lib")

SHARE_MKPATHS = frozenset(
    ["aclocal", "doc", "info", "locale", "man"]
    + [f"man/man{i}" for i in range(1, 9)]
    + [f"man/cat{i}" for i in range(1, 9)]
)

# lib 下各语言的模块目录由多个包共享
LIB_MKPATH_RX = re.compile(
    r"^(pkgconfig$|gdk-pixbuf|ghc$|lua$|node$|ocaml|perl5|php$|python[23]\.\d+$|ruby$)",
)


class LinkAction(str, Enum):
    LINK = "link"
    SKIP = "skip"
    MKPATH = "mkpath"
    INFO = "info"


LinkPolicy = Callable[[str, bool], LinkAction]


def classify(top: str, rel: str, *, is_dir: bool, keep_info: bool = False) -> LinkAction:
    """按顶层目录规则给 keg 内的条目分类

    Args:
        top: 顶层目录名（etc / bin / ...）
        rel: 相对顶层目录的路径，posix 分隔符
        is_dir: 条目是否为目录
    """
    if top == "etc":
        return LinkAction.MKPATH
    if top in ("bin", "sbin"):
        return LinkAction.SKIP if is_dir else LinkAction.LINK
    if top == "share":
        if rel == "locale/locale.alias":
            return LinkAction.SKIP
        if INFOFILE_RX.search(rel):
            return LinkAction.INFO if keep_info else LinkAction.LINK
        if LOCALEDIR_RX.search(rel) or rel in SHARE_MKPATHS:
            return LinkAction.MKPATH
        return LinkAction.LINK
    if top == "lib":
        if rel == "charset.alias":
            return LinkAction.SKIP
        if LIB_MKPATH_RX.search(rel):
            return LinkAction.MKPATH
        return LinkAction.LINK
    return LinkAction.LINK


def _force_mkpath(rel: str, is_dir: bool) -> LinkAction:
    return LinkAction.MKPATH


@dataclass
class _LinkSession:
    dry_run: bool = False
    links: list[Path] = field(default_factory=list)
    dirs: list[Path] = field(default_factory=list)
    # 展开冲突时为其他 keg 重建的条目，不计入 count
    relinked: int = 0

    @property
    def count(self) -> int:
        return len(self.links) + len(self.dirs)


class KegLinker:
    """前缀中唯一允许修改目录树的组件"""

    def __init__(
        self,
        prefix: Path,
        cellar: Path,
        linked_kegs_dir: Path,
        *,
        keep_info: bool = False,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.prefix = prefix
        self.cellar = cellar
        self.linked_kegs_dir = linked_kegs_dir
        self.keep_info = keep_info
        self.executor = executor or LocalExecutor()

    # ---- 查询 ----

    def record(self, name: str) -> LinkRecord:
        return LinkRecord(self.linked_kegs_dir, name)

    def is_linked(self, keg: Keg) -> bool:
        return self.record(keg.name).points_to(keg)

    def linked_keg(self, name: str) -> Keg | None:
        """当前链接的 keg；没有或记录已失效时返回 None"""
        record = self.record(name)
        target = record.target()
        if target is None or record.dangling:
            return None
        try:
            return Keg(target, self.cellar)
        except NotAKeg:
            return None

    # ---- 链接 ----

    def link(self, keg: Keg, *, dry_run: bool = False) -> int:
        """把 keg 链接进前缀，返回创建的链接数加目录数

        dry_run 时只统计将要创建的条目，不修改前缀。

        Raises:
            AlreadyLinked: 该包已有链接记录
            LinkConflict: 目标位置被无法接管的文件占用
        """
        record = self.record(keg.name)
        target = record.target()
        if record.dangling:
            logger.warning("移除失效的链接记录: %s", record.path)
            if not dry_run:
                record.remove()
        elif target is not None:
            raise AlreadyLinked(keg.name, target)

        session = _LinkSession(dry_run=dry_run)
        for top in LINKED_DIRS:
            def policy(rel: str, is_dir: bool, top: str = top) -> LinkAction:
                return classify(top, rel, is_dir=is_dir, keep_info=self.keep_info)
            self._link_dir(keg.path, keg.path / top, policy, session)

        if dry_run:
            for path in session.links:
                logger.info("将链接: %s", path)
            return session.count

        record.create(keg)
        logger.info(
            "已链接 %s %s: %d 个符号链接, %d 个目录",
            keg.name, keg.version, len(session.links), len(session.dirs),
        )
        if session.relinked:
            logger.info("展开目录链接时为其他 keg 重建了 %d 个条目", session.relinked)
        return session.count

    def _link_dir(
        self, keg_root: Path, root: Path, policy: LinkPolicy, session: _LinkSession,
    ) -> None:
        """把 root（位于 keg_root 内）下的内容链接到前缀中的对应位置"""
        if not root.is_dir():
            return

        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)

            for fname in sorted(filenames):
                if fname == ".DS_Store":
                    continue
                src = current / fname
                if not src.is_file():
                    continue
                action = policy(src.relative_to(root).as_posix(), False)
                if action is LinkAction.SKIP:
                    continue
                dst = self.prefix / src.relative_to(keg_root)
                self._make_relative_symlink(dst, src, session)
                if action is LinkAction.INFO and not session.dry_run:
                    self._install_info(dst)

            descend: list[str] = []
            for dname in sorted(dirnames):
                src = current / dname
                dst = self.prefix / src.relative_to(keg_root)
                # 前缀中已是真实目录: 直接深入
                if dst.is_dir() and not dst.is_symlink():
                    descend.append(dname)
                    continue
                # .app 包不暴露到前缀
                if src.suffix == ".app":
                    continue

                action = policy(src.relative_to(root).as_posix(), True)
                if action is LinkAction.SKIP:
                    continue
                if action is LinkAction.MKPATH:
                    if not self._resolve_conflicts(dst, session):
                        self._mkpath(dst, src, session)
                    descend.append(dname)
                elif self._resolve_conflicts(dst, session):
                    descend.append(dname)
                else:
                    self._make_relative_symlink(dst, src, session)
            dirnames[:] = descend

    def _resolve_conflicts(self, dst: Path, session: _LinkSession) -> bool:
        """dst 是指向其他 keg 的目录链接时，展开为真实目录并链回对方内容

        dst 不指向任何 keg 时不处理，交给随后的创建步骤报 LinkConflict。
        """
        if not (dst.is_symlink() and dst.is_dir()):
            return False
        src = Path(os.path.realpath(dst))
        try:
            other = Keg.for_path(src, self.cellar)
        except NotAKeg:
            logger.info("不处理冲突: %s 不指向 cellar 中的 keg", dst)
            return False

        logger.debug("展开目录链接 %s (属于 %s %s)", dst, other.name, other.version)
        session.dirs.append(dst)
        if session.dry_run:
            return True
        dst.unlink()
        dst.mkdir()
        relink = _LinkSession()
        self._link_dir(other.path, src, _force_mkpath, relink)
        session.relinked += relink.count + relink.relinked
        return True

    def _mkpath(self, dst: Path, src: Path, session: _LinkSession) -> None:
        if dst.is_symlink() or dst.exists():
            raise LinkConflict(dst, src)
        if not session.dry_run:
            dst.mkdir(parents=True)
        session.dirs.append(dst)

    def _make_relative_symlink(self, dst: Path, src: Path, session: _LinkSession) -> None:
        if dst.is_symlink() or dst.exists():
            raise LinkConflict(dst, src)
        if not session.dry_run:
            dst.parent.mkdir(parents=True, exist_ok=True)
            os.symlink(os.path.relpath(src, dst.parent), dst)
        session.links.append(dst)

    # ---- 撤销 ----

    def unlink(self, keg: Keg) -> int:
        """删除前缀中所有指向该 keg 的符号链接，返回删除的链接数

        只深入前缀中的真实目录；目录链接整体删除后不再深入，
        否则经由链接看到的是 keg 自己的文件。
        删除后变空的目录自下而上清理（前缀根目录除外），
        最后删除指向该 keg 的链接记录。
        """
        removed = 0
        visited: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(keg.path):
            current = Path(dirpath)
            visited.append(self.prefix / current.relative_to(keg.path))

            for fname in filenames:
                if self._unlink_entry(self.prefix / (current / fname).relative_to(keg.path), keg):
                    removed += 1

            descend: list[str] = []
            for dname in dirnames:
                dst = self.prefix / (current / dname).relative_to(keg.path)
                if dst.is_symlink():
                    if self._unlink_entry(dst, keg):
                        removed += 1
                elif dst.is_dir():
                    descend.append(dname)
            dirnames[:] = descend

        for path in reversed(visited):
            self._rmdir_if_possible(path)

        record = self.record(keg.name)
        if record.points_to(keg) or record.dangling:
            record.remove()
        logger.info("已取消链接 %s %s: %d 个符号链接", keg.name, keg.version, removed)
        return removed

    def _unlink_entry(self, dst: Path, keg: Keg) -> bool:
        """dst 是指向 keg 内的符号链接时删除它"""
        if not dst.is_symlink() or not self._points_into(dst, keg):
            return False
        rel = dst.relative_to(self.prefix).as_posix()
        if self.keep_info and INFOFILE_RX.search(rel):
            self._uninstall_info(dst)
        dst.unlink()
        return True

    @staticmethod
    def _points_into(link: Path, keg: Keg) -> bool:
        # 只解析链接本身，keg 内的文件可以继续链接到 keg 外
        target = Path(os.path.normpath(link.parent / os.readlink(link)))
        target = Path(os.path.realpath(target.parent)) / target.name
        root = Path(os.path.realpath(keg.path))
        return target == root or root in target.parents

    def _rmdir_if_possible(self, path: Path) -> bool:
        """目录为空（或只剩 .DS_Store）时删除；从不删除前缀根目录"""
        if path == self.prefix or not path.is_dir() or path.is_symlink():
            return False
        # 经由目录链接到达的是 keg 自身的目录
        if self.cellar.resolve() in Path(os.path.realpath(path)).parents:
            return False
        entries = list(path.iterdir())
        if any(e.name != ".DS_Store" for e in entries):
            return False
        for e in entries:
            e.unlink()
        try:
            path.rmdir()
        except OSError:
            return False
        return True

    # ---- 删除 ----

    def uninstall(self, keg: Keg) -> None:
        """删除 keg 本身（不处理前缀中的链接，调用方先 unlink）"""
        keg.uninstall()

    # ---- info 登记 ----

    def _install_info(self, dst: Path) -> None:
        self._run_install_info(["--quiet", str(dst), str(dst.parent / "dir")])

    def _uninstall_info(self, dst: Path) -> None:
        self._run_install_info(["--delete", "--quiet", str(dst), str(dst.parent / "dir")])

    def _run_install_info(self, args: list[str]) -> None:
        result = self.executor.execute(["install-info", *args], capture=True)
        if result.returncode == 127:
            logger.debug("install-info 不可用，跳过 info 登记")
        elif not result.success:
            logger.warning("install-info 失败 (rc=%d): %s", result.returncode, result.output.strip())
