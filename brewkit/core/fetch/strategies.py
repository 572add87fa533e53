"""下载策略

- CurlDownloadStrategy: 普通文件（http/https/ftp/file），按 URL 缓存
- GitDownloadStrategy: git 检出，缓存克隆目录

策略只负责"把产物拉到本地"和"把产物展开到指定目录"，
镜像回退与完整性校验由 ArtifactFetcher 负责。
"""

from __future__ import annotations

import logging
import re
import shutil
import tarfile
import urllib.error
import urllib.request
import zipfile
from pathlib import Path
from typing import Protocol

from brewkit.core.exceptions import DownloadError, StagingFailed, ValidationError
from brewkit.core.version import strip_archive_ext
from brewkit.utils.net import url_basename, validate_url_scheme
from brewkit.utils.shell import CommandExecutor, LocalExecutor

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 300
_SAFE_REF_RE = re.compile(r"^[a-zA-Z0-9_./@\-]+$")
_GIT_URL_RE = re.compile(r"^(git://|git\+|https?://.+\.git/?$|ssh://.+\.git/?$)")


class DownloadStrategy(Protocol):
    """下载策略协议"""

    url: str

    @property
    def verifiable(self) -> bool:
        """产物是单个文件，可以计算校验和"""
        ...

    def fetch(self) -> Path:
        """拉取产物，返回本地路径

        Raises:
            DownloadError: 本次下载失败（可换镜像重试）
        """
        ...

    def stage(self, dest: Path) -> Path:
        """把已拉取的产物展开到 dest，返回源码根目录"""
        ...


# =========================================================================
# 普通文件
# =========================================================================


class CurlDownloadStrategy:
    """普通文件下载，同一 URL 与版本只下载一次"""

    verifiable = True

    def __init__(
        self,
        url: str,
        *,
        name: str,
        version: str,
        cache_dir: Path,
        filename: str = "",
    ) -> None:
        self.url = url
        self.name = name
        self.version = version
        self.cache_dir = cache_dir
        self.cached_location = cache_dir / (filename or self._default_filename())

    def _default_filename(self) -> str:
        basename = url_basename(self.url)
        ext = basename[len(strip_archive_ext(basename)):]
        return f"{self.name}-{self.version}{ext}"

    def fetch(self) -> Path:
        if self.cached_location.exists():
            logger.info("已缓存: %s", self.cached_location)
            return self.cached_location

        validate_url_scheme(self.url, context=f"download {self.name}")
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = self.cached_location.with_name(self.cached_location.name + ".incomplete")
        logger.info("下载: %s", self.url)
        try:
            with urllib.request.urlopen(self.url, timeout=DOWNLOAD_TIMEOUT) as resp:  # nosec B310
                with open(partial, "wb") as f:
                    shutil.copyfileobj(resp, f)
        except (urllib.error.URLError, OSError) as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(self.url, str(e)) from e
        partial.replace(self.cached_location)
        logger.debug("已保存: %s", self.cached_location)
        return self.cached_location

    def stage(self, dest: Path) -> Path:
        archive = self.cached_location
        dest.mkdir(parents=True, exist_ok=True)
        try:
            if zipfile.is_zipfile(archive):
                with zipfile.ZipFile(archive) as zf:
                    zf.extractall(dest)  # noqa: S202
            elif tarfile.is_tarfile(archive):
                with tarfile.open(archive) as tf:
                    tf.extractall(path=str(dest), filter="data")  # noqa: S202
            else:
                # 非归档文件（单个脚本、补丁等）原样放入
                shutil.copy2(archive, dest / url_basename(self.url))
        except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError) as e:
            raise StagingFailed(archive, str(e)) from e
        return source_root(dest)


def source_root(staged: Path) -> Path:
    """归档只含一个顶层目录时进入该目录"""
    entries = [p for p in staged.iterdir() if p.name != ".DS_Store"]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return staged


# =========================================================================
# git
# =========================================================================


class GitDownloadStrategy:
    """git 检出；克隆目录缓存在 <cache>/<name>--git，重复安装只做 fetch"""

    verifiable = False

    def __init__(
        self,
        url: str,
        *,
        name: str,
        version: str,
        cache_dir: Path,
        specs: dict[str, str] | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.url = url.removeprefix("git+")
        self.name = name
        self.version = version
        self.cache_dir = cache_dir
        self.cached_location = cache_dir / f"{name}--git"
        self.executor = executor or LocalExecutor()
        specs = specs or {}
        self.branch = specs.get("branch", "")
        self.ref = specs.get("tag") or specs.get("revision") or self.branch
        if self.ref and not _SAFE_REF_RE.match(self.ref):
            raise ValidationError(f"ref 包含非法字符: {self.ref}")

    def _git(self, *args: str, cwd: Path | None = None) -> None:
        result = self.executor.execute(
            ["git", *args], cwd=str(cwd or self.cache_dir), capture=True,
        )
        if not result.success:
            raise DownloadError(
                self.url, f"git {args[0]} 失败 (rc={result.returncode}): {result.output[:300]}",
            )

    def fetch(self) -> Path:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        clone = self.cached_location
        if (clone / ".git").exists():
            logger.info("更新 %s", clone)
            self._git("fetch", "--tags", "origin", cwd=clone)
        else:
            logger.info("克隆 %s", self.url)
            self._git("clone", "--no-checkout", self.url, str(clone))
        if self.ref and self.ref != self.branch:
            self._git("checkout", "-f", self.ref, cwd=clone)
        elif self.branch:
            self._git("checkout", "-f", "-B", self.branch, f"origin/{self.branch}", cwd=clone)
        else:
            self._git("reset", "--hard", "origin/HEAD", cwd=clone)
        return clone

    def stage(self, dest: Path) -> Path:
        dest.mkdir(parents=True, exist_ok=True)
        self._git("checkout-index", "-a", "-f", f"--prefix={dest}/", cwd=self.cached_location)
        return dest


# =========================================================================
# 选择
# =========================================================================


def detect_strategy_class(url: str, specs: dict[str, str] | None = None) -> type:
    """按 specs['using'] 或 URL 形态选择策略类"""
    using = (specs or {}).get("using", "")
    if using:
        classes = {"git": GitDownloadStrategy, "curl": CurlDownloadStrategy}
        if using not in classes:
            raise ValidationError(f"不支持的下载方式: {using}")
        return classes[using]
    if _GIT_URL_RE.match(url):
        return GitDownloadStrategy
    return CurlDownloadStrategy


def build_strategy(
    url: str,
    *,
    name: str,
    version: str,
    cache_dir: Path,
    specs: dict[str, str] | None = None,
    filename: str = "",
    executor: CommandExecutor | None = None,
) -> DownloadStrategy:
    """为一个 URL 构造新的策略实例（每次换镜像都重新构造）"""
    cls = detect_strategy_class(url, specs)
    if cls is GitDownloadStrategy:
        return GitDownloadStrategy(
            url, name=name, version=version, cache_dir=cache_dir,
            specs=specs, executor=executor,
        )
    return CurlDownloadStrategy(
        url, name=name, version=version, cache_dir=cache_dir, filename=filename,
    )
