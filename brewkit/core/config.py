"""集中配置

前缀、cellar、缓存等路径只在进程启动时确定一次，
之后以不可变 Config 显式传给各组件。
"""

from __future__ import annotations

import dataclasses
import logging
import os
import platform
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from brewkit.core.exceptions import ConfigError
from brewkit.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

CONFIG_ENV = "BREWKIT_CONFIG"

_MACOS_CODENAMES = {
    "10.5": "leopard",
    "10.6": "snow_leopard",
    "10.7": "lion",
    "10.8": "mountain_lion",
    "10.9": "mavericks",
    "10.10": "yosemite",
    "10.11": "el_capitan",
    "10.12": "sierra",
    "10.13": "high_sierra",
    "10.14": "mojave",
    "10.15": "catalina",
    "11": "big_sur",
    "12": "monterey",
    "13": "ventura",
    "14": "sonoma",
    "15": "sequoia",
}


def current_platform_tag() -> str:
    """当前平台在 bottle 文件名中的短标识

    macOS 使用系统代号（如 lion），其余平台为 <machine>_<system>。
    """
    machine = platform.machine().lower() or "unknown"
    if platform.system() == "Darwin":
        release = platform.mac_ver()[0]
        parts = release.split(".")
        key = ".".join(parts[:2]) if parts[0] == "10" else parts[0]
        codename = _MACOS_CODENAMES.get(key)
        if codename:
            return f"arm64_{codename}" if machine == "arm64" else codename
    return f"{machine}_{platform.system().lower() or 'unknown'}"


@dataclass(frozen=True)
class Config:
    """全局配置（不可变）"""

    # 目录
    prefix: str = "/usr/local"
    cellar: str = ""            # 默认 <prefix>/Cellar
    repository: str = ""        # 默认 <prefix>
    cache_dir: str = "~/.cache/brewkit"
    log_dir: str = "~/.cache/brewkit/logs"
    tmp_dir: str = ""           # 默认系统临时目录
    formula_dir: str = ""       # 默认 <repository>/Library/Formula

    # bottle
    platform_tag: str = ""      # 默认自动探测
    legacy_bottle_platform: str = "lion"

    # 行为
    verbose: bool = False
    non_interactive: bool = False
    build_from_source: bool = False
    keep_info: bool = False
    jobs: int = 0               # 0 表示按 CPU 数
    plugins: tuple[str, ...] = ()

    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str | Path) -> Config:
        """从 YAML 文件加载配置，文件不存在则返回默认值"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"读取配置失败: {path} - {e}") from e
        if not data:
            return cls()
        known = {f.name for f in dataclasses.fields(cls)}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        if "plugins" in matched:
            matched["plugins"] = tuple(matched["plugins"] or ())
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            return cls(**matched, extra=extra)
        except TypeError as e:
            raise ConfigError(f"配置内容无效: {path} - {e}") from e

    def with_overrides(self, **changes: Any) -> Config:
        """派生一份修改后的配置（CLI 参数覆盖用）"""
        return dataclasses.replace(self, **changes)

    # ---- 派生路径 ----

    @property
    def prefix_path(self) -> Path:
        return Path(self.prefix).expanduser()

    @property
    def cellar_path(self) -> Path:
        if self.cellar:
            return Path(self.cellar).expanduser()
        return self.prefix_path / "Cellar"

    @property
    def repository_path(self) -> Path:
        if self.repository:
            return Path(self.repository).expanduser()
        return self.prefix_path

    @property
    def linked_kegs_dir(self) -> Path:
        return self.repository_path / "Library" / "LinkedKegs"

    @property
    def locks_dir(self) -> Path:
        return self.repository_path / "Library" / "Locks"

    @property
    def formula_path(self) -> Path:
        if self.formula_dir:
            return Path(self.formula_dir).expanduser()
        return self.repository_path / "Library" / "Formula"

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()

    @property
    def bottles_cache_path(self) -> Path:
        return self.cache_path / "Bottles"

    @property
    def logs_path(self) -> Path:
        return Path(self.log_dir).expanduser()

    @property
    def tmp_path(self) -> Path:
        return Path(self.tmp_dir).expanduser() if self.tmp_dir else Path(tempfile.gettempdir())

    @property
    def effective_platform_tag(self) -> str:
        return self.platform_tag or current_platform_tag()

    @property
    def effective_jobs(self) -> int:
        return self.jobs or os.cpu_count() or 1

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


# 全局入口，仅供 CLI 使用；核心组件一律通过构造参数拿到 Config
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则按环境变量加载）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = init_config()
    return _current


def init_config(path: str = "") -> Config:
    """初始化全局配置: 显式路径 > $BREWKIT_CONFIG > 默认值"""
    global _current  # noqa: PLW0603
    path = path or os.getenv(CONFIG_ENV, "")
    _current = Config.from_file(path) if path else Config()
    logger.debug("配置已加载: %s", path or "<默认>")
    return _current
