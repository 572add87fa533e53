"""核心数据模型

包定义（Package / Dependency / DownloadSpec ...）是纯数据，不做 I/O；
安装过程中的事件、告警与报告也集中在此定义。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from brewkit.core.exceptions import ValidationError

if TYPE_CHECKING:
    from brewkit.core.dep.requirements import Requirement

CHECKSUM_TYPES = ("md5", "sha1", "sha256")
# 包未声明校验和时用于提示的算法
DEFAULT_CHECKSUM_TYPE = "sha256"

_WHITESPACE_RE = re.compile(r"\s")


def _validate_token(field_name: str, value: str) -> None:
    if not value or _WHITESPACE_RE.search(value):
        raise ValidationError(f"无效的 {field_name}: {value!r}")


# =========================================================================
# 包定义
# =========================================================================


class SpecKind(str, Enum):
    """下载规格类别"""

    STABLE = "stable"
    DEVEL = "devel"
    HEAD = "head"


@dataclass(frozen=True)
class Checksum:
    algorithm: str
    hexdigest: str

    def __post_init__(self) -> None:
        if self.algorithm not in CHECKSUM_TYPES:
            raise ValidationError(f"不支持的校验算法: {self.algorithm}")
        if not self.hexdigest:
            raise ValidationError(f"{self.algorithm} 校验值为空")

    def matches(self, actual: str) -> bool:
        return self.hexdigest.lower() == actual.lower()


@dataclass(frozen=True)
class DownloadSpec:
    """一个下载规格: 主地址 + 有序镜像 + 策略参数"""

    url: str
    kind: SpecKind = SpecKind.STABLE
    mirrors: tuple[str, ...] = ()
    checksum: Checksum | None = None
    # 策略参数，如 {"using": "git", "tag": "v1.0"}
    specs: dict[str, str] = field(default_factory=dict, hash=False)

    @property
    def is_stable(self) -> bool:
        return self.kind is SpecKind.STABLE


class Dependency:
    """对另一个包的依赖；相等性只看包名，标签不影响身份"""

    KNOWN_TAGS = frozenset(("build", "optional", "recommended", "universal", "32bit"))

    def __init__(self, name: str, tags: list[str] | tuple[str, ...] | None = None) -> None:
        _validate_token("依赖名", name)
        self.name = name.lower()
        self.tags: tuple[str, ...] = tuple(str(t) for t in (tags or ()))

    @property
    def build(self) -> bool:
        return "build" in self.tags

    @property
    def optional(self) -> bool:
        return "optional" in self.tags

    @property
    def recommended(self) -> bool:
        return "recommended" in self.tags

    @property
    def options(self) -> list[str]:
        return [t for t in self.tags if t.startswith("--")]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Dependency):
            return self.name == other.name
        if isinstance(other, str):
            return self.name == other.lower()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.name)

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        tags = f", tags={list(self.tags)}" if self.tags else ""
        return f"Dependency({self.name!r}{tags})"


@dataclass(frozen=True)
class BottleSpec:
    """预编译产物引用"""

    url: str
    checksum: Checksum | None = None


@dataclass(frozen=True)
class PatchSpec:
    """单个补丁；来源为 url / path / data 三选一"""

    strip: int = 1
    url: str = ""
    path: str = ""
    data: str = ""
    compression: str = ""  # "", "gzip", "bzip2"

    @property
    def is_remote(self) -> bool:
        return bool(self.url)


@dataclass(frozen=True)
class BuildStep:
    """声明式构建步骤: argv，可含 {prefix} 等占位符"""

    argv: tuple[str, ...]

    def render(self, values: dict[str, str]) -> list[str]:
        return [arg.format_map(values) for arg in self.argv]


_MUTABLE_PACKAGE_FIELDS = frozenset(("buildpath",))


@dataclass(eq=False)
class Package:
    """一个可安装的包

    构造完成后只读，唯一例外是 buildpath: 仅在构建期间指向临时工作目录，
    构建结束后清空。
    """

    name: str
    version: str
    active: DownloadSpec
    homepage: str = ""
    stable: DownloadSpec | None = None
    devel: DownloadSpec | None = None
    head: DownloadSpec | None = None
    dependencies: tuple[Dependency, ...] = ()
    requirements: tuple[Requirement, ...] = ()
    bottle: BottleSpec | None = None
    patches: tuple[PatchSpec, ...] = ()
    build_steps: tuple[BuildStep, ...] = ()
    procedure: str = ""
    keg_only: str = ""
    caveats: str = ""
    path: Path | None = None
    buildpath: Path | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        _validate_token("包名", self.name)
        _validate_token("版本", self.version)
        self.name = self.name.lower()
        self._sealed = True

    def __setattr__(self, key: str, value: Any) -> None:
        if getattr(self, "_sealed", False) and key not in _MUTABLE_PACKAGE_FIELDS:
            raise AttributeError(f"Package 构造后不可修改: {key}")
        object.__setattr__(self, key, value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Package):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __str__(self) -> str:
        return self.name

    @property
    def checksum(self) -> Checksum | None:
        return self.active.checksum

    @property
    def mirrors(self) -> tuple[str, ...]:
        """只有 stable 规格才使用镜像"""
        return self.active.mirrors if self.active.is_stable else ()

    @property
    def is_head(self) -> bool:
        return self.active.kind is SpecKind.HEAD

    def rack(self, cellar: Path) -> Path:
        """跨版本目录 <cellar>/<name>"""
        return cellar / self.name

    def keg_path(self, cellar: Path) -> Path:
        return self.rack(cellar) / self.version


# =========================================================================
# 安装过程: 阶段 / 事件 / 告警 / 报告
# =========================================================================


class Phase(str, Enum):
    """单个包的安装阶段"""

    PENDING = "pending"
    FETCHING = "fetching"
    STAGED = "staged"
    PATCHING = "patching"
    BUILDING = "building"
    POURING = "pouring"
    INSTALLED = "installed"
    LINKED = "linked"
    FAILED = "failed"


@dataclass
class InstallEvent:
    """发布给外层汇报层的进度事件"""

    package: str
    phase: Phase
    detail: str = ""


@dataclass
class IntegrityUnverified:
    """产物没有声明校验和（告警，不中断流程）"""

    path: Path
    algorithm: str
    actual: str

    @property
    def message(self) -> str:
        return (
            f"无法校验 {self.path.name} 的完整性: 包未声明校验和，"
            f"参考 {self.algorithm}: {self.actual}"
        )


@dataclass
class RequirementWarning:
    """非致命外部条件未满足"""

    package: str
    detail: str

    @property
    def message(self) -> str:
        return f"{self.package}: {self.detail}"


@dataclass
class PackageFailure:
    """某个包在某阶段的失败"""

    name: str
    phase: Phase
    error: BaseException

    @property
    def message(self) -> str:
        inner: BaseException = self.error
        while inner.__cause__ is not None:
            inner = inner.__cause__
        return f"{self.name} [{self.phase.value}]: {inner}"


@dataclass
class InstallOutcome:
    """单个包安装成功的结果"""

    name: str
    version: str
    keg_path: Path
    poured: bool = False
    linked: bool = False
    link_count: int = 0
    warnings: list[Any] = field(default_factory=list)
    caveats: str = ""


@dataclass
class InstallReport:
    """一次安装调用的汇总"""

    installed: list[InstallOutcome] = field(default_factory=list)
    already_installed: list[str] = field(default_factory=list)
    failed: list[PackageFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[Any] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed and not self.skipped

    @property
    def exit_status(self) -> int:
        return 0 if self.success else 1

    @property
    def installed_names(self) -> list[str]:
        return [o.name for o in self.installed]
