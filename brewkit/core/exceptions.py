"""统一异常体系

所有业务异常继承 BrewError，CLI 层据此输出一行友好提示并以非零状态退出。
告警（校验和缺失、非致命依赖条件未满足）不是异常，见 models 中的 Warning 记录。
"""

from __future__ import annotations

from pathlib import Path


class BrewError(Exception):
    """brewkit 基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(BrewError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(BrewError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


# ---- 解析阶段 ----


class PackageUnavailable(BrewError):
    """包定义不存在或无法加载"""

    code = "PACKAGE_UNAVAILABLE"

    def __init__(self, name: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"包不可用: {name}{detail}")
        self.name = name
        self.reason = reason


class MissingDependency(BrewError):
    """依赖名无法解析为已知包"""

    code = "MISSING_DEPENDENCY"

    def __init__(self, dependency: str, requester: str) -> None:
        super().__init__(f"{requester} 依赖的 {dependency} 不存在")
        self.dependency = dependency
        self.requester = requester


class DependencyCycle(BrewError):
    """依赖图存在环"""

    code = "DEPENDENCY_CYCLE"

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"检测到循环依赖: {' -> '.join(cycle)}")
        self.cycle = cycle


# ---- 拉取阶段 ----


class DownloadError(BrewError):
    """单个下载策略的一次下载失败（可换镜像重试）"""

    code = "DOWNLOAD_ERROR"

    def __init__(self, url: str, reason: str = "") -> None:
        super().__init__(f"下载失败: {url}" + (f" - {reason}" if reason else ""))
        self.url = url


class FetchFailed(BrewError):
    """主地址与所有镜像均失败"""

    code = "FETCH_FAILED"

    def __init__(self, url: str, attempts: list[str], cause: BaseException) -> None:
        super().__init__(f"拉取失败 ({len(attempts)} 个地址均不可用): {cause}")
        self.url = url
        self.attempts = attempts
        self.cause = cause


class IntegrityMismatch(BrewError):
    """校验和不匹配；产物保留在原处供人工检查"""

    code = "INTEGRITY_MISMATCH"

    def __init__(self, algorithm: str, expected: str, actual: str, path: Path) -> None:
        super().__init__(
            f"{algorithm.upper()} 不匹配\n"
            f"期望: {expected}\n"
            f"实际: {actual}\n"
            f"文件: {path}\n"
            "(如是下载不完整，删除上面的文件后重试)"
        )
        self.algorithm = algorithm
        self.expected = expected
        self.actual = actual
        self.path = path


# ---- 构建阶段 ----


class StagingFailed(BrewError):
    """产物无法展开（损坏的归档、越界成员、补丁文件缺失等）"""

    code = "STAGING_FAILED"

    def __init__(self, path: Path | str, reason: str = "") -> None:
        super().__init__(f"无法展开 {path}" + (f": {reason}" if reason else ""))
        self.path = Path(path)
        self.reason = reason


class RequirementUnsatisfied(BrewError):
    """致命的外部条件未满足"""

    code = "REQUIREMENT_UNSATISFIED"

    def __init__(self, package: str, message: str) -> None:
        super().__init__(f"{package} 的外部依赖未满足: {message}")
        self.package = package
        self.message = message


class BuildStepFailed(BrewError):
    """构建子进程返回非零状态"""

    code = "BUILD_STEP_FAILED"

    def __init__(
        self, package: str, command: list[str], exit_status: int, output: str = "",
    ) -> None:
        super().__init__(
            f"{package} 构建失败 (rc={exit_status}): {' '.join(command)}",
        )
        self.package = package
        self.command = command
        self.exit_status = exit_status
        self.output = output


class EmptyInstallation(BrewError):
    """构建成功但没有向 keg 安装任何文件"""

    code = "EMPTY_INSTALLATION"


# ---- 链接阶段 ----


class AlreadyLinked(BrewError):
    """同名包的另一个版本已链接"""

    code = "ALREADY_LINKED"

    def __init__(self, name: str, linked_path: Path) -> None:
        super().__init__(
            f"无法链接 {name}: 另一个版本已链接: {linked_path}",
        )
        self.name = name
        self.linked_path = linked_path

    @property
    def linked_version(self) -> str:
        return self.linked_path.name


class NotAKeg(BrewError):
    """路径不在 cellar 的任何 keg 内"""

    code = "NOT_A_KEG"

    def __init__(self, path: Path) -> None:
        super().__init__(f"{path} 不在任何 keg 内")
        self.path = path


class LinkConflict(BrewError):
    """目标位置已被非本工具管理的文件占用"""

    code = "LINK_CONFLICT"

    def __init__(self, target: Path, source: Path) -> None:
        super().__init__(
            f"无法创建符号链接: {source}\n"
            f"目标 {target} 已存在，需要先手动删除。"
        )
        self.target = target
        self.source = source
