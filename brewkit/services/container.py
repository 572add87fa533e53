"""服务容器 — 统一依赖注入

CLI 通过容器拿到 InstallService，各组件在同一容器内共享
（同一个 PackageRegistry 缓存、同一个执行器）。

依赖关系图（→ 表示依赖）:
  install      → registry, resolver, orchestrator, fetcher, bottles, linker, lock
  orchestrator → fetcher, linker, bottles, procedures
  resolver     → registry

用法:
    container = ServiceContainer(config=cfg, inspector=spawn_shell)
    report = container.install.install(["foo"])
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from brewkit.core.bottles import BottleSelector
    from brewkit.core.config import Config
    from brewkit.core.dep.registry import PackageRegistry
    from brewkit.core.dep.resolver import DependencyResolver
    from brewkit.core.fetch.fetcher import ArtifactFetcher
    from brewkit.core.linker import KegLinker
    from brewkit.core.lock import PrefixLock
    from brewkit.services.build.orchestrator import BuildOrchestrator, FailureInspector
    from brewkit.services.build.procedures import BuildProcedureRegistry
    from brewkit.services.install_service import InstallService
    from brewkit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class ServiceContainer:
    """懒加载服务容器

    接受可选 Config；不提供时使用全局 get_config()。
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        executor: CommandExecutor | None = None,
        inspector: FailureInspector | None = None,
    ) -> None:
        self._instances: dict[str, object] = {}
        if config is None:
            from brewkit.core.config import get_config
            config = get_config()
        self._config = config
        self._executor = executor
        self._inspector = inspector

    @property
    def config(self) -> Config:
        return self._config

    @property
    def executor(self) -> CommandExecutor:
        if self._executor is None:
            from brewkit.utils.shell import LocalExecutor
            self._executor = LocalExecutor()
        return self._executor

    # ---- 核心组件 ----

    @property
    def registry(self) -> PackageRegistry:
        if "registry" not in self._instances:
            from brewkit.core.dep.registry import PackageRegistry
            self._instances["registry"] = PackageRegistry(self._config.formula_path)
        return self._instances["registry"]  # type: ignore[return-value]

    @property
    def resolver(self) -> DependencyResolver:
        if "resolver" not in self._instances:
            from brewkit.core.dep.resolver import DependencyResolver
            self._instances["resolver"] = DependencyResolver(self.registry.load)
        return self._instances["resolver"]  # type: ignore[return-value]

    @property
    def fetcher(self) -> ArtifactFetcher:
        if "fetcher" not in self._instances:
            from brewkit.core.fetch.fetcher import ArtifactFetcher
            self._instances["fetcher"] = ArtifactFetcher(
                self._config.cache_path, executor=self.executor,
            )
        return self._instances["fetcher"]  # type: ignore[return-value]

    @property
    def bottles(self) -> BottleSelector:
        if "bottles" not in self._instances:
            from brewkit.core.bottles import BottleSelector
            self._instances["bottles"] = BottleSelector(
                self._config.effective_platform_tag,
                build_from_source=self._config.build_from_source,
                legacy_platform=self._config.legacy_bottle_platform,
            )
        return self._instances["bottles"]  # type: ignore[return-value]

    @property
    def linker(self) -> KegLinker:
        if "linker" not in self._instances:
            from brewkit.core.linker import KegLinker
            self._instances["linker"] = KegLinker(
                self._config.prefix_path,
                self._config.cellar_path,
                self._config.linked_kegs_dir,
                keep_info=self._config.keep_info,
                executor=self.executor,
            )
        return self._instances["linker"]  # type: ignore[return-value]

    @property
    def lock(self) -> PrefixLock:
        if "lock" not in self._instances:
            from brewkit.core.lock import PrefixLock
            self._instances["lock"] = PrefixLock(self._config.locks_dir)
        return self._instances["lock"]  # type: ignore[return-value]

    # ---- 服务层 ----

    @property
    def procedures(self) -> BuildProcedureRegistry:
        if "procedures" not in self._instances:
            from brewkit.services.build.procedures import default_registry, load_plugins
            registry = default_registry()
            load_plugins(self._config.plugins, registry)
            self._instances["procedures"] = registry
        return self._instances["procedures"]  # type: ignore[return-value]

    @property
    def orchestrator(self) -> BuildOrchestrator:
        if "orchestrator" not in self._instances:
            from brewkit.services.build.orchestrator import BuildOrchestrator
            self._instances["orchestrator"] = BuildOrchestrator(
                self._config,
                fetcher=self.fetcher,
                linker=self.linker,
                bottles=self.bottles,
                procedures=self.procedures,
                executor=self.executor,
                inspector=self._inspector,
            )
        return self._instances["orchestrator"]  # type: ignore[return-value]

    @property
    def install(self) -> InstallService:
        if "install" not in self._instances:
            from brewkit.services.install_service import InstallService
            self._instances["install"] = InstallService(
                self._config,
                registry=self.registry,
                resolver=self.resolver,
                orchestrator=self.orchestrator,
                fetcher=self.fetcher,
                bottles=self.bottles,
                linker=self.linker,
                lock=self.lock,
                executor=self.executor,
            )
        return self._instances["install"]  # type: ignore[return-value]


# 全局入口，仅供 CLI 使用
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    global _container  # noqa: PLW0603
    if _container is None:
        _container = ServiceContainer()
    return _container


def reset_container(container: ServiceContainer | None = None) -> None:
    """替换全局容器（CLI 按参数重建、测试隔离）"""
    global _container  # noqa: PLW0603
    _container = container
