"""安装服务 — 解析 / 排序 / 安装 / 卸载 / 链接

对外的唯一入口: CLI 只和本服务打交道。
所有修改前缀和 cellar 的操作都在前缀锁内执行。

失败传播:
  - 某个包失败后，依赖它的包被跳过，互不相关的包继续安装
  - 告警（未校验的产物、非致命外部条件）汇总进报告，不中断流程
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from brewkit.core.bottles import BottleSelector
from brewkit.core.config import Config
from brewkit.core.dep.registry import PackageRegistry
from brewkit.core.dep.resolver import DependencyResolver
from brewkit.core.exceptions import BrewError, PackageUnavailable, RequirementUnsatisfied
from brewkit.core.fetch.fetcher import ArtifactFetcher, FetchResult
from brewkit.core.keg import Keg
from brewkit.core.linker import KegLinker
from brewkit.core.lock import PrefixLock
from brewkit.core.models import (
    InstallReport,
    IntegrityUnverified,
    Package,
    PackageFailure,
    Phase,
    RequirementWarning,
    SpecKind,
)
from brewkit.services.build.orchestrator import BuildOrchestrator, EventListener, PhaseTracker
from brewkit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)


class InstallService:
    """包安装生命周期管理"""

    def __init__(
        self,
        config: Config,
        *,
        registry: PackageRegistry,
        resolver: DependencyResolver,
        orchestrator: BuildOrchestrator,
        fetcher: ArtifactFetcher,
        bottles: BottleSelector,
        linker: KegLinker,
        lock: PrefixLock,
        executor: CommandExecutor,
    ) -> None:
        self.config = config
        self.registry = registry
        self.resolver = resolver
        self.orchestrator = orchestrator
        self.fetcher = fetcher
        self.bottles = bottles
        self.linker = linker
        self.lock = lock
        self.executor = executor
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        """订阅安装进度事件"""
        self._listeners.append(listener)

    # ---- 安装 ----

    def plan(self, names: list[str], *, spec: SpecKind | None = None,
             ignore_dependencies: bool = False) -> tuple[list[Package], list[PackageFailure]]:
        """把请求的包展开成安装顺序；解析失败的根包单独返回"""
        plan: list[Package] = []
        failures: list[PackageFailure] = []
        planned: set[str] = set()
        for name in names:
            try:
                root = self.registry.load(name, spec)
                order = [root] if ignore_dependencies else self.resolver.install_order(root)
            except BrewError as e:
                logger.error("无法解析 %s: %s", name, e)
                failures.append(PackageFailure(name, Phase.PENDING, e))
                continue
            for pkg in order:
                if pkg.name not in planned:
                    planned.add(pkg.name)
                    plan.append(pkg)
        return plan, failures

    def install(self, names: list[str], *, spec: SpecKind | None = None,
                ignore_dependencies: bool = False) -> InstallReport:
        """按依赖顺序安装，返回汇总报告"""
        report = InstallReport()
        plan, failures = self.plan(names, spec=spec, ignore_dependencies=ignore_dependencies)
        report.failed.extend(failures)
        if not plan:
            return report

        logger.info("安装顺序: %s", ", ".join(p.name for p in plan))
        broken: set[str] = set()
        with self.lock.hold():
            for pkg in plan:
                blockers = [] if ignore_dependencies else [
                    d.name for d in self.resolver.expand(pkg) if d.name in broken
                ]
                if blockers:
                    logger.warning("跳过 %s: 依赖 %s 安装失败", pkg.name, ", ".join(blockers))
                    report.skipped.append(pkg.name)
                    broken.add(pkg.name)
                    continue
                if self.is_installed(pkg):
                    logger.info("%s %s 已安装", pkg.name, pkg.version)
                    report.already_installed.append(pkg.name)
                    continue

                tracker = PhaseTracker(pkg.name, self._listeners)
                try:
                    report.warnings.extend(self.check_requirements(pkg))
                    outcome = self.orchestrator.install(pkg, tracker)
                except BrewError as e:
                    tracker.fail(e)
                    failure = PackageFailure(pkg.name, tracker.failed_phase or Phase.PENDING, e)
                    logger.error("安装失败 %s", failure.message)
                    report.failed.append(failure)
                    broken.add(pkg.name)
                    continue
                report.installed.append(outcome)
                report.warnings.extend(outcome.warnings)
        return report

    def is_installed(self, package: Package) -> bool:
        return package.keg_path(self.config.cellar_path).is_dir()

    def check_requirements(self, package: Package) -> list[RequirementWarning]:
        """检查外部条件；致命条件未满足时抛 RequirementUnsatisfied"""
        warnings: list[RequirementWarning] = []
        for req in package.requirements:
            if req.satisfied(self.executor):
                continue
            if req.fatal:
                raise RequirementUnsatisfied(package.name, req.message)
            warning = RequirementWarning(package.name, req.message)
            logger.warning("%s", warning.message)
            warnings.append(warning)
        return warnings

    # ---- 拉取 ----

    def fetch(self, name: str, *, spec: SpecKind | None = None,
              force_source: bool = False) -> tuple[FetchResult, IntegrityUnverified | None]:
        """只拉取并校验产物（bottle 可用时拉 bottle）"""
        pkg = self.registry.load(name, spec)
        if not force_source and pkg.bottle is not None and self.bottles.should_use_bottle(pkg):
            fetched = self.fetcher.fetch_bottle(pkg, self.config.bottles_cache_path)
            return fetched, self.fetcher.verify(fetched.path, pkg.bottle.checksum)
        fetched = self.fetcher.fetch_package(pkg)
        warning = self.fetcher.verify(fetched.path, pkg.checksum) if fetched.strategy.verifiable else None
        return fetched, warning

    # ---- 卸载 / 链接 ----

    def uninstall(self, name: str) -> list[Keg]:
        """取消链接并删除该包的全部已安装版本"""
        kegs = self.installed_kegs(name)
        with self.lock.hold():
            for keg in kegs:
                self.linker.unlink(keg)
                self.linker.uninstall(keg)
        return kegs

    def link(self, name: str, *, dry_run: bool = False) -> tuple[Keg, int]:
        keg = self._pick_keg(name)
        with self.lock.hold():
            return keg, self.linker.link(keg, dry_run=dry_run)

    def unlink(self, name: str) -> int:
        kegs = self.installed_kegs(name)
        linked = self.linker.linked_keg(name)
        targets = [linked] if linked is not None else kegs
        with self.lock.hold():
            return sum(self.linker.unlink(keg) for keg in targets)

    def installed_kegs(self, name: str) -> list[Keg]:
        """Raises: PackageUnavailable 未安装"""
        canonical = self.registry.canonical_name(name)
        kegs = Keg.installed(self.config.cellar_path, canonical)
        if not kegs:
            raise PackageUnavailable(name, "未安装")
        return kegs

    def _pick_keg(self, name: str) -> Keg:
        """多个版本时优先取包定义当前版本，否则取最后一个"""
        kegs = self.installed_kegs(name)
        try:
            wanted = self.registry.load(name).version
        except PackageUnavailable:
            wanted = ""
        for keg in kegs:
            if keg.version == wanted:
                return keg
        return kegs[-1]

    # ---- 查询 ----

    def list_installed(self) -> list[Keg]:
        cellar = self.config.cellar_path
        if not cellar.is_dir():
            return []
        kegs: list[Keg] = []
        for rack in sorted(cellar.iterdir()):
            if rack.is_dir() and not rack.name.startswith("."):
                kegs.extend(Keg.installed(cellar, rack.name))
        return kegs

    def deps(self, name: str, *, spec: SpecKind | None = None) -> list[Package]:
        return self.resolver.expand(self.registry.load(name, spec))

    def info(self, name: str) -> dict[str, Any]:
        pkg = self.registry.load(name)
        kegs = Keg.installed(self.config.cellar_path, pkg.name)
        linked = self.linker.linked_keg(pkg.name)
        return {
            "name": pkg.name,
            "version": pkg.version,
            "homepage": pkg.homepage,
            "url": pkg.active.url,
            "dependencies": [
                f"{d.name} ({', '.join(d.tags)})" if d.tags else d.name
                for d in pkg.dependencies
            ],
            "requirements": [repr(r) for r in pkg.requirements],
            "bottle": self.bottles.should_use_bottle(pkg),
            "keg_only": pkg.keg_only,
            "installed": [str(k.path) for k in kegs],
            "linked": linked.version if linked else "",
            "caveats": pkg.caveats,
            "definition": str(pkg.path or Path()),
        }
