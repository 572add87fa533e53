"""构建编排

单个包的状态机:

    Pending -> Fetching -> Staged -> Patching -> Building -> Installed -> Linked
                       `-> Pouring ------------------------/
    Fetching / Staged / Patching / Building / Pouring / Installed 均可转入 Failed

打补丁或构建失败时先把诊断文件复制到日志目录；交互模式下再调用失败检查钩子，
钩子返回后安装中止。临时目录在钩子返回后才删除。
"""

from __future__ import annotations

import logging
import shutil
import tarfile
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from brewkit import __version__
from brewkit.core.bottles import BottleSelector
from brewkit.core.config import Config
from brewkit.core.exceptions import BrewError, EmptyInstallation, StagingFailed, ValidationError
from brewkit.core.fetch.fetcher import ArtifactFetcher
from brewkit.core.keg import Keg
from brewkit.core.linker import KegLinker
from brewkit.core.models import InstallEvent, InstallOutcome, Package, Phase
from brewkit.services.build.executor import BuildContext, run_steps
from brewkit.services.build.patches import PatchApplier
from brewkit.services.build.procedures import BuildProcedureRegistry
from brewkit.services.build.staging import scratch_dir, stage
from brewkit.utils.shell import CommandExecutor

logger = logging.getLogger(__name__)

FailureInspector = Callable[[Package, Path, BaseException], None]
EventListener = Callable[[InstallEvent], None]

DIAGNOSTIC_FILES = ("config.log", "CMakeCache.txt")

_TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.PENDING: frozenset((Phase.FETCHING, Phase.FAILED)),
    Phase.FETCHING: frozenset((Phase.STAGED, Phase.POURING, Phase.FAILED)),
    Phase.STAGED: frozenset((Phase.PATCHING, Phase.FAILED)),
    Phase.PATCHING: frozenset((Phase.BUILDING, Phase.FAILED)),
    Phase.BUILDING: frozenset((Phase.INSTALLED, Phase.FAILED)),
    Phase.POURING: frozenset((Phase.INSTALLED, Phase.FAILED)),
    Phase.INSTALLED: frozenset((Phase.LINKED, Phase.FAILED)),
    Phase.LINKED: frozenset(),
    Phase.FAILED: frozenset(),
}


class PhaseTracker:
    """记录单个包的当前阶段，并把每次转换作为事件发布"""

    def __init__(self, package: str, listeners: list[EventListener] | None = None) -> None:
        self.package = package
        self.listeners = listeners or []
        self.phase = Phase.PENDING
        self.failed_phase: Phase | None = None

    def advance(self, phase: Phase, detail: str = "") -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise RuntimeError(f"{self.package}: 非法的阶段转换 {self.phase.value} -> {phase.value}")
        self.phase = phase
        logger.debug(
            "%s -> %s %s", self.package, phase.value, detail,
            extra={"package": self.package, "phase": phase.value},
        )
        event = InstallEvent(package=self.package, phase=phase, detail=detail)
        for listener in self.listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("事件监听器在 %s/%s 上出错", self.package, phase.value)

    def fail(self, error: BaseException) -> None:
        if self.phase is Phase.FAILED:
            return
        self.failed_phase = self.phase
        self.advance(Phase.FAILED, str(error))


class BuildOrchestrator:
    """拉取 -> 展开 -> 打补丁 -> 构建（或倒入 bottle）-> 链接"""

    def __init__(
        self,
        config: Config,
        *,
        fetcher: ArtifactFetcher,
        linker: KegLinker,
        bottles: BottleSelector,
        procedures: BuildProcedureRegistry,
        executor: CommandExecutor,
        inspector: FailureInspector | None = None,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.linker = linker
        self.bottles = bottles
        self.procedures = procedures
        self.executor = executor
        self.inspector = inspector
        self.patcher = PatchApplier(executor, config.prefix_path)

    def install(self, package: Package, tracker: PhaseTracker | None = None) -> InstallOutcome:
        """安装单个包（不处理依赖），成功后链接（keg_only 除外）

        Raises:
            BrewError: 任一阶段失败；tracker.failed_phase 记录失败阶段
        """
        tracker = tracker or PhaseTracker(package.name)
        keg_path = package.keg_path(self.config.cellar_path)
        outcome = InstallOutcome(
            name=package.name, version=package.version, keg_path=keg_path,
            caveats=package.caveats,
        )
        try:
            if keg_path.exists():
                raise ValidationError(f"{package.name} {package.version} 已安装: {keg_path}")
            if self.bottles.should_use_bottle(package):
                keg = self._pour(package, tracker, outcome)
            else:
                keg = self._build(package, tracker, outcome)
            tracker.advance(Phase.INSTALLED, str(keg.path))

            if package.keg_only:
                logger.info("%s 是 keg-only，不链接到前缀: %s", package.name, package.keg_only)
            else:
                outcome.link_count = self.linker.link(keg)
                outcome.linked = True
                tracker.advance(Phase.LINKED, str(outcome.link_count))
        except BaseException as e:
            tracker.fail(e)
            raise
        return outcome

    # ---- bottle ----

    def _pour(self, package: Package, tracker: PhaseTracker, outcome: InstallOutcome) -> Keg:
        bottle = package.bottle
        if bottle is None:
            raise ValidationError(f"{package.name} 没有声明 bottle")
        tracker.advance(Phase.FETCHING, bottle.url)
        fetched = self.fetcher.fetch_bottle(package, self.config.bottles_cache_path)
        warning = self.fetcher.verify(fetched.path, bottle.checksum)
        if warning is not None:
            outcome.warnings.append(warning)

        tracker.advance(Phase.POURING, fetched.path.name)
        cellar = self.config.cellar_path
        keg_path = package.keg_path(cellar)
        cellar.mkdir(parents=True, exist_ok=True)
        try:
            try:
                with tarfile.open(fetched.path) as tf:
                    tf.extractall(path=str(cellar), filter="data")  # noqa: S202
            except (tarfile.TarError, OSError, EOFError) as e:
                raise StagingFailed(fetched.path, str(e)) from e
            keg = Keg(keg_path, cellar)
            if keg.is_empty():
                raise EmptyInstallation(f"bottle 中没有 {package.name} 的文件: {fetched.path}")
        except BaseException:
            _remove_partial_keg(keg_path)
            raise

        keg.write_receipt(self._receipt(package, poured=True))
        outcome.poured = True
        logger.info("已倒入 bottle: %s %s", package.name, package.version)
        return keg

    # ---- 源码构建 ----

    def _build(self, package: Package, tracker: PhaseTracker, outcome: InstallOutcome) -> Keg:
        procedure = self._build_procedure(package)

        tracker.advance(Phase.FETCHING, package.active.url)
        fetched = self.fetcher.fetch_package(package)
        if fetched.strategy.verifiable:
            warning = self.fetcher.verify(fetched.path, package.checksum)
            if warning is not None:
                outcome.warnings.append(warning)

        cellar = self.config.cellar_path
        keg_path = package.keg_path(cellar)
        try:
            with scratch_dir(self.config.tmp_path, package.name) as scratch:
                package.buildpath = scratch
                try:
                    srcdir = stage(fetched, scratch)
                    tracker.advance(Phase.STAGED, str(srcdir))
                    self._patch_and_build(package, srcdir, keg_path, procedure, tracker)
                finally:
                    package.buildpath = None

            keg = Keg(keg_path, cellar)
            if keg.is_empty():
                raise EmptyInstallation(f"{package.name} 构建完成但没有安装任何文件")
        except BaseException:
            _remove_partial_keg(keg_path)
            raise

        keg.write_receipt(self._receipt(package, poured=False))
        return keg

    def _build_procedure(self, package: Package) -> Callable[[BuildContext], None]:
        if package.procedure:
            return self.procedures.get(package.procedure)
        if not package.build_steps:
            raise ValidationError(f"{package.name} 没有声明构建步骤")
        return lambda ctx: run_steps(ctx, package.build_steps)

    def _patch_and_build(
        self,
        package: Package,
        srcdir: Path,
        keg_path: Path,
        procedure: Callable[[BuildContext], None],
        tracker: PhaseTracker,
    ) -> None:
        try:
            tracker.advance(Phase.PATCHING, str(len(package.patches)))
            self.patcher.apply_all(package, srcdir)

            tracker.advance(Phase.BUILDING)
            keg_path.mkdir(parents=True, exist_ok=True)
            ctx = BuildContext(
                package=package,
                buildpath=srcdir,
                keg_path=keg_path,
                brew_prefix=self.config.prefix_path,
                cellar=self.config.cellar_path,
                executor=self.executor,
                jobs=self.config.effective_jobs,
                verbose=self.config.verbose,
            )
            procedure(ctx)
        except (BrewError, KeyboardInterrupt) as e:
            self._recover(package, srcdir, e)
            raise

    # ---- 失败处理 ----

    def _recover(self, package: Package, srcdir: Path, error: BaseException) -> None:
        """复制诊断文件；交互模式下调用检查钩子（钩子返回后由调用方中止）"""
        self.copy_diagnostics(package, srcdir)
        if self.config.non_interactive or self.inspector is None:
            return
        logger.error("%s 构建失败，保留构建目录供检查: %s", package.name, srcdir)
        self.inspector(package, srcdir, error)

    def copy_diagnostics(self, package: Package, srcdir: Path) -> list[Path]:
        """把已知的诊断文件复制到 <log_dir>/<name>/"""
        found = [srcdir / f for f in DIAGNOSTIC_FILES if (srcdir / f).is_file()]
        if not found:
            return []
        dest_dir = self.config.logs_path / package.name
        dest_dir.mkdir(parents=True, exist_ok=True)
        copied: list[Path] = []
        for src in found:
            dest = dest_dir / src.name
            shutil.copy2(src, dest)
            logger.info("%s 已复制到 %s", src.name, dest_dir)
            copied.append(dest)
        return copied

    def _receipt(self, package: Package, *, poured: bool) -> dict[str, Any]:
        return {
            "name": package.name,
            "version": package.version,
            "spec": package.active.kind.value,
            "source": package.bottle.url if poured and package.bottle else package.active.url,
            "poured_from_bottle": poured,
            "dependencies": [d.name for d in package.dependencies],
            "time": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "brewkit_version": __version__,
        }


def _remove_partial_keg(keg_path: Path) -> None:
    if not keg_path.exists():
        return
    logger.warning("删除未完成的 keg: %s", keg_path)
    shutil.rmtree(keg_path, ignore_errors=True)
    try:
        keg_path.parent.rmdir()
    except OSError:
        pass
