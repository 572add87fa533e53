"""包定义注册表

职责:
- 从 <formula_dir>/<name>.yml 加载包定义并解析为 Package
- 别名表 aliases.yml
- 单次运行内缓存，保证同名包始终是同一个实例

包定义只是数据；加载过程不执行任何包内代码。
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import Any

import yaml

from brewkit.core.dep.requirements import (
    CommandRequirement,
    LanguageModuleRequirement,
    Requirement,
)
from brewkit.core.exceptions import PackageUnavailable, ValidationError
from brewkit.core.models import (
    CHECKSUM_TYPES,
    BottleSpec,
    BuildStep,
    Checksum,
    Dependency,
    DownloadSpec,
    Package,
    PatchSpec,
    SpecKind,
)
from brewkit.core.version import version_from_url
from brewkit.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFINITION_SUFFIX = ".yml"
ALIASES_FILE = "aliases.yml"

_COMPRESSION_SUFFIXES = {".gz": "gzip", ".bz2": "bzip2"}


class PackageRegistry:
    """包注册表 - 按名称加载包定义"""

    def __init__(self, formula_dir: Path) -> None:
        self.formula_dir = formula_dir
        self._cache: dict[tuple[str, SpecKind | None], Package] = {}
        self._aliases: dict[str, str] | None = None

    # ---- 查询 ----

    def available(self) -> list[str]:
        """列出所有可用包名"""
        if not self.formula_dir.is_dir():
            return []
        return sorted(
            p.stem for p in self.formula_dir.glob(f"*{DEFINITION_SUFFIX}")
            if p.name != ALIASES_FILE
        )

    def canonical_name(self, name: str) -> str:
        key = name.strip().lower()
        return self.aliases.get(key, key)

    @property
    def aliases(self) -> dict[str, str]:
        if self._aliases is None:
            data = load_yaml(self.formula_dir / ALIASES_FILE)
            self._aliases = {
                str(k).lower(): str(v).lower() for k, v in data.items()
            }
        return self._aliases

    def definition_path(self, name: str) -> Path:
        return self.formula_dir / f"{self.canonical_name(name)}{DEFINITION_SUFFIX}"

    # ---- 加载 ----

    def load(self, name: str, spec: SpecKind | None = None) -> Package:
        """加载包定义

        Args:
            name: 包名或别名，大小写不敏感
            spec: 显式请求 devel / head 规格；None 表示默认（stable，无 url 时 head）

        Raises:
            PackageUnavailable: 定义不存在或内容无效
        """
        canonical = self.canonical_name(name)
        key = (canonical, spec)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        path = self.formula_dir / f"{canonical}{DEFINITION_SUFFIX}"
        if not path.is_file():
            raise PackageUnavailable(name, f"找不到定义文件 {path}")
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise PackageUnavailable(name, str(e)) from e
        if not data:
            raise PackageUnavailable(name, f"定义文件为空: {path}")

        try:
            package = parse_package(canonical, data, path=path, spec=spec)
        except ValidationError as e:
            raise PackageUnavailable(name, str(e)) from e

        self._cache[key] = package
        logger.debug("已加载包定义: %s %s (%s)", package.name, package.version, path)
        return package

    def load_all(self) -> list[Package]:
        """加载全部包定义，跳过无效定义"""
        packages: list[Package] = []
        for name in self.available():
            try:
                packages.append(self.load(name))
            except PackageUnavailable as e:
                logger.warning("跳过无效包定义: %s", e)
        return packages


# =========================================================================
# 解析
# =========================================================================


def parse_package(
    name: str,
    data: dict[str, Any],
    *,
    path: Path | None = None,
    spec: SpecKind | None = None,
) -> Package:
    """把包定义映射解析为 Package

    Raises:
        ValidationError: 字段缺失或取值无效
    """
    base_dir = path.parent if path else Path(".")

    stable = _parse_stable(data)
    devel = _parse_devel(data.get("devel"))
    head = _parse_head(data.get("head"))

    if spec is SpecKind.HEAD or (spec is None and stable is None):
        active = head
        if active is None:
            raise ValidationError(f"{name} 没有可用的下载地址")
        version = "HEAD"
    elif spec is SpecKind.DEVEL:
        if devel is None:
            raise ValidationError(f"{name} 没有 devel 规格")
        active = devel
        version = str((data.get("devel") or {}).get("version") or "") or _detect_version(
            name, devel.url,
        )
    else:
        if stable is None:
            raise ValidationError(f"{name} 没有 stable 规格")
        active = stable
        version = str(data.get("version") or "") or _detect_version(name, stable.url)

    return Package(
        name=name,
        version=version,
        active=active,
        homepage=str(data.get("homepage") or ""),
        stable=stable,
        devel=devel,
        head=head,
        dependencies=tuple(_parse_dependencies(data.get("dependencies"))),
        requirements=tuple(_parse_requirements(data.get("requirements"))),
        bottle=_parse_bottle(data.get("bottle")),
        patches=tuple(_parse_patches(data.get("patches"), base_dir)),
        build_steps=tuple(_parse_build_steps(data.get("build"))),
        procedure=str(data.get("procedure") or ""),
        keg_only=_parse_keg_only(data.get("keg_only")),
        caveats=str(data.get("caveats") or "").strip(),
        path=path,
    )


def _detect_version(name: str, url: str) -> str:
    version = version_from_url(url)
    if not version:
        raise ValidationError(f"{name}: 无法从 {url} 推断版本号，请显式声明 version")
    return version


def parse_checksum(data: dict[str, Any], where: str = "") -> Checksum | None:
    """取出唯一声明的校验和；声明多个算法视为错误"""
    declared = [alg for alg in CHECKSUM_TYPES if data.get(alg)]
    if len(declared) > 1:
        raise ValidationError(
            f"{where or '包定义'} 只能声明一种校验算法，实际: {', '.join(declared)}",
        )
    if not declared:
        return None
    alg = declared[0]
    return Checksum(alg, str(data[alg]).strip())


def _parse_specs(raw: Any) -> dict[str, str]:
    if not raw:
        return {}
    if not isinstance(raw, dict):
        raise ValidationError(f"specs 必须是映射: {raw!r}")
    return {str(k): str(v) for k, v in raw.items()}


def _parse_stable(data: dict[str, Any]) -> DownloadSpec | None:
    url = data.get("url")
    if not url:
        return None
    mirrors = data.get("mirrors") or []
    if isinstance(mirrors, str):
        mirrors = [mirrors]
    return DownloadSpec(
        url=str(url),
        kind=SpecKind.STABLE,
        mirrors=tuple(str(m) for m in mirrors),
        checksum=parse_checksum(data),
        specs=_parse_specs(data.get("specs")),
    )


def _parse_devel(raw: Any) -> DownloadSpec | None:
    if not raw:
        return None
    if isinstance(raw, str):
        return DownloadSpec(url=raw, kind=SpecKind.DEVEL)
    if not isinstance(raw, dict) or not raw.get("url"):
        raise ValidationError(f"devel 规格无效: {raw!r}")
    return DownloadSpec(
        url=str(raw["url"]),
        kind=SpecKind.DEVEL,
        checksum=parse_checksum(raw, "devel"),
        specs=_parse_specs(raw.get("specs")),
    )


def _parse_head(raw: Any) -> DownloadSpec | None:
    if not raw:
        return None
    if isinstance(raw, str):
        return DownloadSpec(url=raw, kind=SpecKind.HEAD)
    if not isinstance(raw, dict) or not raw.get("url"):
        raise ValidationError(f"head 规格无效: {raw!r}")
    specs = {str(k): str(v) for k, v in raw.items() if k != "url"}
    return DownloadSpec(url=str(raw["url"]), kind=SpecKind.HEAD, specs=specs)


def _parse_dependencies(raw: Any) -> list[Dependency]:
    deps: list[Dependency] = []
    for entry in raw or []:
        if isinstance(entry, str):
            dep = Dependency(entry)
        elif isinstance(entry, dict) and "name" in entry:
            dep = Dependency(str(entry["name"]), _as_tags(entry.get("tags")))
        elif isinstance(entry, dict) and len(entry) == 1:
            dep_name, tags = next(iter(entry.items()))
            dep = Dependency(str(dep_name), _as_tags(tags))
        else:
            raise ValidationError(f"无法识别的依赖声明: {entry!r}")
        if dep in deps:
            logger.debug("忽略重复依赖: %s", dep.name)
            continue
        deps.append(dep)
    return deps


def _as_tags(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(t) for t in raw]
    return [str(raw)]


def _parse_requirements(raw: Any) -> list[Requirement]:
    reqs: list[Requirement] = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            raise ValidationError(f"无法识别的外部依赖声明: {entry!r}")
        if "module" in entry:
            reqs.append(LanguageModuleRequirement(
                str(entry["module"]),
                str(entry.get("language", "python")),
                import_name=str(entry.get("import_name") or ""),
            ))
        elif "command" in entry:
            reqs.append(CommandRequirement(
                str(entry["command"]),
                fatal=bool(entry.get("fatal", False)),
                hint=str(entry.get("hint") or ""),
            ))
        else:
            raise ValidationError(f"外部依赖缺少 module 或 command: {entry!r}")
    return reqs


def _parse_bottle(raw: Any) -> BottleSpec | None:
    if not raw:
        return None
    if isinstance(raw, str):
        return BottleSpec(url=raw)
    if not isinstance(raw, dict) or not raw.get("url"):
        raise ValidationError(f"bottle 声明无效: {raw!r}")
    checksum = Checksum("sha1", str(raw["sha1"])) if raw.get("sha1") else None
    return BottleSpec(url=str(raw["url"]), checksum=checksum)


def _parse_patches(raw: Any, base_dir: Path) -> list[PatchSpec]:
    """patches 可以是列表（默认 -p1），也可以是 {p0: [...], p1: [...]}"""
    if not raw:
        return []
    groups: list[tuple[int, Any]] = []
    if isinstance(raw, dict):
        for key, entries in raw.items():
            key = str(key)
            if not (key.startswith("p") and key[1:].isdigit()):
                raise ValidationError(f"补丁分组键无效: {key}（应为 p0、p1 ...）")
            groups.append((int(key[1:]), entries))
    else:
        groups.append((1, raw))

    patches: list[PatchSpec] = []
    for strip, entries in groups:
        if isinstance(entries, (str, dict)):
            entries = [entries]
        for entry in entries or []:
            patches.append(_parse_patch(entry, strip, base_dir))
    return patches


def _parse_patch(entry: Any, strip: int, base_dir: Path) -> PatchSpec:
    if isinstance(entry, str):
        entry = {"url": entry} if "://" in entry else {"path": entry}
    if not isinstance(entry, dict):
        raise ValidationError(f"补丁声明无效: {entry!r}")
    strip = int(entry.get("strip", strip))

    if entry.get("url"):
        url = str(entry["url"])
        compression = str(entry.get("compression") or "")
        if not compression:
            compression = next(
                (c for suffix, c in _COMPRESSION_SUFFIXES.items() if url.endswith(suffix)),
                "",
            )
        return PatchSpec(strip=strip, url=url, compression=compression)
    if entry.get("path"):
        local = Path(str(entry["path"]))
        if not local.is_absolute():
            local = base_dir / local
        return PatchSpec(strip=strip, path=str(local))
    if entry.get("data"):
        return PatchSpec(strip=strip, data=str(entry["data"]))
    raise ValidationError(f"补丁缺少 url / path / data: {entry!r}")


def _parse_build_steps(raw: Any) -> list[BuildStep]:
    steps: list[BuildStep] = []
    for entry in raw or []:
        if isinstance(entry, str):
            argv = shlex.split(entry)
        elif isinstance(entry, list):
            argv = [str(a) for a in entry]
        else:
            raise ValidationError(f"构建步骤必须是字符串或列表: {entry!r}")
        if not argv:
            raise ValidationError("构建步骤不能为空")
        steps.append(BuildStep(tuple(argv)))
    return steps


def _parse_keg_only(raw: Any) -> str:
    if not raw:
        return ""
    if raw is True:
        return "keg only"
    return str(raw)
