"""依赖解析器

把包声明的依赖展开成可安装顺序:
每个依赖都排在依赖它的包之前，同一个包只出现一次。
解析器不关心下载和链接，只通过 load 回调拿到 Package。
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from brewkit.core.exceptions import DependencyCycle, MissingDependency, PackageUnavailable
from brewkit.core.models import Dependency, Package

logger = logging.getLogger(__name__)

PackageLoader = Callable[[str], Package]


class DependencyResolver:
    """后序遍历展开依赖，带环检测

    展开结果按包名缓存；一个解析器实例对应一次运行中的同一份包定义。
    """

    def __init__(self, load: PackageLoader) -> None:
        self._load = load
        self._memo: dict[str, list[Package]] = {}

    def expand(self, package: Package) -> list[Package]:
        """package 的全部传递依赖（不含自身），依赖在前

        Raises:
            MissingDependency: 依赖名无法解析为已知包
            DependencyCycle: 依赖图存在环
        """
        return list(self._expand(package, [package.name]))

    def install_order(self, package: Package) -> list[Package]:
        """expand(package) 之后追加 package 本身"""
        return [*self.expand(package), package]

    def direct(self, package: Package) -> list[Package]:
        """直接依赖（已解析为 Package）"""
        return [self._load_dependency(dep, package) for dep in package.dependencies]

    def _expand(self, package: Package, path: list[str]) -> list[Package]:
        cached = self._memo.get(package.name)
        if cached is not None:
            return cached

        collected: list[Package] = []
        for dep in package.dependencies:
            dep_pkg = self._load_dependency(dep, package)
            if dep_pkg.name in path:
                cycle = path[path.index(dep_pkg.name):] + [dep_pkg.name]
                raise DependencyCycle(cycle)
            collected.extend(self._expand(dep_pkg, [*path, dep_pkg.name]))
            collected.append(dep_pkg)

        result = _unique(collected)
        self._memo[package.name] = result
        return result

    def _load_dependency(self, dep: Dependency, requester: Package) -> Package:
        try:
            return self._load(dep.name)
        except PackageUnavailable as e:
            raise MissingDependency(dep.name, requester.name) from e


def _unique(packages: list[Package]) -> list[Package]:
    """去重并保留首次出现的位置"""
    seen: set[str] = set()
    result: list[Package] = []
    for pkg in packages:
        if pkg.name not in seen:
            seen.add(pkg.name)
            result.append(pkg)
    return result
