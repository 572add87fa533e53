"""DependencyResolver 单元测试"""

from __future__ import annotations

import pytest

from brewkit.core.dep.resolver import DependencyResolver
from brewkit.core.exceptions import DependencyCycle, MissingDependency, PackageUnavailable
from brewkit.core.models import Package


@pytest.fixture()
def graph(make_package):
    """按 {name: [deps]} 构造包集合和 loader"""

    def _graph(edges: dict[str, list[str]]) -> tuple[dict[str, Package], DependencyResolver]:
        packages = {name: make_package(name, deps=deps) for name, deps in edges.items()}

        def load(name: str) -> Package:
            try:
                return packages[name]
            except KeyError:
                raise PackageUnavailable(name) from None

        return packages, DependencyResolver(load)

    return _graph


def _assert_topological(order: list[Package], packages: dict[str, Package]) -> None:
    index = {p.name: i for i, p in enumerate(order)}
    assert len(index) == len(order), "结果中有重复"
    for pkg in order:
        for dep in pkg.dependencies:
            assert index[dep.name] < index[pkg.name], f"{dep.name} 应排在 {pkg.name} 之前"


class TestExpand:
    def test_no_dependencies(self, graph) -> None:
        packages, resolver = graph({"foo": []})
        assert resolver.expand(packages["foo"]) == []
        assert resolver.install_order(packages["foo"]) == [packages["foo"]]

    def test_chain(self, graph) -> None:
        packages, resolver = graph({"foo": ["bar"], "bar": ["baz"], "baz": []})
        assert [p.name for p in resolver.expand(packages["foo"])] == ["baz", "bar"]

    def test_diamond_has_no_duplicates(self, graph) -> None:
        packages, resolver = graph({
            "app": ["left", "right"],
            "left": ["base"],
            "right": ["base"],
            "base": [],
        })
        order = resolver.install_order(packages["app"])
        assert [p.name for p in order] == ["base", "left", "right", "app"]
        _assert_topological(order, packages)

    def test_first_occurrence_kept(self, graph) -> None:
        packages, resolver = graph({
            "app": ["a", "b", "c"],
            "a": [],
            "b": ["a", "c"],
            "c": [],
        })
        order = resolver.install_order(packages["app"])
        assert [p.name for p in order] == ["a", "c", "b", "app"]
        _assert_topological(order, packages)

    def test_larger_acyclic_graph(self, graph) -> None:
        edges = {
            "top": ["m1", "m2", "m3"],
            "m1": ["l1", "l2"],
            "m2": ["l2", "l3", "m1"],
            "m3": ["l3"],
            "l1": ["root"],
            "l2": ["root"],
            "l3": [],
            "root": [],
        }
        packages, resolver = graph(edges)
        order = resolver.install_order(packages["top"])
        assert {p.name for p in order} == set(edges)
        _assert_topological(order, packages)

    def test_direct(self, graph) -> None:
        packages, resolver = graph({"foo": ["bar", "baz"], "bar": ["baz"], "baz": []})
        assert [p.name for p in resolver.direct(packages["foo"])] == ["bar", "baz"]


class TestErrors:
    def test_self_cycle(self, graph) -> None:
        packages, resolver = graph({"foo": ["foo"]})
        with pytest.raises(DependencyCycle) as exc_info:
            resolver.expand(packages["foo"])
        assert exc_info.value.cycle == ["foo", "foo"]

    def test_mutual_cycle(self, graph) -> None:
        packages, resolver = graph({"a": ["b"], "b": ["c"], "c": ["a"]})
        with pytest.raises(DependencyCycle) as exc_info:
            resolver.expand(packages["a"])
        assert exc_info.value.cycle == ["a", "b", "c", "a"]

    def test_cycle_below_root(self, graph) -> None:
        packages, resolver = graph({"app": ["x"], "x": ["y"], "y": ["x"]})
        with pytest.raises(DependencyCycle) as exc_info:
            resolver.expand(packages["app"])
        assert exc_info.value.cycle == ["x", "y", "x"]

    def test_missing_dependency(self, graph) -> None:
        packages, resolver = graph({"foo": ["bar"], "bar": ["ghost"]})
        with pytest.raises(MissingDependency) as exc_info:
            resolver.expand(packages["foo"])
        assert exc_info.value.dependency == "ghost"
        assert exc_info.value.requester == "bar"
