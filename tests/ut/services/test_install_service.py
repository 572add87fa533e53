"""InstallService 测试 — 依赖顺序、失败传播、外部条件、卸载与链接"""

from __future__ import annotations

import io
import tarfile
from typing import Any

import pytest

from brewkit.core.exceptions import PackageUnavailable, StagingFailed
from brewkit.core.models import Phase
from brewkit.services.container import ServiceContainer
from brewkit.services.install_service import InstallService


@pytest.fixture()
def container(config) -> ServiceContainer:
    return ServiceContainer(config)


@pytest.fixture()
def service(container: ServiceContainer) -> InstallService:
    return container.install


@pytest.fixture()
def publish(make_tarball, write_formula):
    """发布一个可构建的包: 源码包 + 包定义；默认安装 bin/<name>"""

    def _publish(name: str, version: str = "1.0", deps: list[Any] | None = None,
                 build: list[Any] | None = None, **extra: Any) -> None:
        archive = make_tarball(f"{name}-{version}", {"README": f"{name}\n"})
        data: dict[str, Any] = {"url": archive.as_uri(), **extra}
        if deps:
            data["dependencies"] = deps
        data["build"] = build or [["sh", "-c", f"mkdir -p {{bin}} && cp README {{bin}}/{name}"]]
        write_formula(name, data)

    return _publish


class TestInstall:
    def test_dependencies_first(self, config, service, publish) -> None:
        publish("lib")
        publish("app", deps=["lib"])
        events: list[tuple[str, Phase]] = []
        service.subscribe(lambda e: events.append((e.package, e.phase)))

        report = service.install(["app"])

        assert report.success
        assert report.installed_names == ["lib", "app"]
        assert (config.prefix_path / "bin" / "lib").is_symlink()
        assert (config.prefix_path / "bin" / "app").is_symlink()
        linked = [p for p, phase in events if phase is Phase.LINKED]
        assert linked == ["lib", "app"]

    def test_already_installed(self, service, publish) -> None:
        publish("lib")
        publish("app", deps=["lib"])
        service.install(["lib"])

        report = service.install(["app"])
        assert report.already_installed == ["lib"]
        assert report.installed_names == ["app"]

    def test_failure_skips_dependents_only(self, config, service, publish) -> None:
        publish("broken", build=[["sh", "-c", "exit 2"]])
        publish("needs-broken", deps=["broken"])
        publish("standalone")

        report = service.install(["needs-broken", "standalone"])

        assert not report.success
        assert report.exit_status == 1
        assert [(f.name, f.phase) for f in report.failed] == [("broken", Phase.BUILDING)]
        assert report.skipped == ["needs-broken"]
        assert report.installed_names == ["standalone"]
        assert not (config.cellar_path / "needs-broken").exists()

    def test_unsafe_archive_does_not_stop_siblings(self, config, tmp_path, service, publish,
                                                    write_formula) -> None:
        archive = tmp_path / "bad-1.0.tar.gz"
        payload = b"boom\n"
        with tarfile.open(archive, "w:gz") as tf:
            info = tarfile.TarInfo("../evil")
            info.size = len(payload)
            tf.addfile(info, io.BytesIO(payload))
        write_formula("bad", {"url": archive.as_uri(), "build": [["true"]]})
        publish("ok")

        report = service.install(["bad", "ok"])

        assert [(f.name, f.phase) for f in report.failed] == [("bad", Phase.FETCHING)]
        assert isinstance(report.failed[0].error, StagingFailed)
        assert report.installed_names == ["ok"]
        assert not (config.cellar_path / "bad").exists()

    def test_missing_patch_file_reported(self, config, tmp_path, service, publish) -> None:
        publish("patched", patches=[str(tmp_path / "gone.diff")])
        publish("ok")

        report = service.install(["patched", "ok"])

        assert [(f.name, f.phase) for f in report.failed] == [("patched", Phase.PATCHING)]
        assert report.installed_names == ["ok"]

    def test_unknown_root(self, service, publish) -> None:
        publish("standalone")
        report = service.install(["ghost", "standalone"])
        assert [f.name for f in report.failed] == ["ghost"]
        assert report.failed[0].phase is Phase.PENDING
        assert report.installed_names == ["standalone"]

    def test_missing_dependency_reported(self, service, publish) -> None:
        publish("app", deps=["ghost"])
        report = service.install(["app"])
        assert report.installed == []
        assert "ghost" in report.failed[0].message

    def test_ignore_dependencies(self, service, publish) -> None:
        publish("lib")
        publish("app", deps=["lib"])
        report = service.install(["app"], ignore_dependencies=True)
        assert report.installed_names == ["app"]

    def test_shared_dependency_installed_once(self, service, publish) -> None:
        publish("base")
        publish("left", deps=["base"])
        publish("right", deps=["base"])
        report = service.install(["left", "right"])
        assert report.installed_names == ["base", "left", "right"]


class TestRequirements:
    def test_fatal_requirement_fails_package(self, config, service, publish) -> None:
        publish("needy", requirements=[{"command": "definitely-not-a-real-command-xyz", "fatal": True}])
        report = service.install(["needy"])
        assert report.failed[0].phase is Phase.PENDING
        assert "definitely-not-a-real-command-xyz" in report.failed[0].message
        assert not (config.cellar_path / "needy").exists()

    def test_soft_requirement_warns(self, service, publish) -> None:
        publish("needy", requirements=[{"command": "definitely-not-a-real-command-xyz"}])
        report = service.install(["needy"])
        assert report.installed_names == ["needy"]
        messages = [w.message for w in report.warnings]
        assert any("definitely-not-a-real-command-xyz" in m for m in messages)


class TestKegOperations:
    def test_uninstall_keeps_dependencies(self, config, service, publish) -> None:
        publish("lib")
        publish("app", deps=["lib"])
        service.install(["app"])

        removed = service.uninstall("app")
        assert [k.name for k in removed] == ["app"]
        assert not (config.cellar_path / "app").exists()
        assert not (config.prefix_path / "bin" / "app").exists()
        assert (config.prefix_path / "bin" / "lib").is_symlink()

    def test_uninstall_not_installed(self, service, publish) -> None:
        publish("lib")
        with pytest.raises(PackageUnavailable, match="未安装"):
            service.uninstall("lib")

    def test_unlink_then_link(self, config, service, publish) -> None:
        publish("lib")
        service.install(["lib"])

        assert service.unlink("lib") == 1
        assert not (config.prefix_path / "bin").exists()

        keg, count = service.link("lib", dry_run=True)
        assert count == 1
        assert not (config.prefix_path / "bin").exists()

        keg, count = service.link("lib")
        assert (keg.version, count) == ("1.0", 1)
        assert (config.prefix_path / "bin" / "lib").is_symlink()

    def test_list_and_info(self, service, publish) -> None:
        publish("lib", homepage="https://lib.example.com")
        publish("app", deps=[{"name": "lib", "tags": ["build"]}])
        service.install(["lib"])

        assert [(k.name, k.version) for k in service.list_installed()] == [("lib", "1.0")]
        info = service.info("app")
        assert info["dependencies"] == ["lib (build)"]
        assert info["installed"] == []
        lib_info = service.info("lib")
        assert lib_info["linked"] == "1.0"
        assert lib_info["homepage"] == "https://lib.example.com"

    def test_deps(self, service, publish) -> None:
        publish("base")
        publish("mid", deps=["base"])
        publish("top", deps=["mid", "base"])
        assert [p.name for p in service.deps("top")] == ["base", "mid"]

    def test_fetch_only(self, config, service, publish) -> None:
        publish("lib")
        result, warning = service.fetch("lib")
        assert result.path.parent == config.cache_path
        assert warning is not None
        assert not (config.cellar_path / "lib").exists()
