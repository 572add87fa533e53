"""ArtifactFetcher 单元测试 — 镜像回退与完整性校验"""

from __future__ import annotations

import hashlib
import io
import tarfile
from pathlib import Path

import pytest

from brewkit.core.exceptions import (
    DownloadError,
    FetchFailed,
    IntegrityMismatch,
    StagingFailed,
    ValidationError,
)
from brewkit.core.fetch.fetcher import ArtifactFetcher
from brewkit.core.fetch.strategies import (
    CurlDownloadStrategy,
    GitDownloadStrategy,
    build_strategy,
    detect_strategy_class,
)
from brewkit.core.models import Checksum, DownloadSpec, IntegrityUnverified, SpecKind


class FakeStrategy:
    """只有 URL 在 working 集合中时下载成功"""

    verifiable = True

    def __init__(self, url: str, working: set[str], cache_dir: Path) -> None:
        self.url = url
        self.working = working
        self.cache_dir = cache_dir

    def fetch(self) -> Path:
        if self.url not in self.working:
            raise DownloadError(self.url, "404")
        path = self.cache_dir / "artifact.tar.gz"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.url, encoding="utf-8")
        return path

    def stage(self, dest: Path) -> Path:
        return dest


@pytest.fixture()
def make_fetcher(tmp_path: Path):
    def _make(working: set[str]) -> tuple[ArtifactFetcher, list[FakeStrategy]]:
        created: list[FakeStrategy] = []

        def factory(url: str, **kwargs) -> FakeStrategy:
            strategy = FakeStrategy(url, working, kwargs["cache_dir"])
            created.append(strategy)
            return strategy

        return ArtifactFetcher(tmp_path / "cache", strategy_factory=factory), created

    return _make


PRIMARY = "https://primary.example.com/foo-1.0.tar.gz"
MIRROR_A = "https://a.example.com/foo-1.0.tar.gz"
MIRROR_B = "https://b.example.com/foo-1.0.tar.gz"


class TestMirrorFallback:
    def test_primary_success(self, make_fetcher) -> None:
        fetcher, created = make_fetcher({PRIMARY})
        result = fetcher.fetch(DownloadSpec(url=PRIMARY, mirrors=(MIRROR_A,)), name="foo", version="1.0")
        assert result.mirror_index is None
        assert len(created) == 1

    def test_second_mirror_succeeds(self, make_fetcher) -> None:
        fetcher, created = make_fetcher({MIRROR_B})
        spec = DownloadSpec(url=PRIMARY, mirrors=(MIRROR_A, MIRROR_B))
        result = fetcher.fetch(spec, name="foo", version="1.0")
        assert result.mirror_index == 1
        assert result.path.read_text(encoding="utf-8") == MIRROR_B
        # 每个地址一个新策略
        assert [s.url for s in created] == [PRIMARY, MIRROR_A, MIRROR_B]
        assert len({id(s) for s in created}) == 3

    @pytest.mark.parametrize("kind", [SpecKind.HEAD, SpecKind.DEVEL])
    def test_moving_targets_never_use_mirrors(self, make_fetcher, kind: SpecKind) -> None:
        fetcher, created = make_fetcher({MIRROR_A})
        spec = DownloadSpec(url=PRIMARY, kind=kind, mirrors=(MIRROR_A,))
        with pytest.raises(FetchFailed) as exc_info:
            fetcher.fetch(spec, name="foo", version="HEAD")
        assert [s.url for s in created] == [PRIMARY]
        assert exc_info.value.attempts == [PRIMARY]

    def test_all_mirrors_exhausted(self, make_fetcher) -> None:
        fetcher, _ = make_fetcher(set())
        spec = DownloadSpec(url=PRIMARY, mirrors=(MIRROR_A, MIRROR_B))
        with pytest.raises(FetchFailed) as exc_info:
            fetcher.fetch(spec, name="foo", version="1.0")
        err = exc_info.value
        assert err.attempts == [PRIMARY, MIRROR_A, MIRROR_B]
        # 暴露的是主地址的原始错误
        assert isinstance(err.__cause__, DownloadError)
        assert err.__cause__.url == PRIMARY

    def test_fetch_bottle_requires_bottle(self, tmp_path: Path, make_package) -> None:
        fetcher = ArtifactFetcher(tmp_path / "cache")
        with pytest.raises(ValidationError, match="没有声明 bottle"):
            fetcher.fetch_bottle(make_package("foo"), tmp_path / "bottles")


class TestVerify:
    @pytest.fixture()
    def artifact(self, tmp_path: Path) -> Path:
        path = tmp_path / "foo-1.0.tar.gz"
        path.write_bytes(b"hello brewkit")
        return path

    def test_matching_checksum(self, artifact: Path) -> None:
        digest = hashlib.sha1(b"hello brewkit").hexdigest()
        assert ArtifactFetcher.verify(artifact, Checksum("sha1", digest)) is None

    def test_checksum_compared_case_insensitively(self, artifact: Path) -> None:
        digest = hashlib.sha256(b"hello brewkit").hexdigest().upper()
        assert ArtifactFetcher.verify(artifact, Checksum("sha256", digest)) is None

    def test_mismatch_keeps_artifact(self, artifact: Path) -> None:
        with pytest.raises(IntegrityMismatch) as exc_info:
            ArtifactFetcher.verify(artifact, Checksum("md5", "0" * 32))
        err = exc_info.value
        assert err.expected == "0" * 32
        assert err.actual == hashlib.md5(b"hello brewkit").hexdigest()
        assert err.path == artifact
        assert artifact.exists()

    def test_missing_checksum_warns(self, artifact: Path) -> None:
        warning = ArtifactFetcher.verify(artifact, None)
        assert isinstance(warning, IntegrityUnverified)
        assert warning.algorithm == "sha256"
        assert warning.actual == hashlib.sha256(b"hello brewkit").hexdigest()
        assert warning.actual in warning.message


class TestCurlStrategy:
    def test_file_url_download_and_cache(self, tmp_path: Path) -> None:
        src = tmp_path / "dist" / "foo-1.0.tar.gz"
        src.parent.mkdir()
        src.write_bytes(b"payload")
        cache = tmp_path / "cache"
        strategy = CurlDownloadStrategy(src.as_uri(), name="foo", version="1.0", cache_dir=cache)
        path = strategy.fetch()
        assert path == cache / "foo-1.0.tar.gz"
        assert path.read_bytes() == b"payload"

        # 再次拉取命中缓存，源文件已不需要
        src.unlink()
        assert strategy.fetch() == path

    def test_missing_file_raises_download_error(self, tmp_path: Path) -> None:
        url = (tmp_path / "absent-1.0.tar.gz").as_uri()
        strategy = CurlDownloadStrategy(url, name="absent", version="1.0", cache_dir=tmp_path / "c")
        with pytest.raises(DownloadError):
            strategy.fetch()
        assert not list((tmp_path / "c").iterdir())

    def test_stage_enters_single_top_dir(self, tmp_path: Path, make_tarball) -> None:
        archive = make_tarball("foo-1.0", {"configure": "#!/bin/sh\n", "src/main.c": ""})
        strategy = CurlDownloadStrategy(
            archive.as_uri(), name="foo", version="1.0", cache_dir=tmp_path / "cache",
        )
        strategy.fetch()
        srcdir = strategy.stage(tmp_path / "stage")
        assert srcdir == tmp_path / "stage" / "foo-1.0"
        assert (srcdir / "src" / "main.c").is_file()

    def test_stage_rejects_member_outside_dest(self, tmp_path: Path) -> None:
        archive = tmp_path / "foo-1.0.tar"
        with tarfile.open(archive, "w") as tf:
            info = tarfile.TarInfo("../escaped.txt")
            info.size = 3
            tf.addfile(info, io.BytesIO(b"bad"))
        strategy = CurlDownloadStrategy(
            archive.as_uri(), name="foo", version="1.0", cache_dir=tmp_path / "cache",
        )
        strategy.fetch()

        with pytest.raises(StagingFailed) as exc_info:
            strategy.stage(tmp_path / "stage")
        assert isinstance(exc_info.value.__cause__, tarfile.TarError)
        assert not (tmp_path / "escaped.txt").exists()

    def test_fetch_through_fetcher_with_mirror(self, tmp_path: Path) -> None:
        good = tmp_path / "mirror" / "foo-1.0.tar.gz"
        good.parent.mkdir()
        good.write_bytes(b"data")
        spec = DownloadSpec(
            url=(tmp_path / "gone" / "foo-1.0.tar.gz").as_uri(),
            mirrors=(good.as_uri(),),
        )
        result = ArtifactFetcher(tmp_path / "cache").fetch(spec, name="foo", version="1.0")
        assert result.mirror_index == 0
        assert result.path.read_bytes() == b"data"


class TestStrategySelection:
    @pytest.mark.parametrize(("url", "cls"), [
        ("https://example.com/foo-1.0.tar.gz", CurlDownloadStrategy),
        ("git://example.com/foo.git", GitDownloadStrategy),
        ("https://github.com/x/foo.git", GitDownloadStrategy),
        ("file:///tmp/foo-1.0.tgz", CurlDownloadStrategy),
    ])
    def test_detect_by_url(self, url: str, cls: type) -> None:
        assert detect_strategy_class(url) is cls

    def test_using_overrides_url(self) -> None:
        assert detect_strategy_class("https://example.com/repo", {"using": "git"}) is GitDownloadStrategy

    def test_git_strategy_commands(self, tmp_path: Path, fake_executor) -> None:
        strategy = build_strategy(
            "https://github.com/x/foo.git", name="foo", version="HEAD",
            cache_dir=tmp_path, specs={"tag": "v1.0"}, executor=fake_executor,
        )
        assert strategy.verifiable is False
        strategy.fetch()
        assert fake_executor.commands[0][:3] == ["git", "clone", "--no-checkout"]
        assert fake_executor.commands[1] == ["git", "checkout", "-f", "v1.0"]
