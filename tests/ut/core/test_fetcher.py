"""ArtifactFetcher 单元测试 - 缓存命中/未命中与致命错误"""

from __future__ import annotations

from pathlib import Path

import pytest

from runpack.core.exceptions import DependencyError, ExtractionError, FetchError
from runpack.core.fetcher import ArtifactFetcher
from runpack.core.models import Package


class TestCacheCorrectness:
    def test_first_fetch_downloads_records_and_extracts(
        self, fetcher: ArtifactFetcher, catalog, tmp_path: Path,
    ) -> None:
        catalog.publish("web-1.4.4", {"sbin/nginx": "binary"}, checksum="abc123")
        target = tmp_path / "build" / "vendor" / "nginx"

        result = fetcher.fetch("web-1.4.4", target)

        assert result.downloaded is True
        assert catalog.downloads == ["web-1.4.4"]
        assert (tmp_path / "cache" / "package" / "web-1.4.4.md5").read_text() == "abc123"
        assert (target / "sbin" / "nginx").read_text() == "binary"

    def test_unchanged_checksum_skips_download_but_extracts(
        self, fetcher: ArtifactFetcher, catalog, tmp_path: Path,
    ) -> None:
        catalog.publish("web-1.4.4", {"sbin/nginx": "binary"}, checksum="abc123")
        fetcher.fetch("web-1.4.4", tmp_path / "first")

        fresh_target = tmp_path / "second"
        result = fetcher.fetch("web-1.4.4", fresh_target)

        assert result.downloaded is False
        assert catalog.downloads == ["web-1.4.4"]
        assert (fresh_target / "sbin" / "nginx").read_text() == "binary"

    def test_changed_checksum_downloads_once_and_updates(
        self, fetcher: ArtifactFetcher, catalog, store, tmp_path: Path,
    ) -> None:
        catalog.publish("php-5.4.17", {"bin/php": "v1"}, checksum="c1")
        fetcher.fetch("php-5.4.17", tmp_path / "t")

        catalog.publish("php-5.4.17", {"bin/php": "v2"}, checksum="c2")
        result = fetcher.fetch("php-5.4.17", tmp_path / "t")

        assert result.downloaded is True
        assert catalog.downloads == ["php-5.4.17", "php-5.4.17"]
        assert store.cached("php-5.4.17") == "c2"
        assert (tmp_path / "t" / "bin" / "php").read_text() == "v2"

    def test_checksum_lookup_failure_forces_redownload(
        self, fetcher: ArtifactFetcher, catalog, store, tmp_path: Path,
    ) -> None:
        catalog.publish("php-5.4.17", {"bin/php": "v1"}, checksum="c1")
        fetcher.fetch("php-5.4.17", tmp_path / "t")

        catalog.checksum_offline = True
        result = fetcher.fetch("php-5.4.17", tmp_path / "t")

        assert result.downloaded is True
        assert len(catalog.downloads) == 2
        # 远端校验和未知时不写入空值，下次必然重新比对
        assert store.cached("php-5.4.17") == ""

    def test_target_dir_created_recursively(self, fetcher: ArtifactFetcher, catalog, tmp_path: Path) -> None:
        catalog.publish("a-1", {"f": "x"})
        target = tmp_path / "deep" / "nested" / "dir"
        fetcher.fetch("a-1", target)
        assert target.is_dir()

    def test_same_identifier_different_targets_share_cache(
        self, fetcher: ArtifactFetcher, catalog, tmp_path: Path,
    ) -> None:
        catalog.publish("libmemcached", {"lib/libmemcached.so": "so"})
        fetcher.fetch("libmemcached", tmp_path / "one")
        fetcher.fetch("libmemcached", tmp_path / "two")
        assert catalog.downloads == ["libmemcached"]
        assert (tmp_path / "two" / "lib" / "libmemcached.so").exists()


class TestFatalErrors:
    def test_download_failure_is_fatal(self, fetcher: ArtifactFetcher, catalog, tmp_path: Path) -> None:
        catalog.publish("php-5.4.17", {"bin/php": "x"})
        catalog.download_offline = True
        with pytest.raises(FetchError, match="下载失败") as exc_info:
            fetcher.fetch("php-5.4.17", tmp_path / "t")
        assert exc_info.value.identifier == "php-5.4.17"
        assert isinstance(exc_info.value, DependencyError)

    def test_download_failure_leaves_no_partial_file(
        self, fetcher: ArtifactFetcher, catalog, tmp_path: Path,
    ) -> None:
        catalog.download_offline = True
        with pytest.raises(FetchError):
            fetcher.fetch("php-5.4.17", tmp_path / "t")
        leftovers = list((tmp_path / "cache" / "package").iterdir())
        assert leftovers == []

    def test_failed_refresh_keeps_previous_entry_consistent(
        self, fetcher: ArtifactFetcher, catalog, store, tmp_path: Path,
    ) -> None:
        catalog.publish("php-5.4.17", {"bin/php": "v1"}, checksum="c1")
        fetcher.fetch("php-5.4.17", tmp_path / "t")

        catalog.checksums["php-5.4.17"] = "c2"
        catalog.download_offline = True
        with pytest.raises(FetchError):
            fetcher.fetch("php-5.4.17", tmp_path / "t")
        assert store.cached("php-5.4.17") == "c1"
        assert fetcher.tarball_path("php-5.4.17").is_file()

    def test_malformed_tarball_is_fatal(self, fetcher: ArtifactFetcher, catalog, store, tmp_path: Path) -> None:
        catalog.tarballs["bad-1"] = b"not a tarball"
        catalog.checksums["bad-1"] = "bad"
        with pytest.raises(ExtractionError, match="解压失败"):
            fetcher.fetch("bad-1", tmp_path / "t")
        assert store.cached("bad-1") == ""

    def test_member_outside_target_is_rejected(
        self, fetcher: ArtifactFetcher, catalog, store, tmp_path: Path,
    ) -> None:
        catalog.publish("evil-1", {"../escaped.txt": "x"})
        with pytest.raises(ExtractionError, match="解压失败"):
            fetcher.fetch("evil-1", tmp_path / "t")
        assert not (tmp_path / "escaped.txt").exists()
        assert store.cached("evil-1") == ""

    def test_missing_cached_tarball_is_fatal(self, fetcher: ArtifactFetcher, catalog, store, tmp_path: Path) -> None:
        catalog.publish("a-1", {"f": "x"}, checksum="k")
        store.record("a-1", "k")
        with pytest.raises(ExtractionError, match="不存在"):
            fetcher.fetch("a-1", tmp_path / "t")
        assert catalog.downloads == []


class TestFetchMany:
    @pytest.mark.parametrize("workers", [1, 4])
    def test_results_in_input_order(self, fetcher: ArtifactFetcher, catalog, tmp_path: Path, workers: int) -> None:
        for ident in ("nginx-1.4.4", "php-5.5.11", "composer-1.0.0"):
            catalog.publish(ident, {f"{ident}.txt": ident})
        packages = [
            Package("nginx-1.4.4", str(tmp_path / "nginx")),
            Package("php-5.5.11", str(tmp_path / "php")),
            Package("composer-1.0.0", str(tmp_path / "composer")),
            Package("nginx-1.4.4", str(tmp_path / "nginx2")),
        ]
        results = fetcher.fetch_many(packages, max_workers=workers)

        assert [r.identifier for r in results] == [p.identifier for p in packages]
        assert sorted(catalog.downloads) == ["composer-1.0.0", "nginx-1.4.4", "php-5.5.11"]
        assert results[0].downloaded is True
        assert results[3].downloaded is False
        assert (tmp_path / "nginx2" / "nginx-1.4.4.txt").exists()

    def test_error_propagates(self, fetcher: ArtifactFetcher, catalog, tmp_path: Path) -> None:
        catalog.publish("ok-1", {"f": "x"})
        with pytest.raises(FetchError):
            fetcher.fetch_many(
                [Package("ok-1", str(tmp_path / "a")), Package("missing-1", str(tmp_path / "b"))],
                max_workers=2,
            )
