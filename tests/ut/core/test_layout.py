"""运行时布局与清单测试"""

from __future__ import annotations

from pathlib import Path

import pytest

from runpack.core.exceptions import ConfigError
from runpack.core.layout import CONF_DIR, MANIFEST_PATH, LayoutBuilder, read_manifest
from runpack.core.models import InstalledLibs, LayoutManifest


def _tree(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content)
    return root


class TestLayoutBuilder:
    def test_build_relocates_and_writes_manifest(self, tmp_path: Path) -> None:
        staging = tmp_path / "staging"
        nginx = _tree(staging / "nginx", {"sbin/nginx": "bin"})
        php = _tree(staging / "php", {"sbin/php-fpm": "bin"})
        lib = _tree(staging / "libmemcached", {"lib/libmemcached.so": "so"})
        build = tmp_path / "build"
        build.mkdir()

        libs = InstalledLibs()
        libs.add(str(lib))
        manifest = LayoutManifest(framework="classic", document_root="web")
        path = LayoutBuilder(build).build([nginx, php], libs, manifest)

        assert path == build / MANIFEST_PATH
        assert (build / "vendor/nginx/sbin/nginx").read_text() == "bin"
        assert (build / "vendor/php/sbin/php-fpm").is_file()
        assert (build / "vendor/libmemcached/lib/libmemcached.so").is_file()

        loaded = read_manifest(build)
        assert loaded.framework == "classic"
        assert loaded.document_root == "web"
        assert loaded.installed_libs == ["vendor/libmemcached"]

    def test_relocate_in_place_is_noop(self, tmp_path: Path) -> None:
        build = tmp_path / "build"
        src = _tree(build / "vendor" / "php", {"x": "1"})
        assert LayoutBuilder(build).relocate(src) == src
        assert (src / "x").read_text() == "1"

    def test_build_copies_template_overrides(self, tmp_path: Path) -> None:
        build = tmp_path / "build"
        _tree(build / "tpl", {"nginx.conf.j2": "listen {{ port }};", "notes.txt": "x"})
        LayoutBuilder(build).build([], InstalledLibs(), LayoutManifest(), templates=build / "tpl")
        assert (build / CONF_DIR / "nginx.conf.j2").read_text() == "listen {{ port }};"
        assert not (build / CONF_DIR / "notes.txt").exists()

    def test_no_template_dir_skips_conf(self, tmp_path: Path) -> None:
        assert LayoutBuilder(tmp_path).install_templates(tmp_path / "absent") is None
        assert not (tmp_path / CONF_DIR).exists()

    def test_relocate_missing_source(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="不存在"):
            LayoutBuilder(tmp_path).relocate(tmp_path / "nope")


def test_read_manifest_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="布局清单不存在"):
        read_manifest(tmp_path)


def test_read_manifest_ignores_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / MANIFEST_PATH
    path.parent.mkdir(parents=True)
    path.write_text("framework: slim\nlegacy_field: 1\n")
    assert read_manifest(tmp_path).framework == "slim"
