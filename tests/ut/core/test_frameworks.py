"""框架注册表测试 - 首个匹配者胜出"""

from __future__ import annotations

import json
import logging
import os
import stat
from pathlib import Path

import pytest

from runpack.core.exceptions import PluginError
from runpack.core.frameworks import (
    BaseFramework,
    ClassicFramework,
    FrameworkRegistry,
    ScriptFramework,
    SilexFramework,
    SlimFramework,
    Symfony2Framework,
    default_registry,
    discover_plugins,
)
from runpack.utils.shell import CommandResult


class Always(BaseFramework):
    def __init__(self, name: str) -> None:
        self.name = name

    def detect(self, build_dir: Path) -> bool:
        return True


class Never(BaseFramework):
    name = "never"


def _write_plugin(path: Path, body: str) -> Path:
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


class TestRegistrySelect:
    def test_first_match_wins_and_warns(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        reg = FrameworkRegistry([Never(), Always("first"), Always("second")])
        with caplog.at_level(logging.WARNING):
            fw = reg.select(tmp_path)
        assert fw.name == "first"
        assert "second" in caplog.text

    def test_no_match_raises(self, tmp_path: Path) -> None:
        with pytest.raises(PluginError, match="无法识别"):
            FrameworkRegistry([Never()]).select(tmp_path)

    def test_explicit_name_skips_detection(self, tmp_path: Path) -> None:
        reg = FrameworkRegistry([Always("a"), Never()])
        assert reg.select(tmp_path, explicit="never").name == "never"

    def test_unknown_explicit_name(self, tmp_path: Path) -> None:
        with pytest.raises(PluginError, match="未知框架"):
            FrameworkRegistry([Never()]).select(tmp_path, explicit="rails")


class TestBuiltins:
    def test_symfony(self, tmp_path: Path) -> None:
        (tmp_path / "app").mkdir()
        (tmp_path / "app" / "console").write_text("<?php")
        assert Symfony2Framework().detect(tmp_path)
        assert Symfony2Framework().log_files() == ["app/logs/prod.log"]

    def test_symfony_end_runs_cache_warmup(self, tmp_path: Path) -> None:
        (tmp_path / "bin").mkdir()
        (tmp_path / "bin" / "console").write_text("<?php")
        calls = []

        class Recorder:
            def execute(self, cmd, *, cwd=".", env=None, timeout=None):
                calls.append(cmd)
                return CommandResult(0, "", "")

        Symfony2Framework(php_bin="/app/vendor/php/bin/php", executor=Recorder()).end(tmp_path, tmp_path)
        assert calls[0][:3] == ["/app/vendor/php/bin/php", str(tmp_path / "bin" / "console"), "cache:warmup"]

    @pytest.mark.parametrize(("cls", "package"), [
        (SlimFramework, "slim/slim"),
        (SilexFramework, "silex/silex"),
    ])
    def test_composer_based_detection(self, tmp_path: Path, cls, package: str) -> None:
        (tmp_path / "composer.json").write_text(json.dumps({"require": {package: "~1.0"}}))
        assert cls().detect(tmp_path)
        (tmp_path / "composer.json").write_text("{broken")
        assert not cls().detect(tmp_path)

    def test_classic(self, tmp_path: Path) -> None:
        assert not ClassicFramework().detect(tmp_path)
        (tmp_path / "index.php").write_text("<?php echo 1;")
        assert ClassicFramework().detect(tmp_path)

    def test_classic_in_document_root(self, tmp_path: Path) -> None:
        (tmp_path / "public").mkdir()
        (tmp_path / "public" / "index.php").write_text("<?php")
        assert not ClassicFramework().detect(tmp_path)
        (tmp_path / "composer.json").write_text(json.dumps({
            "require": {}, "extra": {"heroku": {"document-root": "/public/"}},
        }))
        assert ClassicFramework().detect(tmp_path)
        assert default_registry().select(tmp_path).name == "classic"

    def test_default_registry_priority(self, tmp_path: Path) -> None:
        (tmp_path / "index.php").write_text("<?php")
        (tmp_path / "composer.json").write_text(json.dumps({"require": {"silex/silex": "*"}}))
        reg = default_registry()
        assert reg.names()[-1] == "classic"
        assert reg.select(tmp_path).name == "silex"


class TestScriptFramework:
    def test_plugin_protocol(self, tmp_path: Path) -> None:
        log = tmp_path / "calls.log"
        plugin = _write_plugin(tmp_path / "myfw", f"""
echo "$@" >> {log}
case "$1" in
  detect) [ -f "$2/myfw.txt" ] ;;
  get-log-files) printf 'logs/a.log\\nlogs/b.log\\n' ;;
  post-compile) exit 3 ;;
  *) exit 0 ;;
esac
""")
        app = tmp_path / "app"
        app.mkdir()
        fw = ScriptFramework(plugin)

        assert fw.name == "myfw"
        assert not fw.detect(app)
        (app / "myfw.txt").write_text("")
        assert fw.detect(app)
        fw.compile(app, tmp_path)
        fw.end(app, tmp_path)
        assert fw.log_files() == ["logs/a.log", "logs/b.log"]
        with pytest.raises(PluginError, match="post-compile"):
            fw.post_compile(app, tmp_path)
        assert f"compile {app} {tmp_path}" in log.read_text()

    def test_discover_plugins_only_executables(self, tmp_path: Path) -> None:
        _write_plugin(tmp_path / "b", "exit 1")
        _write_plugin(tmp_path / "a", "exit 1")
        (tmp_path / "README").write_text("not a plugin")
        names = [fw.name for fw in discover_plugins(tmp_path)]
        assert names == ["a", "b"]
        assert discover_plugins(tmp_path / "missing") == []

    def test_unexecutable_plugin_raises(self, tmp_path: Path) -> None:
        plugin = tmp_path / "plain"
        plugin.write_text("#!/bin/sh\n")
        os.chmod(plugin, 0o644)
        with pytest.raises(PluginError):
            ScriptFramework(plugin).detect(tmp_path)
