"""应用框架注册表

每种框架实现 detect / compile / end / post_compile / log_files 五个能力，
按优先级排列在注册表中，首个匹配者胜出，构建期间只持有这一个选中的框架。

外部插件（实现 detect / compile / end / post-compile / get-log-files
五个子命令的可执行文件）通过 ScriptFramework 适配进注册表。
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from runpack.core.exceptions import ExecutionError, PluginError
from runpack.utils.shell import CommandExecutor, get_executor, run_cmd

logger = logging.getLogger(__name__)


class Framework(Protocol):
    """框架能力协议"""

    name: str
    default_document_root: str

    def detect(self, build_dir: Path) -> bool: ...

    def compile(self, build_dir: Path, cache_dir: Path) -> None: ...

    def end(self, build_dir: Path, cache_dir: Path) -> None: ...

    def post_compile(self, build_dir: Path, cache_dir: Path) -> None: ...

    def log_files(self) -> list[str]: ...


def _composer_data(build_dir: Path) -> dict:
    path = build_dir / "composer.json"
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def composer_requires(build_dir: Path) -> dict[str, str]:
    """读取 composer.json 的 require 段，文件缺失或格式错误时返回空字典"""
    return dict(_composer_data(build_dir).get("require") or {})


def composer_document_root(build_dir: Path) -> str:
    """composer.json 中 extra.heroku.document-root，未声明时返回空串"""
    extra = (_composer_data(build_dir).get("extra") or {}).get("heroku") or {}
    return str(extra.get("document-root", "")).strip("/")


class BaseFramework:
    """内置框架基类，各阶段默认不做任何事"""

    name = "base"
    default_document_root = ""

    def detect(self, build_dir: Path) -> bool:
        return False

    def compile(self, build_dir: Path, cache_dir: Path) -> None:
        pass

    def end(self, build_dir: Path, cache_dir: Path) -> None:
        pass

    def post_compile(self, build_dir: Path, cache_dir: Path) -> None:
        pass

    def log_files(self) -> list[str]:
        return []


class Symfony2Framework(BaseFramework):
    """Symfony2: 存在 app/console 或 bin/console"""

    name = "symfony2"
    default_document_root = "web"

    def __init__(self, php_bin: str = "php", executor: CommandExecutor | None = None) -> None:
        self.php_bin = php_bin
        self.executor = executor

    def _console(self, build_dir: Path) -> Path:
        for rel in ("bin/console", "app/console"):
            if (build_dir / rel).is_file():
                return build_dir / rel
        return build_dir / "app/console"

    def detect(self, build_dir: Path) -> bool:
        return (build_dir / "app/console").is_file() or (build_dir / "bin/console").is_file()

    def compile(self, build_dir: Path, cache_dir: Path) -> None:
        for rel in ("app/cache", "app/logs"):
            (build_dir / rel).mkdir(parents=True, exist_ok=True)

    def end(self, build_dir: Path, cache_dir: Path) -> None:
        env = {**os.environ, "SYMFONY_ENV": "prod"}
        run_cmd(
            [self.php_bin, str(self._console(build_dir)), "cache:warmup", "--env=prod", "--no-debug"],
            cwd=str(build_dir), env=env, label="cache:warmup", executor=self.executor,
        )

    def log_files(self) -> list[str]:
        return ["app/logs/prod.log"]


class SlimFramework(BaseFramework):
    """Slim: composer 依赖 slim/slim"""

    name = "slim"
    default_document_root = "public"

    def detect(self, build_dir: Path) -> bool:
        return "slim/slim" in composer_requires(build_dir)


class SilexFramework(BaseFramework):
    """Silex: composer 依赖 silex/silex"""

    name = "silex"
    default_document_root = "web"

    def detect(self, build_dir: Path) -> bool:
        return "silex/silex" in composer_requires(build_dir)


class ClassicFramework(BaseFramework):
    """普通 PHP 应用: 根目录或文档根目录存在 .php 文件"""

    name = "classic"

    def detect(self, build_dir: Path) -> bool:
        roots = [build_dir]
        docroot = composer_document_root(build_dir)
        if docroot:
            roots.append(build_dir / docroot)
        return any(any(root.glob("*.php")) for root in roots)


class ScriptFramework:
    """外部插件适配器 - 每个能力对应插件的一个子命令"""

    default_document_root = ""

    def __init__(self, path: str | Path, executor: CommandExecutor | None = None) -> None:
        self.path = Path(path)
        self.name = self.path.name
        self.executor = executor

    def _call(self, verb: str, *args: Path) -> str:
        cmd = [str(self.path), verb, *(str(a) for a in args)]
        try:
            return run_cmd(cmd, label=f"{self.name} {verb}", executor=self.executor).stdout
        except (ExecutionError, OSError) as e:
            raise PluginError(f"框架插件 {self.name} {verb} 失败: {e}") from e

    def detect(self, build_dir: Path) -> bool:
        executor = self.executor or get_executor()
        try:
            r = executor.execute([str(self.path), "detect", str(build_dir)])
        except OSError as e:
            raise PluginError(f"框架插件 {self.name} 无法执行: {e}") from e
        return r.success

    def compile(self, build_dir: Path, cache_dir: Path) -> None:
        self._call("compile", build_dir, cache_dir)

    def end(self, build_dir: Path, cache_dir: Path) -> None:
        self._call("end", build_dir, cache_dir)

    def post_compile(self, build_dir: Path, cache_dir: Path) -> None:
        self._call("post-compile", build_dir, cache_dir)

    def log_files(self) -> list[str]:
        out = self._call("get-log-files")
        return [line.strip() for line in out.splitlines() if line.strip()]


class FrameworkRegistry:
    """有序框架列表，首个匹配者胜出"""

    def __init__(self, frameworks: list[Framework]) -> None:
        self.frameworks = list(frameworks)

    def names(self) -> list[str]:
        return [f.name for f in self.frameworks]

    def get(self, name: str) -> Framework:
        for fw in self.frameworks:
            if fw.name == name:
                return fw
        raise PluginError(f"未知框架: {name}，可用: {self.names()}")

    def select(self, build_dir: Path, explicit: str = "") -> Framework:
        """选择框架；explicit 非空时跳过探测"""
        if explicit:
            fw = self.get(explicit)
            logger.info("使用指定框架: %s", fw.name)
            return fw

        matches = [fw for fw in self.frameworks if fw.detect(build_dir)]
        if not matches:
            raise PluginError(f"无法识别应用框架: {build_dir}")
        if len(matches) > 1:
            logger.warning(
                "多个框架匹配，按优先级选择 %s，忽略: %s",
                matches[0].name, ", ".join(fw.name for fw in matches[1:]),
            )
        logger.info("检测到框架: %s", matches[0].name)
        return matches[0]


def discover_plugins(plugin_dir: str | Path, executor: CommandExecutor | None = None) -> list[Framework]:
    """扫描插件目录中的可执行文件，按文件名排序"""
    d = Path(plugin_dir)
    if not d.is_dir():
        return []
    return [
        ScriptFramework(p, executor=executor)
        for p in sorted(d.iterdir())
        if p.is_file() and os.access(p, os.X_OK)
    ]


def default_registry(
    plugin_dir: str | Path | None = None,
    php_bin: str = "php",
    executor: CommandExecutor | None = None,
) -> FrameworkRegistry:
    """内置框架 + 外部插件，classic 兜底排在最后"""
    frameworks: list[Framework] = [
        Symfony2Framework(php_bin=php_bin, executor=executor),
        SlimFramework(),
        SilexFramework(),
    ]
    if plugin_dir:
        frameworks.extend(discover_plugins(plugin_dir, executor=executor))
    frameworks.append(ClassicFramework())
    return FrameworkRegistry(frameworks)
