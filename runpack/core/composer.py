"""Composer 集成

职责:
- 读取 composer.json 中的扩展需求（require 段 ext-*）与 extra.heroku 构建设置
- 执行 composer install（必须存在 composer.lock）
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from runpack.core.exceptions import ConfigError, LockfileError
from runpack.utils.shell import CommandExecutor, run_cmd

logger = logging.getLogger(__name__)

# 运行时自带、不需要单独安装的伪扩展
_BUILTIN_EXTENSIONS = frozenset(("json", "pcre", "spl", "reflection", "standard", "date", "core"))


@dataclass
class ComposerSettings:
    """composer.json 中与构建相关的设置"""

    extensions: list[str] = field(default_factory=list)
    document_root: str = ""
    index_document: str = "index.php"
    framework: str = ""
    php_config: list[str] = field(default_factory=list)
    nginx_includes: list[str] = field(default_factory=list)
    compile_hooks: list[str] = field(default_factory=list)


def _as_list(value: object) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]  # type: ignore[union-attr]


def read_composer_settings(build_dir: Path) -> ComposerSettings:
    """解析 composer.json；文件不存在时返回默认设置"""
    path = build_dir / "composer.json"
    if not path.is_file():
        return ComposerSettings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise ConfigError(f"composer.json 格式错误: {e}") from e

    extensions = [
        name[len("ext-"):].lower()
        for name in (data.get("require") or {})
        if name.lower().startswith("ext-")
    ]
    extra = (data.get("extra") or {}).get("heroku") or {}

    settings = ComposerSettings(
        extensions=[e for e in extensions if e not in _BUILTIN_EXTENSIONS],
        document_root=str(extra.get("document-root", "")).strip("/"),
        index_document=str(extra.get("index-document", "index.php")),
        framework=str(extra.get("framework", "")),
        php_config=_as_list(extra.get("php-config")),
        nginx_includes=_as_list(extra.get("nginx-includes")),
        compile_hooks=_as_list(extra.get("compile")),
    )
    if settings.compile_hooks:
        # 应用自定义的 compile 命令属于外部钩子，这里只记录
        logger.info("composer.json 声明了 %d 条 compile 钩子（未执行）", len(settings.compile_hooks))
    return settings


class ComposerInstaller:
    """composer install 执行器"""

    def __init__(
        self,
        php_bin: str | Path,
        composer_phar: str | Path,
        cache_dir: str | Path,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.php_bin = Path(php_bin)
        self.composer_phar = Path(composer_phar)
        self.cache_dir = Path(cache_dir)
        self.executor = executor

    def install(self, build_dir: Path, extra_env: dict[str, str] | None = None) -> bool:
        """安装应用依赖；无 composer.json 时跳过并返回 False"""
        if not (build_dir / "composer.json").is_file():
            logger.info("未找到 composer.json，跳过依赖安装")
            return False
        if not (build_dir / "composer.lock").is_file():
            raise LockfileError("存在 composer.json 但缺少 composer.lock，请先执行 composer update 并提交锁文件")

        env = {
            **os.environ,
            **(extra_env or {}),
            "PATH": f"{self.php_bin.parent}{os.pathsep}{os.environ.get('PATH', '')}",
            "COMPOSER_HOME": str(self.cache_dir / "composer"),
        }
        logger.info("安装 composer 依赖")
        run_cmd(
            [
                str(self.php_bin), str(self.composer_phar), "install",
                "--prefer-dist", "--optimize-autoloader", "--no-interaction", "--no-dev",
            ],
            cwd=str(build_dir), env=env, label="composer install", executor=self.executor,
        )
        return True
