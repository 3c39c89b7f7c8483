"""配置模板渲染

使用 Jinja2 渲染 nginx / php-fpm 配置。应用可在 templates_dir 中放置同名
模板覆盖内置模板。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateNotFound

from runpack.core.exceptions import ConfigError
from runpack.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

BUILTIN_TEMPLATES = Path(__file__).resolve().parent.parent / "templates"

# 模板名 → 相对 vendor 根目录的输出路径
DEFAULT_OUTPUTS = {
    "nginx.conf.j2": "nginx/conf/nginx.conf",
    "php-fpm.conf.j2": "php/etc/php-fpm.conf",
}


class TemplateRenderer:
    """模板渲染器，应用目录优先于内置目录"""

    def __init__(self, override_dir: str | Path | None = None) -> None:
        search = [str(override_dir)] if override_dir and Path(override_dir).is_dir() else []
        search.append(str(BUILTIN_TEMPLATES))
        self.env = Environment(
            loader=FileSystemLoader(search),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, name: str, context: dict[str, Any]) -> str:
        try:
            template = self.env.get_template(name)
        except TemplateNotFound as e:
            raise ConfigError(f"模板不存在: {name}") from e
        return template.render(**context)

    def render_to(self, name: str, dest: str | Path, context: dict[str, Any]) -> Path:
        out = Path(dest)
        atomic_write(out, self.render(name, context))
        logger.info("  已生成配置: %s", out)
        return out

    def render_all(
        self, vendor_root: str | Path, context: dict[str, Any],
        outputs: dict[str, str] | None = None,
    ) -> list[Path]:
        root = Path(vendor_root)
        return [
            self.render_to(name, root / rel, context)
            for name, rel in (outputs or DEFAULT_OUTPUTS).items()
        ]
