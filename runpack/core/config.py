"""集中配置管理

构建与运行阶段的所有可调参数集中在 Config，支持从 YAML 文件加载 + 编程式覆盖。
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field

from runpack.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "runpack.yml"


def _default_processes() -> dict[str, str]:
    return {
        "php-fpm": (
            "{vendor}/php/sbin/php-fpm --nodaemonize"
            " --fpm-config {vendor}/php/etc/php-fpm.conf"
        ),
        "nginx": (
            "{vendor}/nginx/sbin/nginx -g 'daemon off;'"
            " -c {vendor}/nginx/conf/nginx.conf"
        ),
    }


@dataclass
class Config:
    """全局配置"""

    # 制品仓库
    catalog_url: str = "https://runpack-packages.s3.amazonaws.com"
    fetch_workers: int = 1

    # 目录
    app_root: str = "/app"
    vendor_dir: str = "vendor"
    cache_subdir: str = "package"

    # 制品标识
    webserver_package: str = "nginx-1.4.4"
    runtime_package: str = "php-5.5.11"
    composer_package: str = "composer-1.0.0"
    php_api: str = "20121212"

    # 扩展
    default_extensions: list[str] = field(default_factory=list)
    extension_dependencies: dict[str, str] = field(
        default_factory=lambda: {"memcached": "libmemcached"},
    )
    dependency_locations: dict[str, str] = field(
        default_factory=lambda: {"libmemcached": "/app/vendor/libmemcached"},
    )

    # 运行
    port: int = 8080
    memory_budget: str = "512M"
    sizing_command: str = ""
    templates_dir: str = ""
    processes: dict[str, str] = field(default_factory=_default_processes)
    log_files: list[str] = field(default_factory=lambda: [
        "vendor/nginx/logs/access.log",
        "vendor/nginx/logs/error.log",
        "vendor/php/var/log/error.log",
    ])

    # 放不到字段里的配置项
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_FILE) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        data = load_yaml(path)
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        cfg = cls(**matched)
        cfg.extra = extra
        return cfg

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def vendor_root(self) -> str:
        """构建期制品安装根目录，如 /app/vendor"""
        return f"{self.app_root.rstrip('/')}/{self.vendor_dir}"


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = DEFAULT_CONFIG_FILE) -> Config:
    """从文件初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
