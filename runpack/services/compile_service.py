"""构建服务 - detect / compile / release 三个构建阶段入口

compile 流程:
  1. 导入环境变量、读取 composer.json 设置、选定框架
  2. 拉取 web 服务器、PHP 运行时、composer 到 <app_root>/vendor
  3. 解析扩展（降级结果只记录，不中断构建）
  4. 框架 compile → composer install → 框架 end
  5. 迁移布局并写入清单，最后执行框架 post_compile（失败忽略）
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from runpack.core.checksum import ChecksumStore
from runpack.core.composer import ComposerInstaller, ComposerSettings, read_composer_settings
from runpack.core.config import Config
from runpack.core.envdir import load_env_dir
from runpack.core.exceptions import RunpackError
from runpack.core.fetcher import ArtifactFetcher
from runpack.core.frameworks import Framework, FrameworkRegistry, default_registry
from runpack.core.layout import LayoutBuilder
from runpack.core.models import (
    ExtensionGraph,
    FetchResult,
    LayoutManifest,
    Outcome,
    Package,
    ResolveReport,
)
from runpack.core.resolver import ExtensionResolver
from runpack.utils.net import CatalogTransport
from runpack.utils.shell import CommandExecutor
from runpack.utils.yaml_io import dump_yaml

logger = logging.getLogger(__name__)


@dataclass
class CompileReport:
    """一次 compile 的汇总"""

    framework: str
    fetched: list[FetchResult] = field(default_factory=list)
    extensions: ResolveReport = field(default_factory=ResolveReport)
    composer_installed: bool = False
    manifest_path: str = ""
    post_compile: Outcome | None = None


class CompileService:
    """构建服务"""

    def __init__(
        self,
        config: Config,
        *,
        transport: CatalogTransport | None = None,
        executor: CommandExecutor | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.executor = executor

    @property
    def vendor_root(self) -> Path:
        return Path(self.config.vendor_root)

    def registry(self) -> FrameworkRegistry:
        return default_registry(
            plugin_dir=self.config.extra.get("plugin_dir"),
            php_bin=str(self.vendor_root / "php" / "bin" / "php"),
            executor=self.executor,
        )

    def fetcher(self, cache_dir: Path) -> ArtifactFetcher:
        store = ChecksumStore(
            cache_dir, self.config.catalog_url,
            transport=self.transport, subdir=self.config.cache_subdir,
        )
        return ArtifactFetcher(store)

    def detect(self, build_dir: str | Path) -> str:
        """返回匹配的框架名，无匹配时抛 PluginError"""
        build = Path(build_dir)
        settings = read_composer_settings(build)
        return self.registry().select(build, settings.framework).name

    def release(self, build_dir: str | Path) -> str:
        """输出默认进程类型（YAML）"""
        return dump_yaml({"addons": [], "default_process_types": {"web": "runpack boot"}})

    def compile(
        self, build_dir: str | Path, cache_dir: str | Path,
        env_dir: str | Path | None = None,
    ) -> CompileReport:
        build = Path(build_dir)
        cache = Path(cache_dir)
        cache.mkdir(parents=True, exist_ok=True)

        env = load_env_dir(env_dir)
        settings = read_composer_settings(build)
        framework = self.registry().select(build, settings.framework)
        report = CompileReport(framework=framework.name)

        fetcher = self.fetcher(cache)
        report.fetched = self._fetch_runtime(fetcher)
        report.extensions = self._resolve_extensions(fetcher, settings)

        framework.compile(build, cache)
        installer = ComposerInstaller(
            self.vendor_root / "php" / "bin" / "php",
            self.vendor_root / "composer" / "composer.phar",
            cache, executor=self.executor,
        )
        report.composer_installed = installer.install(build, extra_env=env)
        framework.end(build, cache)

        self._install_php_config(build, settings)
        report.manifest_path = str(self._build_layout(build, framework, settings, report))
        report.post_compile = self._post_compile(framework, build, cache)
        logger.info("构建完成: framework=%s", framework.name)
        return report

    def _fetch_runtime(self, fetcher: ArtifactFetcher) -> list[FetchResult]:
        cfg = self.config
        packages = [
            Package(cfg.webserver_package, str(self.vendor_root / "nginx")),
            Package(cfg.runtime_package, str(self.vendor_root / "php")),
            Package(cfg.composer_package, str(self.vendor_root / "composer")),
        ]
        logger.info("拉取运行时: %s", ", ".join(p.identifier for p in packages))
        return fetcher.fetch_many(packages, max_workers=cfg.fetch_workers)

    def _resolve_extensions(self, fetcher: ArtifactFetcher, settings: ComposerSettings) -> ResolveReport:
        cfg = self.config
        resolver = ExtensionResolver(
            fetcher,
            ExtensionGraph(dict(cfg.extension_dependencies), dict(cfg.dependency_locations)),
            self.vendor_root / "php",
            cfg.php_api,
        )
        extensions = [*cfg.default_extensions, *settings.extensions]
        if not extensions:
            return ResolveReport(installed_libs=resolver.installed_libs)
        logger.info("解析扩展: %s", ", ".join(extensions))
        return resolver.resolve(extensions)

    def _install_php_config(self, build: Path, settings: ComposerSettings) -> None:
        """应用自带的 php.ini 片段复制到 conf.d，排在内置配置之后"""
        conf_d = self.vendor_root / "php" / "etc" / "conf.d"
        for rel in settings.php_config:
            src = build / rel
            if not src.is_file():
                logger.warning("php-config 文件不存在，跳过: %s", rel)
                continue
            conf_d.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, conf_d / f"zz-app-{src.name}")

    def _build_layout(
        self, build: Path, framework: Framework,
        settings: ComposerSettings, report: CompileReport,
    ) -> Path:
        manifest = LayoutManifest(
            framework=framework.name,
            document_root=settings.document_root or framework.default_document_root,
            index_document=settings.index_document,
            log_files=framework.log_files(),
            processes=dict(self.config.processes),
            settings={"nginx_includes": settings.nginx_includes},
        )
        builder = LayoutBuilder(build, self.config.vendor_dir)
        return builder.build(
            [self.vendor_root / "nginx", self.vendor_root / "php"],
            report.extensions.installed_libs,
            manifest,
            templates=build / self.config.templates_dir if self.config.templates_dir else None,
        )

    def _post_compile(self, framework: Framework, build: Path, cache: Path) -> Outcome:
        try:
            framework.post_compile(build, cache)
        except (RunpackError, OSError) as e:
            logger.warning("post-compile 失败（忽略）: %s", e)
            return Outcome.degraded(framework.name, str(e), error=e)
        return Outcome(subject=framework.name)
