"""启动服务 - 运行阶段入口

读取布局清单，生成最终配置，交由 ProcessSupervisor 托管 FastCGI 运行时与
web 服务器两个进程。只依赖构建产出的目录布局，不依赖拉取器。
"""

from __future__ import annotations

import logging
import os
import shlex
from pathlib import Path
from typing import IO

from runpack.core.config import Config
from runpack.core.layout import CONF_DIR, read_manifest
from runpack.core.models import LayoutManifest, ProcessSpec, SupervisorResult
from runpack.core.sizing import CommandSizingOracle, IniSizingOracle, SizingOracle, decide_sizing
from runpack.core.supervisor import ProcessLauncher, ProcessSupervisor
from runpack.core.templates import TemplateRenderer

logger = logging.getLogger(__name__)


class BootService:
    """启动服务"""

    def __init__(self, config: Config, *, oracle: SizingOracle | None = None) -> None:
        self.config = config
        if oracle is None:
            oracle = (
                CommandSizingOracle(config.sizing_command)
                if config.sizing_command else IniSizingOracle()
            )
        self.oracle = oracle

    def process_specs(self, app_root: Path, manifest: LayoutManifest, port: int) -> list[ProcessSpec]:
        vendor = app_root / self.config.vendor_dir
        lib_dirs = [str(app_root / lib / "lib") for lib in manifest.installed_libs]
        env = {"PORT": str(port)}
        if lib_dirs:
            existing = os.environ.get("LD_LIBRARY_PATH", "")
            env["LD_LIBRARY_PATH"] = os.pathsep.join([*lib_dirs, *([existing] if existing else [])])
        commands = manifest.processes or self.config.processes
        return [
            ProcessSpec(
                name=name,
                command=shlex.split(cmd.format(vendor=vendor, app_root=app_root)),
                cwd=str(app_root),
                env=env,
            )
            for name, cmd in commands.items()
        ]

    def log_files(self, app_root: Path, manifest: LayoutManifest) -> list[str | Path]:
        seen: list[str | Path] = []
        for rel in [*self.config.log_files, *manifest.log_files]:
            path = app_root / rel
            if path not in seen:
                seen.append(path)
        return seen

    def supervisor(
        self,
        app_root: str | Path,
        *,
        port: int | None = None,
        memory_budget: str | None = None,
        concurrency: str | None = None,
        launcher: ProcessLauncher | None = None,
        log_stream: IO[str] | None = None,
    ) -> ProcessSupervisor:
        root = Path(app_root)
        manifest = read_manifest(root)
        vendor = root / self.config.vendor_dir
        docroot = root / manifest.document_root if manifest.document_root else root
        port = port or self.config.port
        budget = memory_budget or self.config.memory_budget
        log_files = self.log_files(root, manifest)

        def prepare() -> None:
            sizing = decide_sizing(
                self.oracle, str(vendor / "php" / "etc" / "php.ini"),
                str(docroot), budget, override=concurrency,
            )
            renderer = TemplateRenderer(root / CONF_DIR)
            includes = manifest.settings.get("nginx_includes") or []
            renderer.render_all(vendor, {
                "app_root": str(root),
                "vendor": str(vendor),
                "port": port,
                "document_root": str(docroot),
                "index_document": manifest.index_document,
                "concurrency": sizing.concurrency,
                "memory_limit": sizing.memory_limit,
                "nginx_includes": [str(root / inc) for inc in includes],
                "log_files": [str(p) for p in log_files],
            })

        return ProcessSupervisor(
            self.process_specs(root, manifest, port),
            prepare=prepare,
            log_files=log_files,
            launcher=launcher,
            log_stream=log_stream,
        )

    def boot(self, app_root: str | Path, **kwargs) -> SupervisorResult:
        """启动并阻塞到任一进程退出，返回退出报告"""
        logger.info("启动应用: %s", app_root)
        return self.supervisor(app_root, **kwargs).run()
