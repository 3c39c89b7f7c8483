"""扩展依赖解析器

职责:
- 按顺序处理所需扩展: 已启用 → 跳过；预编译 .so 存在 → 写启用配置；否则远程拉取
- 扩展声明了原生库依赖时先拉取依赖库，并记录到已安装库集合（去重）
- 远程拉取失败按降级处理，不中断后续扩展

制品命名: ext/<api_tag>/php-<扩展名>，安装到运行时根目录。
"""

from __future__ import annotations

import logging
from pathlib import Path

from runpack.core.exceptions import DependencyError
from runpack.core.fetcher import ArtifactFetcher
from runpack.core.models import ExtensionGraph, InstalledLibs, Outcome, ResolveReport

logger = logging.getLogger(__name__)

# 需以 zend_extension 方式加载的扩展
ZEND_EXTENSIONS = frozenset(("opcache", "xdebug", "ioncube_loader"))


class ExtensionResolver:
    """扩展依赖解析器 - 可重入，重复调用不会重复拉取或重复写配置"""

    def __init__(
        self,
        fetcher: ArtifactFetcher,
        graph: ExtensionGraph,
        runtime_root: str | Path,
        api_tag: str,
        *,
        conf_dir: str | Path | None = None,
        ext_dir: str | Path | None = None,
        installed_libs: InstalledLibs | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.graph = graph
        self.runtime_root = Path(runtime_root)
        self.api_tag = api_tag
        self.conf_dir = Path(conf_dir) if conf_dir else self.runtime_root / "etc" / "conf.d"
        self.ext_dir = (
            Path(ext_dir) if ext_dir
            else self.runtime_root / "lib" / "php" / "extensions" / f"no-debug-non-zts-{api_tag}"
        )
        self.installed_libs = installed_libs if installed_libs is not None else InstalledLibs()

    def package_identifier(self, extension: str) -> str:
        return f"ext/{self.api_tag}/php-{extension}"

    def marker_path(self, extension: str) -> Path:
        return self.conf_dir / f"{extension}.ini"

    def resolve(self, extensions: list[str]) -> ResolveReport:
        """按输入顺序解析扩展列表"""
        report = ResolveReport(installed_libs=self.installed_libs)
        seen: set[str] = set()
        for ext in extensions:
            if ext in seen:
                continue
            seen.add(ext)
            outcome = self._resolve_one(ext, report)
            report.outcomes.append(outcome)

        if report.degraded:
            logger.warning(
                "扩展解析汇总: %d 个未安装 (%s)",
                len(report.degraded),
                ", ".join(o.subject for o in report.degraded),
            )
        return report

    def _resolve_one(self, ext: str, report: ResolveReport) -> Outcome:
        if self.marker_path(ext).exists():
            logger.info("扩展已安装: %s", ext, extra={"extension": ext})
            return Outcome(subject=ext, message="already installed")

        shared_object = self.ext_dir / f"{ext}.so"
        if shared_object.exists():
            self._write_stub(ext, shared_object, report)
            logger.info("启用内置扩展: %s", ext, extra={"extension": ext})
            return Outcome(subject=ext, message="bundled")

        try:
            self._install_native_dependency(ext)
            self.fetcher.fetch(self.package_identifier(ext), self.runtime_root)
        except DependencyError as e:
            logger.warning(
                "未知扩展或拉取失败，跳过: %s (%s)", ext, e,
                extra={"extension": ext, "outcome": "degraded"},
            )
            return Outcome.degraded(ext, f"扩展未安装: {e}", error=e)

        if not self.marker_path(ext).exists():
            self._write_stub(ext, shared_object, report)
        logger.info("已安装扩展: %s", ext, extra={"extension": ext})
        return Outcome(subject=ext, message="fetched")

    def _install_native_dependency(self, ext: str) -> None:
        dep = self.graph.native_dependency(ext)
        if dep is None:
            return
        name, location = dep
        if location in self.installed_libs:
            logger.info("  原生依赖已就绪: %s -> %s", name, location)
            return
        logger.info("  拉取原生依赖: %s -> %s", name, location)
        self.fetcher.fetch(name, location)
        self.installed_libs.add(location)

    def _write_stub(self, ext: str, shared_object: Path, report: ResolveReport) -> None:
        directive = "zend_extension" if ext in ZEND_EXTENSIONS else "extension"
        value = str(shared_object) if directive == "zend_extension" else shared_object.name
        marker = self.marker_path(ext)
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(f"{directive}={value}\n", encoding="utf-8")
        report.stubs_written.append(str(marker))
