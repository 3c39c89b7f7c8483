"""运行时目录布局

把构建期安装在 <app_root>/vendor 下的 web 服务器、运行时及原生依赖库
迁移到构建目录的 vendor 区，并写入布局清单供运行阶段读取。
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import asdict, fields
from pathlib import Path

from runpack.core.exceptions import ConfigError
from runpack.core.models import InstalledLibs, LayoutManifest
from runpack.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)

MANIFEST_PATH = ".runpack/layout.yml"
CONF_DIR = "conf"


class LayoutBuilder:
    """运行时布局构建器"""

    def __init__(self, build_dir: str | Path, vendor_dir: str = "vendor") -> None:
        self.build_dir = Path(build_dir)
        self.vendor_root = self.build_dir / vendor_dir

    def relocate(self, source: str | Path) -> Path:
        """复制 source 目录到 vendor/<目录名>，已存在时合并"""
        src = Path(source)
        if not src.is_dir():
            raise ConfigError(f"待迁移目录不存在: {src}")
        dest = self.vendor_root / src.name
        if src.resolve() == dest.resolve():
            return dest
        shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
        logger.info("  已迁移: %s -> %s", src, dest)
        return dest

    def install_templates(self, source: str | Path | None) -> Path | None:
        """把应用自带的 *.j2 模板复制到 <build_dir>/conf；无模板目录时返回 None"""
        if not source or not Path(source).is_dir():
            return None
        src = Path(source)
        dest = self.build_dir / CONF_DIR
        dest.mkdir(parents=True, exist_ok=True)
        if src.resolve() == dest.resolve():
            return dest
        for tpl in sorted(src.glob("*.j2")):
            shutil.copy2(tpl, dest / tpl.name)
            logger.info("  已复制模板: %s", tpl.name)
        return dest

    def build(
        self,
        artifacts: list[str | Path],
        installed_libs: InstalledLibs,
        manifest: LayoutManifest,
        templates: str | Path | None = None,
    ) -> Path:
        """迁移制品、依赖库与模板并写入布局清单，返回清单路径"""
        self.vendor_root.mkdir(parents=True, exist_ok=True)
        for artifact in artifacts:
            self.relocate(artifact)
        self.install_templates(templates)

        relocated = [self.relocate(lib) for lib in installed_libs]
        manifest.installed_libs = [str(p.relative_to(self.build_dir)) for p in relocated]

        path = self.build_dir / MANIFEST_PATH
        save_yaml(path, asdict(manifest))
        logger.info("布局清单已写入: %s", path)
        return path


def read_manifest(app_root: str | Path) -> LayoutManifest:
    """读取布局清单；缺失时说明应用尚未完成构建"""
    path = Path(app_root) / MANIFEST_PATH
    if not path.is_file():
        raise ConfigError(f"布局清单不存在: {path}，请先执行 compile")
    data = load_yaml(path)
    known = {f.name for f in fields(LayoutManifest)}
    return LayoutManifest(**{k: v for k, v in data.items() if k in known})
