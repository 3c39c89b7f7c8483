"""制品校验和存储

职责:
- current: 读取制品仓库当前发布的校验和（网络）
- cached:  读取本地缓存中上次拉取时记录的校验和
- record:  拉取成功后原子写入校验和

缓存布局: <cache_root>/package/<identifier>.md5
"""

from __future__ import annotations

import logging
from pathlib import Path

from runpack.utils.net import NETWORK_ERRORS, CatalogTransport, HttpTransport, package_url
from runpack.utils.yaml_io import atomic_write, read_text

logger = logging.getLogger(__name__)

CHECKSUM_SUFFIX = ".md5"
TARBALL_SUFFIX = ".tgz"


class ChecksumStore:
    """校验和存储 - 只按校验和是否变化判断缓存失效，不按时间过期"""

    def __init__(
        self,
        cache_root: Path,
        catalog_url: str,
        transport: CatalogTransport | None = None,
        subdir: str = "package",
    ) -> None:
        self.cache_root = Path(cache_root)
        self.catalog_url = catalog_url
        self.transport = transport or HttpTransport()
        self.subdir = subdir

    def entry_path(self, identifier: str, suffix: str) -> Path:
        return self.cache_root / self.subdir / f"{identifier}{suffix}"

    def current(self, identifier: str) -> str:
        """远端当前校验和；网络失败时返回空串（视为未命中，强制重新下载）"""
        url = package_url(self.catalog_url, identifier, CHECKSUM_SUFFIX)
        try:
            return self.transport.read_text(url).strip()
        except NETWORK_ERRORS as e:
            logger.warning("获取校验和失败，按缓存未命中处理: %s (%s)", identifier, e)
            return ""

    def cached(self, identifier: str) -> str:
        """本地记录的校验和，首次拉取时为空串"""
        return read_text(self.entry_path(identifier, CHECKSUM_SUFFIX))

    def record(self, identifier: str, checksum: str) -> None:
        atomic_write(self.entry_path(identifier, CHECKSUM_SUFFIX), checksum)

    def invalidate(self, identifier: str) -> None:
        """删除本地校验和，在替换 tar 包前调用"""
        self.entry_path(identifier, CHECKSUM_SUFFIX).unlink(missing_ok=True)

    def is_fresh(self, identifier: str, remote: str) -> bool:
        local = self.cached(identifier)
        return bool(local) and bool(remote) and local == remote
