"""制品拉取器

策略: 校验和比对决定是否下载，解压总是执行

  1. 确保目标目录存在
  2. 远端校验和 == 本地校验和（且均非空）→ 缓存命中，跳过下载
  3. 否则下载 tar 包到缓存目录，覆盖旧包并记录新校验和
  4. 无论是否命中，都把缓存中的 tar 包解压到目标目录
     （目标目录可能是全新的构建目录，而缓存跨构建保留）

下载或解压失败都是致命错误，不自动重试。
"""

from __future__ import annotations

import logging
import os
import tarfile
import tempfile
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from runpack.core.checksum import TARBALL_SUFFIX, ChecksumStore
from runpack.core.exceptions import ExtractionError, FetchError
from runpack.core.models import FetchResult, Package
from runpack.utils.net import NETWORK_ERRORS, package_url

logger = logging.getLogger(__name__)


class ArtifactFetcher:
    """制品拉取器 - 校验和缓存 + tar 包解压"""

    def __init__(self, store: ChecksumStore) -> None:
        self.store = store

    def tarball_path(self, identifier: str) -> Path:
        return self.store.entry_path(identifier, TARBALL_SUFFIX)

    def fetch(self, identifier: str, target_dir: str | Path) -> FetchResult:
        """拉取单个制品并解压到 target_dir"""
        target = Path(target_dir)
        target.mkdir(parents=True, exist_ok=True)

        remote = self.store.current(identifier)
        downloaded = False
        if self.store.is_fresh(identifier, remote):
            logger.info("缓存命中，跳过下载: %s", identifier, extra={"identifier": identifier})
        else:
            logger.info("下载制品: %s", identifier, extra={"identifier": identifier})
            self._download(identifier, remote)
            downloaded = True

        self._extract(identifier, target)
        return FetchResult(
            identifier=identifier, target=str(target),
            checksum=remote, downloaded=downloaded,
        )

    def fetch_many(self, packages: list[Package], max_workers: int = 1) -> list[FetchResult]:
        """批量拉取，结果与输入顺序一致

        同一 identifier 的包在同一个 worker 内串行执行，保证缓存条目写入不交错；
        不同 identifier 之间可并行。
        """
        groups: OrderedDict[str, list[int]] = OrderedDict()
        for i, pkg in enumerate(packages):
            groups.setdefault(pkg.identifier, []).append(i)

        results: list[FetchResult | None] = [None] * len(packages)

        def run_group(indexes: list[int]) -> None:
            for i in indexes:
                results[i] = self.fetch(packages[i].identifier, packages[i].target)

        if max_workers <= 1 or len(groups) <= 1:
            for indexes in groups.values():
                run_group(indexes)
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = [executor.submit(run_group, idx) for idx in groups.values()]
                for future in futures:
                    future.result()

        return [r for r in results if r is not None]

    def _download(self, identifier: str, remote: str) -> None:
        dest = self.tarball_path(identifier)
        dest.parent.mkdir(parents=True, exist_ok=True)
        url = package_url(self.store.catalog_url, identifier, TARBALL_SUFFIX)

        fd, tmp = tempfile.mkstemp(dir=str(dest.parent), suffix=".part")
        os.close(fd)
        try:
            self.store.transport.download(url, Path(tmp))
        except NETWORK_ERRORS as e:
            Path(tmp).unlink(missing_ok=True)
            raise FetchError(f"下载失败: {url} - {e}", identifier=identifier) from e

        # 先作废旧校验和再替换 tar 包，崩溃后重试必然走未命中分支
        self.store.invalidate(identifier)
        os.replace(tmp, str(dest))
        if remote:
            self.store.record(identifier, remote)
        logger.info("  已缓存: %s", dest)

    def _extract(self, identifier: str, target: Path) -> None:
        tarball = self.tarball_path(identifier)
        if not tarball.is_file():
            raise ExtractionError(f"缓存 tar 包不存在: {tarball}", identifier=identifier)
        try:
            with tarfile.open(str(tarball), "r:*") as tf:
                tf.extractall(path=str(target), filter="data")  # noqa: S202
        except (OSError, tarfile.TarError) as e:
            # 损坏的缓存包在下次构建时重新下载
            self.store.invalidate(identifier)
            raise ExtractionError(f"解压失败 {identifier}: {e}", identifier=identifier) from e
        logger.info("  已解压: %s -> %s", identifier, target)
