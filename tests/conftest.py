"""公共测试夹具 - 内存制品仓库替代 HTTP"""

from __future__ import annotations

import hashlib
import io
import tarfile
import urllib.error
from pathlib import Path

import pytest

from runpack.core.checksum import ChecksumStore
from runpack.core.fetcher import ArtifactFetcher

CATALOG_URL = "https://catalog.test"


class FakeCatalog:
    """实现 CatalogTransport 协议的内存仓库，记录每次请求"""

    def __init__(self) -> None:
        self.checksums: dict[str, str] = {}
        self.tarballs: dict[str, bytes] = {}
        self.downloads: list[str] = []
        self.checksum_reads: list[str] = []
        self.checksum_offline = False
        self.download_offline = False

    @staticmethod
    def _identifier(url: str, suffix: str) -> str:
        return url.split("/package/", 1)[1].removesuffix(suffix)

    def publish(self, identifier: str, files: dict[str, str], checksum: str | None = None) -> str:
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:gz") as tf:
            for name, content in files.items():
                data = content.encode("utf-8")
                info = tarfile.TarInfo(name)
                info.size = len(data)
                tf.addfile(info, io.BytesIO(data))
        payload = buf.getvalue()
        self.tarballs[identifier] = payload
        self.checksums[identifier] = checksum if checksum is not None else hashlib.md5(payload).hexdigest()  # noqa: S324
        return self.checksums[identifier]

    def read_text(self, url: str) -> str:
        identifier = self._identifier(url, ".md5")
        self.checksum_reads.append(identifier)
        if self.checksum_offline:
            raise urllib.error.URLError("network unreachable")
        if identifier not in self.checksums:
            raise urllib.error.URLError(f"not found: {identifier}")
        return self.checksums[identifier] + "\n"

    def download(self, url: str, dest: Path) -> None:
        identifier = self._identifier(url, ".tgz")
        self.downloads.append(identifier)
        if self.download_offline or identifier not in self.tarballs:
            raise urllib.error.URLError(f"cannot download: {identifier}")
        dest.write_bytes(self.tarballs[identifier])


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture()
def store(tmp_path: Path, catalog: FakeCatalog) -> ChecksumStore:
    return ChecksumStore(tmp_path / "cache", CATALOG_URL, transport=catalog)


@pytest.fixture()
def fetcher(store: ChecksumStore) -> ArtifactFetcher:
    return ArtifactFetcher(store)
