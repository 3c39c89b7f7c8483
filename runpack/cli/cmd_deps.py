"""CLI - 制品拉取与扩展解析命令"""

from __future__ import annotations

import click

from runpack.cli import _cfg
from runpack.core.checksum import ChecksumStore
from runpack.core.fetcher import ArtifactFetcher
from runpack.core.models import ExtensionGraph
from runpack.core.resolver import ExtensionResolver


def register(group: click.Group) -> None:
    group.add_command(fetch)
    group.add_command(ext)


def _fetcher(cache_dir: str) -> ArtifactFetcher:
    cfg = _cfg()
    return ArtifactFetcher(ChecksumStore(cache_dir, cfg.catalog_url, subdir=cfg.cache_subdir))


@click.command()
@click.argument("identifier")
@click.argument("target_dir", type=click.Path(file_okay=False))
@click.option("--cache-dir", required=True, help="跨构建保留的缓存根目录")
def fetch(identifier: str, target_dir: str, cache_dir: str) -> None:
    """拉取单个制品（校验和未变化时复用缓存）并解压到目标目录"""
    result = _fetcher(cache_dir).fetch(identifier, target_dir)
    state = "下载" if result.downloaded else "缓存命中"
    click.echo(f"就绪 [{state}]: {identifier} -> {result.target}")


@click.command()
@click.argument("extensions", nargs=-1, required=True)
@click.option("--runtime-root", required=True, help="PHP 运行时根目录")
@click.option("--cache-dir", required=True, help="跨构建保留的缓存根目录")
def ext(extensions: tuple[str, ...], runtime_root: str, cache_dir: str) -> None:
    """安装扩展（未知扩展跳过，不中断）"""
    cfg = _cfg()
    resolver = ExtensionResolver(
        _fetcher(cache_dir),
        ExtensionGraph(dict(cfg.extension_dependencies), dict(cfg.dependency_locations)),
        runtime_root,
        cfg.php_api,
    )
    report = resolver.resolve(list(extensions))
    for o in report.outcomes:
        mark = "OK" if o.ok else "SKIP"
        click.echo(f"  [{mark:4s}] {o.subject}: {o.message}")
    for lib in report.installed_libs:
        click.echo(f"  lib: {lib}")
