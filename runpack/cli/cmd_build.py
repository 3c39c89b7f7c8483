"""CLI - 构建阶段命令: detect / compile / release"""

from __future__ import annotations

import click

from runpack.cli import _cfg
from runpack.core.exceptions import PluginError
from runpack.services.compile_service import CompileService


def register(group: click.Group) -> None:
    group.add_command(detect)
    group.add_command(compile_app)
    group.add_command(release)


@click.command()
@click.argument("build_dir", type=click.Path(exists=True, file_okay=False))
def detect(build_dir: str) -> None:
    """检测应用框架，匹配时输出框架名，否则以状态 1 退出"""
    try:
        name = CompileService(_cfg()).detect(build_dir)
    except PluginError:
        click.echo("no")
        raise SystemExit(1) from None
    click.echo(f"PHP ({name})")


@click.command(name="compile")
@click.argument("build_dir", type=click.Path(exists=True, file_okay=False))
@click.argument("cache_dir", type=click.Path(file_okay=False))
@click.argument("env_dir", required=False, type=click.Path(file_okay=False))
def compile_app(build_dir: str, cache_dir: str, env_dir: str | None) -> None:
    """拉取运行时与扩展，安装依赖并生成运行时布局"""
    report = CompileService(_cfg()).compile(build_dir, cache_dir, env_dir)

    downloaded = sum(1 for r in report.fetched if r.downloaded)
    click.echo(f"框架: {report.framework}")
    click.echo(f"制品: {len(report.fetched)} 个（下载 {downloaded}，缓存命中 {len(report.fetched) - downloaded}）")
    for o in report.extensions.outcomes:
        mark = "OK" if o.ok else "SKIP"
        click.echo(f"  [{mark:4s}] ext-{o.subject}: {o.message}")
    if report.extensions.degraded:
        click.echo("注意: 部分扩展未安装，构建继续。")


@click.command()
@click.argument("build_dir", type=click.Path(exists=True, file_okay=False))
def release(build_dir: str) -> None:
    """输出默认进程类型（YAML）"""
    click.echo(CompileService(_cfg()).release(build_dir), nl=False)
