"""CLI - 运行阶段命令: boot"""

from __future__ import annotations

import os

import click

from runpack.cli import _cfg
from runpack.services.boot_service import BootService


def register(group: click.Group) -> None:
    group.add_command(boot)


@click.command()
@click.option("--app-root", default=None, help="应用根目录（默认取配置 app_root）")
@click.option("--port", type=int, default=None, envvar="PORT", help="监听端口")
@click.option("--memory", "memory_budget", default=None, help="内存预算，如 512M")
def boot(app_root: str | None, port: int | None, memory_budget: str | None) -> None:
    """启动 web 服务器与 PHP-FPM，任一进程退出即以状态 1 结束"""
    cfg = _cfg()
    result = BootService(cfg).boot(
        app_root or cfg.app_root,
        port=port,
        memory_budget=memory_budget,
        concurrency=os.getenv("WEB_CONCURRENCY") or None,
    )
    click.echo(f"Process exited: {result.exited}", err=True)
    raise SystemExit(result.status)
