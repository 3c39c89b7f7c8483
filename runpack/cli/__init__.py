"""runpack 命令行接口

CLI 按阶段拆分为子模块，每个模块注册自己的命令到 main group。
业务异常统一输出为带 "!     ERROR:" 前缀的错误行并以状态 1 退出。
"""

import click

from runpack import __version__
from runpack.core.config import DEFAULT_CONFIG_FILE, Config, get_config, init_config
from runpack.core.exceptions import RunpackError
from runpack.utils.logger import setup_logging_from_env

ERROR_PREFIX = " !     ERROR:"


class RunpackGroup(click.Group):
    """把 RunpackError 转换为前缀错误行 + 非零退出"""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except RunpackError as e:
            click.echo(f"{ERROR_PREFIX} {e}", err=True)
            ctx.exit(1)


def _cfg() -> Config:
    """获取当前配置的快捷方式"""
    return get_config()


@click.group(cls=RunpackGroup)
@click.version_option(version=__version__)
@click.option(
    "--config", "-c", "config_path", default=DEFAULT_CONFIG_FILE,
    envvar="RUNPACK_CONFIG", help="runpack 配置文件路径",
)
def main(config_path: str) -> None:
    """runpack - PHP 应用运行时构建与进程托管"""
    setup_logging_from_env()
    init_config(config_path)


# 注册各阶段子命令
from runpack.cli.cmd_build import register as _reg_build  # noqa: E402
from runpack.cli.cmd_deps import register as _reg_deps  # noqa: E402
from runpack.cli.cmd_run import register as _reg_run  # noqa: E402

_reg_build(main)
_reg_deps(main)
_reg_run(main)
