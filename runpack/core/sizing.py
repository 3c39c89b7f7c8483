"""进程并发容量决策

根据内存预算和单 worker 内存上限估算 FastCGI worker 数量，下限为 1。
运维可通过 WEB_CONCURRENCY 直接指定并发数，跳过估算。
"""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from typing import Protocol

from runpack.core.exceptions import ValidationError
from runpack.core.models import Sizing
from runpack.utils.shell import CommandExecutor, run_cmd

logger = logging.getLogger(__name__)

DEFAULT_MEMORY_LIMIT = "128M"

_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}
_SIZE_RE = re.compile(r"^\s*(-?\d+)\s*([KMG]?)B?\s*$", re.IGNORECASE)
_INI_RE = re.compile(r"^\s*memory_limit\s*=\s*\"?([^\"\s;]+)\"?", re.MULTILINE)


def parse_size(value: str) -> int:
    """解析 php.ini 风格的容量字符串（128M / 1G / 524288 / -1）"""
    m = _SIZE_RE.match(str(value))
    if not m:
        raise ValidationError(f"无法解析容量: {value!r}")
    number = int(m.group(1))
    if number < 0:
        return -1
    return number * _UNITS[m.group(2).upper()]


def read_memory_limit(path: str | Path) -> str:
    """从 ini 文件读取 memory_limit，最后一次出现的值生效"""
    p = Path(path)
    if not p.is_file():
        return ""
    matches = _INI_RE.findall(p.read_text(encoding="utf-8", errors="replace"))
    return matches[-1] if matches else ""


class SizingOracle(Protocol):
    """容量估算协议"""

    def size(self, config_path: str, docroot: str, memory_budget: str) -> Sizing:
        ...


class IniSizingOracle:
    """默认估算: worker 数 = 内存预算 // memory_limit

    memory_limit 取自运行时 php.ini，文档根目录下的 .user.ini 可覆盖。
    """

    def size(self, config_path: str, docroot: str, memory_budget: str) -> Sizing:
        limit = (
            read_memory_limit(Path(docroot) / ".user.ini")
            or read_memory_limit(config_path)
            or DEFAULT_MEMORY_LIMIT
        )
        limit_bytes = parse_size(limit)
        budget_bytes = parse_size(memory_budget)
        if limit_bytes <= 0 or budget_bytes <= 0:
            concurrency = 1
        else:
            concurrency = max(1, budget_bytes // limit_bytes)
        return Sizing(concurrency=concurrency, memory_limit=limit)


class CommandSizingOracle:
    """调用外部估算程序: <cmd> <config_path> <docroot> <budget>

    程序需在 stdout 输出 "<并发数> <memory_limit>"。
    """

    def __init__(self, command: str, executor: CommandExecutor | None = None) -> None:
        self.command = command
        self.executor = executor

    def size(self, config_path: str, docroot: str, memory_budget: str) -> Sizing:
        args = [*shlex.split(self.command), config_path, docroot, memory_budget]
        r = run_cmd(args, label="sizing", executor=self.executor)
        parts = r.stdout.split()
        if not parts or not parts[0].isdigit():
            raise ValidationError(f"估算程序输出无法解析: {r.stdout.strip()!r}")
        limit = parts[1] if len(parts) > 1 else ""
        return Sizing(concurrency=max(1, int(parts[0])), memory_limit=limit)


def decide_sizing(
    oracle: SizingOracle,
    config_path: str,
    docroot: str,
    memory_budget: str,
    override: str | None = None,
) -> Sizing:
    """运维指定的并发数优先，否则调用估算器"""
    if override:
        if not override.strip().isdigit() or int(override) < 1:
            raise ValidationError(f"WEB_CONCURRENCY 必须是正整数: {override!r}")
        logger.info("使用指定并发数: %s", override)
        return Sizing(concurrency=int(override), source="override")

    sizing = oracle.size(config_path, docroot, memory_budget)
    logger.info(
        "估算并发数: %d (内存预算 %s, 单 worker 上限 %s)",
        sizing.concurrency, memory_budget, sizing.memory_limit or "未知",
    )
    return sizing
