"""构建环境变量导入

env 目录中每个文件对应一个变量（文件名为变量名，内容为值）。
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DENYLIST = frozenset(("PATH", "GIT_DIR", "CPATH", "CPPATH", "LD_PRELOAD", "LIBRARY_PATH"))


def load_env_dir(env_dir: str | Path | None) -> dict[str, str]:
    if not env_dir:
        return {}
    d = Path(env_dir)
    if not d.is_dir():
        return {}
    env: dict[str, str] = {}
    for p in sorted(d.iterdir()):
        if not p.is_file() or p.name in DENYLIST:
            continue
        env[p.name] = p.read_text(encoding="utf-8", errors="replace").strip()
    if env:
        logger.info("已导入 %d 个环境变量: %s", len(env), ", ".join(env))
    return env
