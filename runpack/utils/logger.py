"""runpack 日志配置

构建阶段与运行阶段共用一套日志配置，支持人类可读文本和结构化 JSON 两种格式。
构建日志输出到 stderr，避免与 release 等命令写到 stdout 的数据混在一起。
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

# 通过 logger.info(..., extra={...}) 附加的上下文字段，JSON 格式下原样输出
_CONTEXT_FIELDS = ("identifier", "process", "extension", "outcome")


class JSONFormatter(logging.Formatter):
    """结构化 JSON 日志格式器，便于日志平台消费

    输出格式:
        {
            "timestamp": "2024-01-01T12:00:00+00:00",
            "level": "INFO",
            "logger": "runpack.core.fetcher",
            "message": "缓存命中: php-5.4.17",
            "identifier": "php-5.4.17" (仅在 extra 中提供时)
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_entry[key] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """配置根日志器

    参数:
        level: 日志级别字符串（DEBUG, INFO, WARNING, ERROR）
        json_output: 为 True 时使用 JSON 格式，否则使用文本格式

    说明:
        - 重复调用时先清理已有 handlers，避免重复输出
        - 文本格式模仿构建日志的缩进风格，不带时间戳
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("-----> [%(levelname)s] %(message)s"))
    root.addHandler(handler)


def setup_logging_from_env() -> None:
    """按环境变量 RUNPACK_LOG_LEVEL / RUNPACK_LOG_JSON 配置日志"""
    setup_logging(
        level=os.getenv("RUNPACK_LOG_LEVEL", "INFO"),
        json_output=os.getenv("RUNPACK_LOG_JSON", "") == "1",
    )
