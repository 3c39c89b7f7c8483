"""统一异常体系

所有业务异常继承 RunpackError，替代散落的 ValueError / RuntimeError。
CLI 层据此输出带前缀的错误行并以非零状态退出。
"""

from __future__ import annotations


class RunpackError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(RunpackError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(RunpackError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class DependencyError(RunpackError):
    """制品拉取或解压失败"""

    code = "DEPENDENCY_ERROR"

    def __init__(self, message: str, identifier: str = "") -> None:
        super().__init__(message)
        self.identifier = identifier


class FetchError(DependencyError):
    """制品下载失败（网络错误、HTTP 错误）"""

    code = "FETCH_ERROR"


class ExtractionError(DependencyError):
    """缓存 tar 包缺失或损坏"""

    code = "EXTRACTION_ERROR"


class LockfileError(RunpackError):
    """存在 composer.json 但缺少 composer.lock"""

    code = "LOCKFILE_ERROR"


class PluginError(RunpackError):
    """框架插件无法解析或执行失败"""

    code = "PLUGIN_ERROR"


class ExecutionError(RunpackError):
    """外部命令执行失败"""

    code = "EXECUTION_ERROR"
