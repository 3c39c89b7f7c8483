"""核心数据模型

构建阶段（制品、扩展解析）与运行阶段（进程托管、布局清单）的数据类集中定义。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

# =========================================================================
# 制品
# =========================================================================


@dataclass
class Package:
    """单个待安装制品

    identifier 唯一决定远端 tar 包与校验和地址；同一 identifier 可安装到
    不同 target，共用同一份缓存 tar 包。
    """

    identifier: str
    target: str


@dataclass
class FetchResult:
    """一次 fetch 的结果"""

    identifier: str
    target: str
    checksum: str = ""
    downloaded: bool = False


# =========================================================================
# 结果类型（致命 / 降级 / 成功）
# =========================================================================


class OutcomeStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


@dataclass
class Outcome:
    """单项操作的结果，降级路径显式可见而不是被静默吞掉"""

    subject: str
    status: OutcomeStatus = OutcomeStatus.OK
    message: str = ""
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK

    @classmethod
    def degraded(cls, subject: str, message: str, error: Exception | None = None) -> Outcome:
        return cls(subject=subject, status=OutcomeStatus.DEGRADED, message=message, error=error)

    @classmethod
    def fatal(cls, subject: str, message: str, error: Exception | None = None) -> Outcome:
        return cls(subject=subject, status=OutcomeStatus.FATAL, message=message, error=error)


# =========================================================================
# 扩展依赖图
# =========================================================================


@dataclass
class ExtensionGraph:
    """扩展 → 原生库依赖名，原生库依赖名 → 安装路径

    dependencies 中没有条目的扩展视为叶子节点（无原生依赖）。
    """

    dependencies: dict[str, str] = field(default_factory=dict)
    locations: dict[str, str] = field(default_factory=dict)

    def native_dependency(self, extension: str) -> tuple[str, str] | None:
        """返回 (依赖名, 安装路径)；无依赖或依赖未声明安装路径时返回 None"""
        dep = self.dependencies.get(extension)
        if not dep:
            return None
        location = self.locations.get(dep)
        if not location:
            return None
        return dep, location


class InstalledLibs:
    """去重且保持插入顺序的原生库安装路径集合"""

    def __init__(self, paths: list[str] | None = None) -> None:
        self._paths: list[str] = []
        self._seen: set[str] = set()
        for p in paths or []:
            self.add(p)

    def add(self, path: str) -> bool:
        """加入路径，已存在时返回 False"""
        if path in self._seen:
            return False
        self._seen.add(path)
        self._paths.append(path)
        return True

    def __contains__(self, path: object) -> bool:
        return path in self._seen

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._paths))

    def __len__(self) -> int:
        return len(self._paths)

    def to_list(self) -> list[str]:
        return list(self._paths)


@dataclass
class ResolveReport:
    """扩展解析报告

    resolve() 成功返回并不代表每个扩展都已安装，需检查 degraded。
    """

    outcomes: list[Outcome] = field(default_factory=list)
    installed_libs: InstalledLibs = field(default_factory=InstalledLibs)
    stubs_written: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> list[Outcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.DEGRADED]


# =========================================================================
# 进程托管
# =========================================================================


class SupervisorState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    FATAL = "fatal"


@dataclass
class ProcessSpec:
    """被托管进程定义"""

    name: str
    command: list[str]
    cwd: str = ""
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class Sizing:
    """并发/内存容量决策"""

    concurrency: int
    memory_limit: str = ""
    source: str = "oracle"


@dataclass
class SupervisorResult:
    """托管结束时的报告"""

    exited: str
    returncode: int | None
    status: int = 1


# =========================================================================
# 布局清单
# =========================================================================


@dataclass
class LayoutManifest:
    """构建产物布局清单，构建阶段写入，运行阶段读取"""

    framework: str = "classic"
    document_root: str = ""
    index_document: str = "index.php"
    log_files: list[str] = field(default_factory=list)
    installed_libs: list[str] = field(default_factory=list)
    processes: dict[str, str] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
