"""双进程托管

状态机: IDLE → STARTING → RUNNING → EXITED → FATAL

- STARTING: 执行准备回调（容量估算、生成配置），创建单槽汇合通道
- RUNNING:  两个守护进程作为独立 OS 进程并行运行；每个进程退出时由各自的
            监视线程把进程名投递到汇合通道，且只投递一次
- EXITED:   阻塞等待汇合通道（不设超时），首个收到的进程名决定结果
- FATAL:    报告退出的进程并以状态 1 结束；不主动终止存活的另一个进程

任一进程退出（包括正常退出）都视为整体失败，不存在部分降级状态。
"""

from __future__ import annotations

import logging
import os
import queue
import subprocess
import sys
import threading
import time
from pathlib import Path
from typing import IO, Callable, Protocol

from runpack.core.exceptions import ValidationError
from runpack.core.models import ProcessSpec, SupervisorResult, SupervisorState

logger = logging.getLogger(__name__)

EXIT_STATUS = 1


class Rendezvous:
    """单槽汇合通道：先写者胜出，后续写入被接受但丢弃，永不阻塞写方"""

    def __init__(self) -> None:
        self._slot: queue.Queue[str] = queue.Queue(maxsize=1)

    def post(self, name: str) -> bool:
        try:
            self._slot.put_nowait(name)
        except queue.Full:
            logger.debug("汇合通道已有结果，忽略: %s", name)
            return False
        return True

    def wait(self) -> str:
        return self._slot.get()


class ProcessHandle(Protocol):
    pid: int

    def wait(self) -> int: ...

    def poll(self) -> int | None: ...


class ProcessLauncher(Protocol):
    def launch(self, spec: ProcessSpec) -> ProcessHandle: ...


class PopenLauncher:
    """默认启动器：子进程继承 stdout/stderr"""

    def launch(self, spec: ProcessSpec) -> ProcessHandle:
        env = {**os.environ, **spec.env}
        return subprocess.Popen(spec.command, cwd=spec.cwd or None, env=env)  # noqa: S603


class SupervisedProcess:
    """被托管进程：启动后由监视线程等待退出并投递进程名"""

    def __init__(self, spec: ProcessSpec) -> None:
        self.spec = spec
        self.name = spec.name
        self.handle: ProcessHandle | None = None
        self.returncode: int | None = None

    def start(self, launcher: ProcessLauncher, rendezvous: Rendezvous) -> None:
        try:
            self.handle = launcher.launch(self.spec)
        except OSError as e:
            # 无法启动等同于立即退出
            logger.error("进程启动失败: %s (%s)", self.name, e, extra={"process": self.name})
            rendezvous.post(self.name)
            return
        logger.info("已启动: %s (pid=%d)", self.name, self.handle.pid, extra={"process": self.name})
        threading.Thread(
            target=self._watch, args=(self.handle, rendezvous),
            name=f"watch-{self.name}", daemon=True,
        ).start()

    def _watch(self, handle: ProcessHandle, rendezvous: Rendezvous) -> None:
        self.returncode = handle.wait()
        logger.info(
            "进程结束: %s (rc=%s)", self.name, self.returncode,
            extra={"process": self.name},
        )
        rendezvous.post(self.name)


class LogTailer:
    """多文件日志跟随输出（尽力而为，与进程生命周期不同步）

    文件尚未创建时等待其出现；文件被截断时从头重新读取；
    文件被轮转（路径指向新 inode）时关闭旧句柄并按路径重新打开。
    """

    def __init__(
        self,
        paths: list[str | Path],
        stream: IO[str] | None = None,
        interval: float = 0.2,
    ) -> None:
        self.paths = [Path(p) for p in paths]
        self.stream = stream or sys.stdout
        self.interval = interval
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        for path in self.paths:
            t = threading.Thread(target=self._follow, args=(path,), name=f"tail-{path.name}", daemon=True)
            t.start()
            self._threads.append(t)

    def stop(self, timeout: float = 1.0) -> None:
        self._stop.set()
        for t in self._threads:
            t.join(timeout)

    def _follow(self, path: Path) -> None:
        while not self._stop.is_set():
            if not path.is_file():
                self._stop.wait(self.interval)
                continue
            try:
                self._drain(path)
            except OSError as e:
                logger.debug("跟随日志失败 %s: %s", path, e)
                self._stop.wait(self.interval)

    def _drain(self, path: Path) -> None:
        with open(path, encoding="utf-8", errors="replace") as f:
            inode = os.fstat(f.fileno()).st_ino
            while not self._stop.is_set():
                line = f.readline()
                if line:
                    self.stream.write(line)
                    self.stream.flush()
                    continue
                try:
                    st = path.stat()
                except FileNotFoundError:
                    return
                if st.st_ino != inode:
                    # 已轮转，由 _follow 重新打开新文件
                    return
                if st.st_size < f.tell():
                    f.seek(0)
                    continue
                self._stop.wait(self.interval)


class ProcessSupervisor:
    """双进程托管器，唯一出口是 FATAL"""

    def __init__(
        self,
        specs: list[ProcessSpec],
        *,
        prepare: Callable[[], None] | None = None,
        log_files: list[str | Path] | None = None,
        launcher: ProcessLauncher | None = None,
        log_stream: IO[str] | None = None,
    ) -> None:
        names = [s.name for s in specs]
        if len(specs) != 2 or len(set(names)) != 2:
            raise ValidationError(f"必须恰好托管两个不同名进程，实际: {names}")
        self.processes = {s.name: SupervisedProcess(s) for s in specs}
        self.prepare = prepare
        self.launcher = launcher or PopenLauncher()
        self.tailer = LogTailer(log_files or [], stream=log_stream)
        self.state = SupervisorState.IDLE
        self.exited: str = ""

    def _transition(self, state: SupervisorState) -> None:
        logger.debug("supervisor: %s -> %s", self.state.value, state.value)
        self.state = state

    def run(self) -> SupervisorResult:
        """启动两个进程并阻塞到其中任一退出"""
        self._transition(SupervisorState.STARTING)
        if self.prepare is not None:
            self.prepare()
        rendezvous = Rendezvous()

        self.tailer.start()
        started = time.monotonic()
        for proc in self.processes.values():
            proc.start(self.launcher, rendezvous)
        self._transition(SupervisorState.RUNNING)

        name = rendezvous.wait()
        self.exited = name
        self._transition(SupervisorState.EXITED)

        proc = self.processes[name]
        logger.error(
            "Process exited: %s (rc=%s, 运行 %.1f 秒)",
            name, proc.returncode, time.monotonic() - started,
            extra={"process": name},
        )
        self.tailer.stop()
        self._transition(SupervisorState.FATAL)
        return SupervisorResult(exited=name, returncode=proc.returncode, status=EXIT_STATUS)
