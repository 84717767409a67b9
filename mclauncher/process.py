"""
Game process supervision.

A ProcessHandle owns one spawned game process. Its status moves from
Starting to Running on spawn, then to exactly one terminal state: Exited,
Killed (terminated by a signal) or Failed (its exit could not be observed).
"""

import asyncio
import collections
import enum
import logging
import os
import pathlib
import sys
import uuid
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Mapping, Optional, Sequence

import aiofiles
import aiofiles.os

from .errors import FilesystemError, LaunchError, NoProcessError, ProcessWaitError
from .models import Account

log = logging.getLogger(__name__)

RECENT_LINES = 500
READ_SIZE = 64 * 1024
MAX_LINE_LENGTH = 1024 * 1024

LineCallback = Callable[[str, str], None]


class ProcessState(enum.Enum):
    STARTING = 'starting'
    RUNNING = 'running'
    EXITED = 'exited'
    KILLED = 'killed'
    FAILED = 'failed'


@dataclass(frozen=True)
class ProcessStatus:
    state: ProcessState
    code: Optional[int] = None
    reason: Optional[str] = None

    @classmethod
    def exited(cls, code: int) -> 'ProcessStatus':
        return cls(ProcessState.EXITED, code=code)

    @classmethod
    def killed(cls, code: Optional[int] = None) -> 'ProcessStatus':
        return cls(ProcessState.KILLED, code=code)

    @classmethod
    def failed(cls, reason: str) -> 'ProcessStatus':
        return cls(ProcessState.FAILED, reason=reason)

    @classmethod
    def from_returncode(cls, returncode: int) -> 'ProcessStatus':
        # asyncio reports death by signal N as -N on POSIX.
        if returncode < 0:
            return cls.killed(returncode)
        return cls.exited(returncode)

    @property
    def is_terminal(self) -> bool:
        return self.state in (ProcessState.EXITED, ProcessState.KILLED, ProcessState.FAILED)

    def __str__(self) -> str:
        if self.state == ProcessState.EXITED:
            return f"Exited({self.code})"
        if self.state == ProcessState.FAILED:
            return f"Failed({self.reason})"
        return self.state.name.capitalize()


STARTING = ProcessStatus(ProcessState.STARTING)
RUNNING = ProcessStatus(ProcessState.RUNNING)


class ProcessHandle:
    """Owns one game process. Create it with `await ProcessHandle.spawn(...)`."""

    def __init__(self, executable: str, args: Sequence[str], working_dir: pathlib.Path, account: Account):
        self.executable = str(executable)
        self.args = list(args)
        self.working_dir = pathlib.Path(working_dir)
        self.account = account
        self.handle_id: Optional[str] = None
        self._status = STARTING
        self._pid: Optional[int] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._drain_tasks: List[asyncio.Task] = []
        self._recent: Deque[str] = collections.deque(maxlen=RECENT_LINES)
        self._on_line: Optional[LineCallback] = None
        self._state_lock = asyncio.Lock()

    @classmethod
    async def spawn(
        cls,
        executable: str,
        args: Sequence[str],
        working_dir: pathlib.Path,
        account: Account,
        env: Optional[Mapping[str, str]] = None,
        on_line: Optional[LineCallback] = None,
    ) -> 'ProcessHandle':
        handle = cls(executable, args, working_dir, account)
        handle._on_line = on_line
        await handle._start(env)
        return handle

    async def _start(self, env: Optional[Mapping[str, str]]) -> None:
        log.info(f"Starting game process with Java: {self.executable}")
        log.info(f"Working directory: {self.working_dir}")

        process_env = dict(os.environ)
        if env:
            process_env.update(env)
        if sys.platform == 'darwin':
            process_env.setdefault('OBJC_DISABLE_INITIALIZE_FORK_SAFETY', 'YES')

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *self.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.working_dir),
                env=process_env,
            )
        except (OSError, ValueError) as e:
            self._status = ProcessStatus.failed(str(e))
            raise LaunchError(f"Failed to start game process: {e}") from e

        self._process = process
        self._pid = process.pid
        self._drain_tasks = [
            asyncio.create_task(self._drain(process.stdout, 'stdout')),
            asyncio.create_task(self._drain(process.stderr, 'stderr')),
        ]
        self._status = RUNNING
        log.info(f"Game process started with PID: {self._pid}")

    async def _drain(self, stream: Optional[asyncio.StreamReader], name: str) -> None:
        # Lines may be longer than the StreamReader limit, so no readline().
        if stream is None:
            return
        pending = b''
        while True:
            chunk = await stream.read(READ_SIZE)
            if not chunk:
                break
            pending += chunk
            *lines, pending = pending.split(b'\n')
            for raw in lines:
                self._forward(name, raw)
            if len(pending) > MAX_LINE_LENGTH:
                self._forward(name, pending)
                pending = b''
        if pending:
            self._forward(name, pending)

    def _forward(self, name: str, raw: bytes) -> None:
        line = raw.decode(errors='replace').rstrip('\r')
        self._recent.append(line)
        if name == 'stderr':
            log.error(f"[Minecraft STDERR] {line}")
        else:
            log.info(f"[Minecraft STDOUT] {line}")
        if self._on_line is not None:
            try:
                self._on_line(name, line)
            except Exception:
                log.exception(f"Output callback failed on {name} line")

    async def _finish_drains(self) -> None:
        if self._drain_tasks:
            await asyncio.gather(*self._drain_tasks, return_exceptions=True)

    async def _record(self, status: ProcessStatus) -> ProcessStatus:
        async with self._state_lock:
            # A concurrent kill() and wait() both observe the exit, first one wins.
            if not self._status.is_terminal:
                self._status = status
            self._process = None
            self._pid = None
            return self._status

    @property
    def pid(self) -> Optional[int]:
        return self._pid

    def status(self) -> ProcessStatus:
        return self._status

    def is_running(self) -> bool:
        return self._status == RUNNING

    def recent_output(self) -> List[str]:
        """The last lines written by the process on stdout and stderr."""
        return list(self._recent)

    async def _observe_exit(self, process: asyncio.subprocess.Process) -> ProcessStatus:
        try:
            returncode = await process.wait()
        except Exception as e:
            await self._record(ProcessStatus.failed(f"Wait failed: {e}"))
            log.error(f"Failed to wait for process: {e}")
            raise ProcessWaitError(f"Failed to wait for process: {e}") from e
        await self._finish_drains()
        status = await self._record(ProcessStatus.from_returncode(returncode))
        log.info(f"Process exited with status: {status}")
        return status

    async def kill(self) -> ProcessStatus:
        """Terminates the process and blocks until it has exited."""
        process = self._process
        if process is None:
            raise NoProcessError("No process to kill")
        log.info(f"Killing game process {process.pid}")
        try:
            process.kill()
        except ProcessLookupError:
            log.warning("Process already exited before it could be killed")
        return await self._observe_exit(process)

    async def wait(self) -> ProcessStatus:
        """Blocks until the process terminates on its own."""
        process = self._process
        if process is None:
            raise NoProcessError("No process to wait for")
        return await self._observe_exit(process)

    @property
    def log_path(self) -> pathlib.Path:
        return self.working_dir / 'logs' / 'latest.log'

    @property
    def crash_reports_dir(self) -> pathlib.Path:
        return self.working_dir / 'crash-reports'

    async def read_logs(self) -> str:
        try:
            async with aiofiles.open(self.log_path, 'r', encoding='utf-8', errors='replace') as f:
                return await f.read()
        except FileNotFoundError:
            return "No logs available yet"
        except OSError as e:
            raise FilesystemError(f"Failed to read logs: {e}") from e

    async def list_crash_reports(self) -> List[pathlib.Path]:
        """Crash reports of this instance, most recent first."""
        try:
            names = await aiofiles.os.listdir(self.crash_reports_dir)
        except OSError as e:
            raise FilesystemError(f"Failed to read crash reports directory: {e}") from e

        reports = []
        for name in names:
            path = self.crash_reports_dir / name
            if path.suffix == '.txt' and await aiofiles.os.path.isfile(path):
                try:
                    mtime = (await aiofiles.os.stat(path)).st_mtime
                except OSError:
                    mtime = 0.0
                reports.append((mtime, path))
        reports.sort(key=lambda item: item[0], reverse=True)
        return [path for _, path in reports]

    async def read_crash_report(self, path: pathlib.Path) -> str:
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8', errors='replace') as f:
                return await f.read()
        except OSError as e:
            raise FilesystemError(f"Failed to read crash report: {e}") from e

    async def latest_crash_report(self) -> Optional[str]:
        reports = await self.list_crash_reports()
        if not reports:
            return None
        return await self.read_crash_report(reports[0])


class ProcessRegistry:
    """Live handles indexed by generated ids, for lookups from a command layer."""

    def __init__(self):
        self._handles: Dict[str, ProcessHandle] = {}
        self._lock = asyncio.Lock()

    async def add(self, handle: ProcessHandle) -> str:
        handle_id = uuid.uuid4().hex
        async with self._lock:
            self._handles[handle_id] = handle
        handle.handle_id = handle_id
        return handle_id

    async def get(self, handle_id: str) -> Optional[ProcessHandle]:
        async with self._lock:
            return self._handles.get(handle_id)

    async def remove(self, handle_id: str) -> Optional[ProcessHandle]:
        async with self._lock:
            return self._handles.pop(handle_id, None)

    async def active(self) -> List[ProcessHandle]:
        """Handles still running, finished ones are dropped from the registry."""
        async with self._lock:
            for handle_id in [k for k, h in self._handles.items() if h.status().is_terminal]:
                del self._handles[handle_id]
            return list(self._handles.values())

    async def kill(self, handle_id: str) -> ProcessStatus:
        handle = await self.remove(handle_id)
        if handle is None:
            raise NoProcessError(f"No process registered under id {handle_id}")
        return await handle.kill()

    async def kill_all(self) -> int:
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        killed = 0
        for handle in handles:
            try:
                await handle.kill()
                killed += 1
            except (NoProcessError, ProcessWaitError) as e:
                log.warning(f"Could not kill process {handle.handle_id}: {e}")
        return killed
