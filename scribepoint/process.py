"""
scribepoint.process - Named external process supervision.

ProcessSupervisor starts external tools under logical names ("record-audio",
"transcribe-fast", ...) and guarantees at most one live process per name:
starting a name terminates whatever currently holds it.

Process exits are observed by one watcher thread per process, which only
posts a ProcessExit onto a queue. Exit callbacks run on the caller's thread
inside dispatch() or drain(), so all orchestration stays single-threaded.
"""

from __future__ import annotations

import os
import queue
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from scribepoint.exceptions import ProcessStartError
from scribepoint.logging import logger


@dataclass(frozen=True)
class ProcessExit:
    """Termination event of a named process."""

    name: str
    returncode: int | None
    output: str = ""
    error: str | None = None

    @property
    def kind(self) -> str:
        """One of "finished", "signaled", "exited" or "failed"."""
        if self.error is not None or self.returncode is None:
            return "failed"
        if self.returncode == 0:
            return "finished"
        if self.returncode < 0:
            return "signaled"
        return "exited"

    @property
    def description(self) -> str:
        kind = self.kind
        if kind == "finished":
            return "finished"
        if kind == "signaled":
            signum = -self.returncode
            try:
                sig_name = signal.Signals(signum).name
            except ValueError:
                sig_name = f"signal {signum}"
            return f"killed by {sig_name}"
        if kind == "exited":
            return f"exited abnormally with code {self.returncode}"
        return f"failed: {self.error or 'unknown error'}"


ExitCallback = Callable[[ProcessExit], None]


@dataclass(eq=False)
class ManagedProcess:
    """A running external process tracked under a logical name."""

    name: str
    command: list[str]
    popen: subprocess.Popen
    on_exit: ExitCallback | None = None
    started_at: float = field(default_factory=time.monotonic)
    exit: ProcessExit | None = None

    @property
    def pid(self) -> int:
        return self.popen.pid

    def is_alive(self) -> bool:
        return self.popen.poll() is None


class ProcessSupervisor:
    """Registry of named external processes.

    Args:
        pid_dir: Optional directory for <name>.pid files so a later
            invocation (another Python process) can reap a stale holder
            of the same name.
    """

    def __init__(self, pid_dir: Path | None = None) -> None:
        self.pid_dir = pid_dir
        self._handles: dict[str, ManagedProcess] = {}
        self._events: queue.Queue[tuple[ManagedProcess, ProcessExit]] = queue.Queue()
        self._outstanding = 0

    def start(
        self,
        name: str,
        command: list[str],
        *,
        on_exit: ExitCallback | None = None,
        capture_output: bool = False,
        stale_files: tuple[Path, ...] = (),
    ) -> ManagedProcess:
        """Start `command` under `name`, replacing any current holder.

        Args:
            name: Logical process name
            command: Argument vector
            on_exit: Called once, from dispatch(), when the process exits
            capture_output: Collect stdout into the ProcessExit event
            stale_files: Files left over from a previous holder, removed
                before launch

        Raises:
            ProcessStartError: If the executable cannot be launched
        """
        self.stop(name)
        self._reap_recorded(name)
        for path in stale_files:
            path.unlink(missing_ok=True)

        try:
            popen = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if capture_output else subprocess.DEVNULL,
                stderr=subprocess.PIPE if capture_output else subprocess.DEVNULL,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            raise ProcessStartError(name, command, str(e)) from e

        handle = ManagedProcess(name=name, command=command, popen=popen, on_exit=on_exit)
        self._handles[name] = handle
        self._record_pid(handle)
        self._outstanding += 1
        logger.debug(f"Started {name} (pid {popen.pid}): {' '.join(command)}")

        watcher = threading.Thread(
            target=self._watch, args=(handle,), name=f"watch-{name}", daemon=True
        )
        watcher.start()
        return handle

    def _watch(self, handle: ManagedProcess) -> None:
        try:
            stdout, stderr = handle.popen.communicate()
            if stderr and stderr.strip():
                logger.debug(f"{handle.name} stderr: {stderr.strip()[-500:]}")
            event = ProcessExit(handle.name, handle.popen.returncode, stdout or "")
        except Exception as e:
            event = ProcessExit(handle.name, handle.popen.poll(), "", error=str(e))
        self._events.put((handle, event))

    def get(self, name: str) -> ManagedProcess | None:
        return self._handles.get(name)

    def is_alive(self, name: str) -> bool:
        handle = self._handles.get(name)
        return handle is not None and handle.is_alive()

    def stop(self, name: str) -> bool:
        """Terminate the process holding `name` without waiting for it.

        An unknown or already-exited name is not an error.

        Returns:
            True if a live process was signaled
        """
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        return self._send(handle, signal.SIGTERM)

    def interrupt(self, name: str) -> bool:
        """Send SIGINT so the process can flush and close its output."""
        handle = self._handles.get(name)
        if handle is None:
            return False
        return self._send(handle, signal.SIGINT)

    def _send(self, handle: ManagedProcess, sig: signal.Signals) -> bool:
        if not handle.is_alive():
            return False
        try:
            handle.popen.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.debug(f"Sent {sig.name} to {handle.name} (pid {handle.pid})")
        return True

    def wait(self, name: str, timeout: float | None = None) -> bool:
        """Block until the process holding `name` exits.

        Does not run exit callbacks; those still go through dispatch().

        Returns:
            True if the process is gone, False on timeout
        """
        handle = self._handles.get(name)
        if handle is None:
            return True
        try:
            handle.popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return False
        return True

    def dispatch(self, timeout: float = 0.0) -> int:
        """Run exit callbacks for every process that has terminated.

        Args:
            timeout: Seconds to wait for the first event (0 = don't block)

        Returns:
            Number of exit events handled
        """
        handled = 0
        block = timeout > 0
        while True:
            try:
                handle, event = self._events.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                return handled
            block = False
            handled += 1
            self._outstanding -= 1
            handle.exit = event
            if self._handles.get(handle.name) is handle:
                del self._handles[handle.name]
            self._forget_pid(handle)
            logger.debug(f"{handle.name} (pid {handle.pid}) {event.description}")
            if handle.on_exit is not None:
                handle.on_exit(event)

    def drain(self, timeout: float | None = None, interval: float = 0.1) -> bool:
        """Dispatch exit events until no started process is outstanding.

        Returns:
            True if everything was dispatched, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._outstanding > 0:
            if deadline is not None and time.monotonic() >= deadline:
                return False
            self.dispatch(timeout=interval)
        return True

    @property
    def pending(self) -> int:
        """Number of started processes whose exit has not been dispatched."""
        return self._outstanding

    def shutdown(self) -> None:
        """Terminate every tracked process."""
        for name in list(self._handles):
            self.stop(name)

    # Cross-invocation tracking

    def _pid_file(self, name: str) -> Path | None:
        if self.pid_dir is None:
            return None
        return self.pid_dir / f"{name}.pid"

    def _record_pid(self, handle: ManagedProcess) -> None:
        pid_file = self._pid_file(handle.name)
        if pid_file is None:
            return
        pid_file.parent.mkdir(parents=True, exist_ok=True)
        pid_file.write_text(f"{handle.pid}\n{handle.command[0]}\n", encoding="utf-8")

    def _forget_pid(self, handle: ManagedProcess) -> None:
        pid_file = self._pid_file(handle.name)
        if pid_file is None or not pid_file.exists():
            return
        try:
            recorded = int(pid_file.read_text(encoding="utf-8").split()[0])
        except (ValueError, IndexError, OSError):
            recorded = None
        if recorded in (None, handle.pid):
            pid_file.unlink(missing_ok=True)

    def _reap_recorded(self, name: str) -> None:
        """Terminate a holder of `name` started by another invocation."""
        pid_file = self._pid_file(name)
        if pid_file is None or not pid_file.exists():
            return

        try:
            lines = pid_file.read_text(encoding="utf-8").splitlines()
            pid = int(lines[0])
            executable = lines[1] if len(lines) > 1 else ""
        except (ValueError, IndexError, OSError):
            logger.info(f"Removing unreadable pid file {pid_file}")
            pid_file.unlink(missing_ok=True)
            return

        if pid != os.getpid() and _is_running(pid) and _command_matches(pid, executable):
            logger.warning(f"Terminating stale {name} process {pid}")
            try:
                os.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                pass
        pid_file.unlink(missing_ok=True)


def _is_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _command_matches(pid: int, executable: str) -> bool:
    """Check that `pid` still runs `executable` (guards against PID reuse)."""
    try:
        result = subprocess.run(
            ["ps", "-p", str(pid), "-o", "command="],
            capture_output=True,
            text=True,
            timeout=1,
        )
    except (OSError, subprocess.TimeoutExpired):
        return False
    if result.returncode != 0:
        return False
    return bool(executable) and Path(executable).name in result.stdout
