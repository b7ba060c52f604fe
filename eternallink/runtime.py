"""Loader for the embedded 3D/AR hologram runtime.

The runtime is an external player process. The only contract with it is a
JSON-lines channel: it prints ``{"event": "ready"}`` once initialized and
``{"event": "error", "message": "..."}`` on failures, and accepts
``{"receiver": ..., "method": ..., "argument": ...}`` commands on stdin.
"""

import json
import queue
import shlex
import subprocess
import threading
from typing import Callable, List, Optional, Sequence

from . import config
from .timing import time_operation


class RuntimeLoadError(RuntimeError):
    """The runtime could not be started or never became ready."""


class RuntimeCommandError(RuntimeError):
    """A command could not be delivered to the runtime."""


class EmbeddedRuntime:
    """Command channel to a running runtime process."""

    def __init__(self, process: subprocess.Popen):
        self._process = process
        self._write_lock = threading.Lock()

    @property
    def alive(self) -> bool:
        return self._process.poll() is None

    def _write(self, payload: dict) -> None:
        if not self.alive:
            raise RuntimeCommandError("The AR runtime is not running")
        line = json.dumps(payload) + "\n"
        try:
            with self._write_lock:
                self._process.stdin.write(line)
                self._process.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise RuntimeCommandError(f"Failed to send command to the AR runtime: {exc}") from exc

    def send_message(self, receiver: str, method: str, argument: str = "") -> None:
        self._write({"receiver": receiver, "method": method, "argument": argument})

    def quit(self, timeout: float = 5.0) -> None:
        try:
            self._write({"command": "quit"})
        except RuntimeCommandError:
            pass
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        finally:
            _close_stdin(self._process)


def _close_stdin(process: subprocess.Popen) -> None:
    try:
        process.stdin.close()
    except OSError:
        pass


def _reap(process: subprocess.Popen) -> None:
    """Kill a runtime that never became ready and wait for it to exit.

    Its stdout is closed by the event reader once the pipe reaches EOF.
    """
    if process.poll() is None:
        process.kill()
    process.wait()
    _close_stdin(process)


class RuntimeLoader:
    """Starts the runtime on demand and reports readiness and errors through callbacks."""

    def __init__(
        self,
        command: Optional[str | Sequence[str]] = config.RUNTIME_COMMAND,
        ready_timeout: float = config.RUNTIME_READY_TIMEOUT_S,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        if isinstance(command, str):
            command = shlex.split(command)
        self.command: List[str] = list(command or [])
        self.ready_timeout = ready_timeout
        self._popen = popen
        self._ready_callbacks: List[Callable[[], None]] = []
        self._error_callbacks: List[Callable[[str], None]] = []
        self._runtime: Optional[EmbeddedRuntime] = None
        self._lock = threading.Lock()

    def on_ready(self, callback: Callable[[], None]) -> None:
        self._ready_callbacks.append(callback)

    def on_error(self, callback: Callable[[str], None]) -> None:
        self._error_callbacks.append(callback)

    @property
    def runtime(self) -> Optional[EmbeddedRuntime]:
        return self._runtime

    def ensure_loaded(self) -> EmbeddedRuntime:
        """Start the runtime and block until it reports ready."""
        with self._lock:
            if self._runtime is not None and self._runtime.alive:
                return self._runtime
            if not self.command:
                raise RuntimeLoadError("No AR runtime is configured (set ETERNALLINK_RUNTIME_CMD)")

            with time_operation("AR Runtime Loading", track_memory=True):
                runtime = self._start()
            self._runtime = runtime

        for callback in self._ready_callbacks:
            callback()
        return runtime

    def _start(self) -> EmbeddedRuntime:
        try:
            process = self._popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise RuntimeLoadError(f"Failed to launch the AR runtime: {exc}") from exc

        events: "queue.Queue[Optional[dict]]" = queue.Queue()
        threading.Thread(target=self._read_events, args=(process, events), daemon=True).start()

        try:
            while True:
                event = events.get(timeout=self.ready_timeout)
                if event is None:
                    raise RuntimeLoadError("The AR runtime exited before it was ready")
                if event.get("event") == "ready":
                    return EmbeddedRuntime(process)
                if event.get("event") == "error":
                    raise RuntimeLoadError(event.get("message") or "The AR runtime reported an error")
        except queue.Empty:
            _reap(process)
            raise RuntimeLoadError(f"The AR runtime was not ready after {self.ready_timeout:.0f}s") from None
        except RuntimeLoadError:
            _reap(process)
            raise

    def _read_events(self, process: subprocess.Popen, events: "queue.Queue[Optional[dict]]") -> None:
        ready = False
        try:
            for line in process.stdout:
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    print(f"[runtime] {line}")
                    continue
                if not isinstance(event, dict):
                    continue
                if not ready:
                    events.put(event)
                    ready = event.get("event") == "ready"
                elif event.get("event") == "error":
                    message = event.get("message") or "unknown runtime error"
                    for callback in self._error_callbacks:
                        callback(message)
        finally:
            process.stdout.close()
        if not ready:
            events.put(None)

    def unload(self) -> None:
        with self._lock:
            runtime, self._runtime = self._runtime, None
        if runtime is not None:
            runtime.quit()
