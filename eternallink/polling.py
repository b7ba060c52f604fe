"""Cancellable periodic refresh tied to the lifetime of its owner."""

import threading
from typing import Callable, Optional


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds until :meth:`stop`.

    The first run happens immediately. A failing callback is reported and the
    task keeps its schedule.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "periodic-task"):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self.name = name
        self.runs = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.callback()
            except Exception as exc:
                print(f"⚠️ {self.name} failed: {exc}")
            self.runs += 1
            self._stop.wait(self.interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
