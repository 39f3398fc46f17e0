"""
Upload Progress Reporting

Turns pool events into a status line on a rich console. Events are queued
and rendered by a separate thread so workers never wait on the terminal.
"""

import queue
import threading
from typing import Optional

from rich.console import Console
from rich.status import Status
import structlog

from .models import PoolState, UploadItem, UploadOutcome
from .pool import PoolObserver

logger = structlog.get_logger()


_STOP = object()


def format_status(state: PoolState) -> str:
    return f"Completed: {state.completed}. Queued: {state.queued}  In flight: {state.in_flight}"


class ProgressReporter(PoolObserver):
    """Pool observer that renders counters on a console status spinner"""

    def __init__(self, console: Console, message: str = "Uploading files"):
        self.console = console
        self.message = message
        self.last_state = PoolState()
        self.renders = 0

        self._events: queue.Queue = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._status: Optional[Status] = None

    # ==================== Pool Events ====================

    def task_accepted(self, item: UploadItem, state: PoolState) -> None:
        self._events.put_nowait(state)

    def task_completed(self, item: UploadItem, outcome: UploadOutcome, state: PoolState) -> None:
        self._events.put_nowait(state)

    # ==================== Rendering ====================

    def start(self) -> None:
        if self._thread is not None:
            return

        self._status = self.console.status(f"{self.message}  Initializing")
        self._status.start()
        self._thread = threading.Thread(target=self._drain, name="upload-progress", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Render whatever is still queued, then remove the spinner"""
        if self._thread is None:
            return

        self._events.put(_STOP)
        self._thread.join()
        self._thread = None

        if self._status is not None:
            self._status.stop()
            self._status = None

    def _drain(self) -> None:
        while True:
            event = self._events.get()
            if event is _STOP:
                return

            # Render only the newest state when events pile up
            stop = False
            while True:
                try:
                    newer = self._events.get_nowait()
                except queue.Empty:
                    break
                if newer is _STOP:
                    stop = True
                    break
                event = newer

            self._render(event)
            if stop:
                return

    def _render(self, state: PoolState) -> None:
        # Snapshots from different workers can arrive out of order
        if state.completed < self.last_state.completed:
            return
        self.last_state = state
        self.renders += 1
        try:
            if self._status is not None:
                self._status.update(f"{self.message}  {format_status(state)}")
        except Exception as e:
            logger.debug("progress_render_failed", error=str(e))

    def __enter__(self) -> 'ProgressReporter':
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
