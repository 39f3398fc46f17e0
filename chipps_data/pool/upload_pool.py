"""
Bounded Upload Pool

Runs one upload task per UploadItem on a fixed number of worker threads.
Tasks start in submission order; they finish in whatever order the org
answers. Every task ends with its outcome written to the result sink,
whether the upload worked or not: a failing item never affects another.

Lifecycle:
    pool = UploadPool(handler, sink, concurrency=4)
    for item in manifest:
        pool.submit(item)
    pool.close()
    pool.await_idle()
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, List, Optional, Sequence
import structlog

from ..ledger import ResultSink
from ..models import Failure, PoolState, Success, UploadItem, UploadOutcome

logger = structlog.get_logger()


UploadHandler = Callable[[UploadItem], UploadOutcome]


class PoolStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"
    SHUTDOWN = "shutdown"


class PoolObserver:
    """
    Receives pool lifecycle events.

    Called from worker threads; implementations must be quick and must not
    block. Exceptions raised here are logged and ignored.
    """

    def task_accepted(self, item: UploadItem, state: PoolState) -> None:
        pass

    def task_completed(self, item: UploadItem, outcome: UploadOutcome, state: PoolState) -> None:
        pass


def error_message(error: BaseException) -> str:
    """Text stored in the error ledger for a failed upload"""
    message = str(error).strip()
    return message or type(error).__name__


class UploadPool:
    """Thread pool with a fixed concurrency limit and live counters"""

    def __init__(
        self,
        handler: UploadHandler,
        sink: ResultSink,
        concurrency: int = 1,
        max_pending: Optional[int] = None,
        observers: Optional[Sequence[PoolObserver]] = None
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        if max_pending is not None and max_pending < 1:
            raise ValueError(f"max_pending must be >= 1, got {max_pending}")

        self.handler = handler
        self.sink = sink
        self.concurrency = concurrency
        self.max_pending = max_pending
        self._observers: List[PoolObserver] = list(observers or [])

        self._executor = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="upload")
        self._cond = threading.Condition()
        # Bounds queued-but-not-started tasks; submit() blocks while full
        self._slots = threading.Semaphore(max_pending) if max_pending else None

        self._status = PoolStatus.OPEN
        self._queued = 0
        self._in_flight = 0
        self._completed = 0
        self._succeeded = 0
        self._failed = 0
        # Tasks submitted but not yet finished, observer callbacks included
        self._active = 0

    # ==================== Submission ====================

    def add_observer(self, observer: PoolObserver) -> None:
        self._observers.append(observer)

    def submit(self, item: UploadItem) -> None:
        """Queue an upload task; returns without waiting for it to run"""
        if self._slots is not None:
            self._slots.acquire()

        with self._cond:
            if self._status is not PoolStatus.OPEN:
                if self._slots is not None:
                    self._slots.release()
                raise PoolClosedError(f"Pool is {self._status.value}; cannot submit {item.path_on_client}")
            self._queued += 1
            self._active += 1

        self._executor.submit(self._run, item)
        logger.debug("task_submitted", path_on_client=item.path_on_client)

    def close(self) -> None:
        """Stop accepting submissions"""
        with self._cond:
            if self._status is PoolStatus.OPEN:
                self._status = PoolStatus.CLOSED
                logger.debug("pool_closed", queued=self._queued, in_flight=self._in_flight)

    @property
    def closed(self) -> bool:
        return self._status is not PoolStatus.OPEN

    # ==================== Waiting ====================

    def await_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every submitted task has finished.

        The pool must be closed first. Returns False if the timeout expired
        before the pool went idle.
        """
        with self._cond:
            if self._status is PoolStatus.OPEN:
                raise PoolStateError("Pool must be closed before awaiting idle")
            return self._cond.wait_for(lambda: self._active == 0, timeout)

    def join(self) -> PoolState:
        """Close, wait for all tasks, and release the worker threads"""
        self.close()
        self.await_idle()
        self.shutdown()
        return self.state

    def shutdown(self, cancel_pending: bool = False) -> None:
        """
        Release the worker threads, optionally dropping tasks not yet started.

        Tasks already running always finish and reach the sink before this
        returns, so the sink can be closed right after.
        """
        with self._cond:
            self._status = PoolStatus.SHUTDOWN

        self._executor.shutdown(wait=True, cancel_futures=cancel_pending)

        # Cancelled tasks never ran; whatever is still queued was dropped
        with self._cond:
            dropped = self._queued
            self._queued = 0
            self._active -= dropped
            self._cond.notify_all()

        logger.debug("pool_shutdown", cancelled=cancel_pending, dropped=dropped)

    @property
    def state(self) -> PoolState:
        with self._cond:
            return self._snapshot()

    def _snapshot(self) -> PoolState:
        return PoolState(
            queued=self._queued,
            in_flight=self._in_flight,
            completed=self._completed,
            succeeded=self._succeeded,
            failed=self._failed,
        )

    # ==================== Task Processing ====================

    def _run(self, item: UploadItem) -> None:
        """Worker body for one item"""
        with self._cond:
            self._queued -= 1
            self._in_flight += 1
            state = self._snapshot()

        if self._slots is not None:
            self._slots.release()

        try:
            self._notify("task_accepted", item, state)

            outcome = self._execute(item)
            outcome = self._route(item, outcome)

            with self._cond:
                self._in_flight -= 1
                self._completed += 1
                if isinstance(outcome, Success):
                    self._succeeded += 1
                else:
                    self._failed += 1
                state = self._snapshot()

            self._notify("task_completed", item, outcome, state)

        finally:
            with self._cond:
                self._active -= 1
                self._cond.notify_all()

    def _execute(self, item: UploadItem) -> UploadOutcome:
        """Call the handler, turning any exception into a Failure"""
        try:
            outcome = self.handler(item)
        except Exception as e:
            logger.warning("upload_failed", path_on_client=item.path_on_client,
                           error=error_message(e), error_type=type(e).__name__)
            return Failure(error_message(e))

        if isinstance(outcome, Success):
            logger.info("upload_succeeded", path_on_client=item.path_on_client,
                        content_document_id=outcome.content_document_id)
        elif isinstance(outcome, Failure):
            logger.warning("upload_failed", path_on_client=item.path_on_client, error=outcome.error)
        else:
            logger.error("upload_invalid_outcome", path_on_client=item.path_on_client, outcome=repr(outcome))
            outcome = Failure(f"Upload returned no outcome: {outcome!r}")

        return outcome

    def _route(self, item: UploadItem, outcome: UploadOutcome) -> UploadOutcome:
        """Write the outcome to the sink; a sink error fails the item"""
        try:
            self.sink.record(item, outcome)
        except Exception as e:
            logger.error("ledger_write_failed", path_on_client=item.path_on_client,
                         error=error_message(e))
            return Failure(error_message(e))
        return outcome

    def _notify(self, event: str, *args) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, event)(*args)
            except Exception as e:
                logger.error("observer_error", observer_event=event, error=str(e))

    def __enter__(self) -> 'UploadPool':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.join()
        else:
            self.shutdown(cancel_pending=True)


class PoolClosedError(RuntimeError):
    """Submit called after the pool stopped accepting work"""
    pass


class PoolStateError(RuntimeError):
    """Pool used out of lifecycle order"""
    pass
