"""
Background analysis worker.
Runs speaker identification and answer scoring off the capture path on a
single FIFO thread, so jobs complete in the order they were submitted.
"""
import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from ..config import WORKER_QUEUE_SIZE, WORKER_JOIN_TIMEOUT

logger = logging.getLogger("analysis_worker")

_STOP = object()

ErrorCallback = Callable[[BaseException, str], None]


class AnalysisWorker:
    """
    Bounded job queue drained by one daemon thread.

    Every submitted job gets a Future. Failed jobs log the error, report it
    through on_error and carry the exception on their future.
    """

    def __init__(self, name: str = "analysis-worker",
                 max_queue: int = WORKER_QUEUE_SIZE,
                 on_error: Optional[ErrorCallback] = None):
        if max_queue <= 0:
            raise ValueError(f"max_queue must be positive, got {max_queue}")
        self.name = name
        self.on_error = on_error
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=max_queue)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.is_running = False

    def start(self) -> None:
        """Start the worker thread (no-op when already running)."""
        with self._lock:
            if self.is_running:
                return
            self.is_running = True
            self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
            self._thread.start()
        logger.debug(f"{self.name} started")

    def stop(self, timeout: float = WORKER_JOIN_TIMEOUT) -> None:
        """Finish queued jobs, then stop the thread."""
        with self._lock:
            if not self.is_running:
                return
            self.is_running = False
            thread = self._thread
        self._queue.put(_STOP)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"{self.name} did not stop within {timeout}s")
        logger.debug(f"{self.name} stopped")

    @property
    def pending(self) -> int:
        return self._queue.unfinished_tasks

    def is_worker_thread(self) -> bool:
        return self._thread is not None and threading.current_thread() is self._thread

    def submit(self, fn: Callable[..., Any], *args: Any,
               drop_if_full: bool = False, **kwargs: Any) -> Optional[Future]:
        """
        Queue a job.

        Args:
            fn: Callable to run on the worker thread
            drop_if_full: Return None instead of blocking when the queue is full

        Returns:
            Future of the job's result, or None when the job was dropped
        """
        if not self.is_running:
            raise RuntimeError(f"{self.name} is not running")

        future: Future = Future()
        item = (future, fn, args, kwargs)
        if drop_if_full:
            try:
                self._queue.put_nowait(item)
            except queue.Full:
                logger.debug(f"{self.name} queue full, dropping {getattr(fn, '__name__', fn)}")
                return None
        else:
            self._queue.put(item)
        return future

    def wait_idle(self) -> None:
        """
        Block until every queued job has run.

        Returns immediately on the worker thread itself, where waiting would
        never finish.
        """
        if self.is_worker_thread():
            return
        self._queue.join()

    def _run_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._run_job(*item)
            finally:
                self._queue.task_done()

    def _run_job(self, future: Future, fn: Callable[..., Any], args, kwargs) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = fn(*args, **kwargs)
        except Exception as e:
            component = getattr(fn, "__name__", "job")
            logger.error(f"{self.name} job {component} failed: {e}", exc_info=True)
            future.set_exception(e)
            if self.on_error is not None:
                try:
                    self.on_error(e, component)
                except Exception as callback_error:
                    logger.error(f"Error callback failed: {callback_error}")
        else:
            future.set_result(result)
