"""
=============================================================================
THREAD POOL
=============================================================================

Bounded pool of worker threads. Each accepted connection becomes one task,
so one slow client or one long-running script ties up one worker, not the
server.

=============================================================================
HOW IT FITS
=============================================================================

    acceptor thread                        worker threads
    ───────────────                        ──────────────
    accept() ──► submit(conn, block=False)
                     │
                     ▼
              ┌─────────────────────┐      Worker-0 ─┐
              │  queue (queue_size) │ ───► Worker-1 ─┤  read → route →
              └─────────────────────┘      Worker-2 ─┤  write → close
                     │                       ...     ┘
                     ▼
              full? → False → caller answers 503

- min_workers threads start up front; one more is added (up to
  max_workers) whenever every worker is busy and tasks are waiting.
- The queue is bounded so a flood of connections cannot grow memory
  without limit.
- shutdown() drains the queue, then puts one poison pill (None) per
  worker.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for monitoring."""

    IDLE = "idle"        # Waiting for task
    BUSY = "busy"        # Executing task
    STOPPED = "stopped"  # Thread exited


@dataclass
class Task:
    """
    A deferred function call.

    Every submitted task runs, however long it waited: for this server a
    task owns an open connection, and skipping it would leak the socket.
    """

    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class Worker(threading.Thread):
    """Worker thread that processes tasks from the queue until poisoned."""

    def __init__(
        self,
        task_queue: "queue.Queue[Optional[Task]]",
        worker_id: int,
        idle_timeout: float = 60.0
    ):
        """
        Args:
            task_queue: Shared queue of pending connection tasks.
            worker_id: Identifier for this worker (for logging).
            idle_timeout: Seconds to wait for a task before checking shutdown.
        """
        # Daemon, so a stuck script cannot keep the process alive
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

    def run(self):
        logger.debug("Worker %d started", self.worker_id)

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break  # Poison pill
                self._execute_task(task)
            finally:
                # Keeps queue.join() accurate
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug("Worker %d stopped", self.worker_id)

    def _execute_task(self, task: Task):
        """Run one task; failures are logged, never propagated."""
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            task.func(*task.args, **task.kwargs)
            elapsed = time.time() - start_time
            logger.debug("Worker %d completed task in %.3fs", self.worker_id, elapsed)
        except Exception:
            elapsed = time.time() - start_time
            logger.exception("Worker %d task failed after %.3fs", self.worker_id, elapsed)
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Bounded pool of worker threads, one connection per task.

    Usage:
        pool = ThreadPool(min_workers=4, max_workers=16, queue_size=100)
        pool.start()
        if not pool.submit(handle, args=(conn,), block=False):
            reject(conn)        # queue full
        ...
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
        idle_timeout: float = 60.0
    ):
        """
        Args:
            min_workers: Worker threads created at startup.
            max_workers: Upper bound on worker threads.
            queue_size: Maximum number of tasks waiting for a worker.
            idle_timeout: Seconds between an idle worker's shutdown checks.
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError(
                f"Invalid worker bounds: min={min_workers}, max={max_workers}"
            )

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        # queue.Queue is thread-safe; maxsize bounds memory
        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)

        self._workers: list[Worker] = []
        self._lock = threading.Lock()  # Protects _workers
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start the pool with min_workers threads."""
        if self._started:
            return

        logger.info("Starting thread pool with %d workers", self.min_workers)
        self._shutdown = False

        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_worker()

        self._started = True

    def _spawn_worker(self) -> Worker:
        """Create and start a worker. Caller holds self._lock."""
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[dict] = None,
        block: bool = True,
        queue_timeout: Optional[float] = None
    ) -> bool:
        """
        Queue a call for a worker.

        Args:
            func: Callable to run on a worker thread.
            args: Positional arguments for func.
            kwargs: Keyword arguments for func.
            block: Whether to wait for queue space.
            queue_timeout: How long to wait for space when blocking.

        Returns:
            True if the task was queued, False if the queue was full.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        task = Task(func=func, args=args, kwargs=kwargs or {})

        try:
            self._task_queue.put(task, block=block, timeout=queue_timeout)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _maybe_scale_up(self):
        """Add a worker if all are busy, work is waiting and we're under max."""
        with self._lock:
            if len(self._workers) >= self.max_workers:
                return
            busy_count = self.busy_workers
            if busy_count == len(self._workers) and self.pending > 0:
                logger.debug(
                    "Scaling up: %d -> %d workers", len(self._workers), len(self._workers) + 1
                )
                self._spawn_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Shut the pool down.

        Args:
            wait: Wait for queued tasks to finish first.
            timeout: Upper bound on that wait (None: no bound).
        """
        if not self._started:
            return

        logger.info("Stopping %d workers", len(self._workers))
        self._shutdown = True

        if wait:
            if timeout:
                deadline = time.time() + timeout
                while self._task_queue.unfinished_tasks:
                    if time.time() > deadline:
                        logger.warning(
                            "Queued tasks still running after %.1fs, stopping workers anyway",
                            timeout,
                        )
                        break
                    time.sleep(0.1)
            else:
                self._task_queue.join()

        for _ in self._workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                pass  # The shutdown flag stops them instead

        for worker in self._workers:
            worker.shutdown()
            worker.join(timeout=2.0)

        self._workers.clear()
        self._started = False
        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # LOAD
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def pending(self) -> int:
        """Tasks waiting for a worker."""
        return self._task_queue.qsize()
