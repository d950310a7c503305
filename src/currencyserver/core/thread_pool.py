"""
=============================================================================
SESSION THREAD POOL
=============================================================================

Every accepted connection becomes one session, and every session runs on
its own worker thread for as long as the client stays connected. The
listener never waits for a session: it drops the session into the queue
and goes straight back to accept().

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   listener ──submit(session.run)──► [ queue ] ──get()──► Worker-0    │
    │                                                ──get()──► Worker-1   │
    │                                                ──get()──► ...        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Sessions are long-lived (a client may sit on a connection for minutes), so
the pool grows whenever every worker is busy and something is waiting in
the queue, up to max_workers. Once max_workers are all busy, submit()
refuses the task and the caller rejects the connection right away.

A session that blows up is logged by its worker and counted as failed.
The worker then goes back to the queue. Nothing a session does can reach
the listener.

Shutdown uses the "poison pill" pattern: one None per worker.

=============================================================================
"""

import threading
import queue
import time
import logging
from typing import Callable, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Task:
    """
    A deferred call: func(*args, **kwargs).

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        name: Label used in log lines (the connection id for sessions).
        submitted_at: Time the task was queued.
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)
    name: str = ""
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """
    Worker thread: take a task, run it, repeat until a poison pill arrives.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 60.0):
        super().__init__(name=f"Worker-{worker_id}", daemon=True)
        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._shutdown.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            if task is None:
                self.task_queue.task_done()
                break

            try:
                self._execute_task(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute_task(self, task: Task):
        self.state = WorkerState.BUSY
        start_time = time.time()
        waited = start_time - task.submitted_at
        if waited > 1.0:
            logger.warning(f"[{task.name}] Waited {waited:.2f}s for a free worker")

        try:
            task.func(*task.args, **task.kwargs)
            self.tasks_completed += 1
        except Exception as e:
            # One broken session must not take the worker down with it.
            elapsed = time.time() - start_time
            logger.exception(
                f"Worker {self.worker_id} task [{task.name}] failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self):
        """Signal the worker to stop."""
        self._shutdown.set()


class ThreadPool:
    """
    Thread pool for concurrent session execution.

        pool = ThreadPool(min_workers=4, max_workers=256)
        pool.start()
        pool.submit(session.run, name=conn.id)   # never blocks
        pool.shutdown(wait=True, timeout=5.0)
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 256,
        queue_size: int = 100,
        idle_timeout: float = 60.0
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[Task]]" = queue.Queue(maxsize=queue_size)

        self._workers: list = []
        self._lock = threading.Lock()
        self._started = False
        self._shutdown = False
        self._next_worker_id = 0

    def start(self):
        """Start the minimum number of workers."""
        if self._started:
            return

        logger.info(f"Starting session pool with {self.min_workers} workers")
        self._shutdown = False
        for _ in range(self.min_workers):
            self._add_worker()
        self._started = True

    def _add_worker(self) -> Worker:
        with self._lock:
            if len(self._workers) >= self.max_workers:
                raise RuntimeError("Maximum workers reached")
            return self._add_worker_locked()

    def _add_worker_locked(self) -> Worker:
        worker = Worker(
            task_queue=self._task_queue,
            worker_id=self._next_worker_id,
            idle_timeout=self.idle_timeout,
        )
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], args: tuple = (), kwargs: Optional[dict] = None,
               name: str = "") -> bool:
        """
        Queue a task without blocking.

        Returns:
            True if the task was queued, False if the queue was full or
            every worker is busy and the pool cannot grow.

        Raises:
            RuntimeError: If the pool is not started or is shutting down.
        """
        if not self._started:
            raise RuntimeError("Thread pool not started")
        if self._shutdown:
            raise RuntimeError("Thread pool is shutting down")

        if self._saturated():
            return False

        task = Task(func=func, args=args, kwargs=kwargs or {}, name=name)

        try:
            self._task_queue.put(task, block=False)
        except queue.Full:
            return False

        self._maybe_scale_up()
        return True

    def _saturated(self) -> bool:
        """True when no worker can pick up another task, now or soon."""
        with self._lock:
            live = [w for w in self._workers if w.state != WorkerState.STOPPED]
            if len(live) < self.max_workers:
                return False
            idle = sum(1 for w in live if w.state == WorkerState.IDLE)
            return self._task_queue.qsize() >= idle

    def _maybe_scale_up(self):
        """Add a worker while every worker is busy and tasks are waiting."""
        with self._lock:
            live = [w for w in self._workers if w.state != WorkerState.STOPPED]
            idle = sum(1 for w in live if w.state == WorkerState.IDLE)
            waiting = self._task_queue.qsize()
            if waiting > idle and len(live) < self.max_workers:
                logger.debug(f"Scaling up: {len(live)} -> {len(live) + 1} workers")
                self._add_worker_locked()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Wait for queued tasks to be picked up before stopping.
            timeout: Upper bound on the wait, in seconds.
        """
        if not self._started:
            return

        logger.info("Shutting down session pool...")
        self._shutdown = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while not self._task_queue.empty():
                if deadline and time.time() > deadline:
                    logger.warning("Shutdown timeout, forcing stop")
                    break
                time.sleep(0.05)

        for worker in self._workers:
            worker.shutdown()
        for _ in self._workers:
            try:
                self._task_queue.put(None, block=False)
            except queue.Full:
                break

        for worker in self._workers:
            worker.join(timeout=0.5 if not wait else 2.0)

        self._workers.clear()
        self._started = False
        logger.info("Session pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def stats(self) -> dict:
        """Worker and task counts."""
        return {
            "workers": {
                "total": len(self._workers),
                "busy": self.busy_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
            },
        }
