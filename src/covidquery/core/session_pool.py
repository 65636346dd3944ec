"""
=============================================================================
SESSION POOL
=============================================================================

Worker threads that run client sessions concurrently.

A client session lasts as long as the client stays connected. Run on the
accept thread, one idle client blocks everybody else:

    Sequential:
        accept(A) ── serve A ......................... ── accept(B) ── ...
                                                   ▲
                                B waits here the whole time

    Pooled:
        accept(A) ── submit ── accept(B) ── submit ── accept(C) ...
                       │                      │
                       ▼                      ▼
                  session-0: A           session-1: B

The dataset is immutable, so sessions share it without any locking. The
only lock in this module protects the pool's own bookkeeping.

=============================================================================
SIZING
=============================================================================

    ┌──────────────┐   submit()   ┌─────────────────────┐   get()
    │ accept loop  │ ───────────► │ Queue[Conn | None]  │ ────────► session-N
    └──────────────┘              │                     │
                                  └─────────────────────┘

    in_flight = sessions submitted and not yet finished

    - min_workers threads start immediately
    - while in_flight exceeds the thread count, threads are added up to
      max_workers; a session never waits behind another one while the
      pool still has room to grow
    - past max_workers up to queue_size sessions wait in the queue; beyond
      that submit() returns False and the caller turns the client away
    - shutdown() puts one None per thread on the queue

=============================================================================
"""

import logging
import queue
import threading
import time
from typing import Callable, Optional

from .connection import Connection


logger = logging.getLogger(__name__)

SessionHandler = Callable[[Connection], None]


class SessionPool:
    """
    Runs ``handler(conn)`` for submitted connections on worker threads.

    Usage:
        pool = SessionPool(handle_session, min_workers=4, max_workers=16)
        pool.start()
        if not pool.submit(conn):
            conn.close()  # saturated
        ...
        pool.shutdown(timeout=5.0)
    """

    def __init__(
        self,
        handler: SessionHandler,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 100,
    ):
        """
        Args:
            handler: Runs one whole session. Exceptions are logged, never
                     propagated.
            min_workers: Threads created by start().
            max_workers: Upper bound on threads, so on concurrent sessions.
            queue_size: Sessions that may wait for a free thread.
        """
        self.handler = handler
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size

        self._queue: "queue.Queue[Optional[Connection]]" = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

        self._in_flight = 0
        self._completed = 0
        self._failed = 0

        self._started = False
        self._closing = False

    def start(self):
        """Start min_workers threads. Calling it again is a no-op."""
        if self._started:
            return

        logger.info(f"Starting session pool with {self.min_workers} workers")
        self._closing = False
        with self._lock:
            for _ in range(self.min_workers):
                self._spawn_locked()
        self._started = True

    def _spawn_locked(self):
        thread = threading.Thread(
            target=self._work,
            name=f"session-{len(self._threads)}",
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def submit(self, conn: Connection) -> bool:
        """
        Queue a session without blocking.

        Returns:
            True if queued, False if the pool is saturated.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._closing:
            raise RuntimeError("Session pool is not running")

        with self._lock:
            if self._in_flight >= self.max_workers + self.queue_size:
                return False

            self._in_flight += 1
            self._queue.put(conn)
            if self._in_flight > len(self._threads) and len(self._threads) < self.max_workers:
                logger.debug(f"Growing session pool to {len(self._threads) + 1} workers")
                self._spawn_locked()

        return True

    def _work(self):
        name = threading.current_thread().name
        logger.debug(f"{name} started")

        while True:
            conn = self._queue.get()
            if conn is None:
                break

            waited = time.time() - conn.created_at
            if waited > 1.0:
                logger.debug(f"[{conn.id}] Waited {waited:.2f}s for a worker")

            try:
                self.handler(conn)
            except Exception:
                with self._lock:
                    self._failed += 1
                logger.exception(f"[{conn.id}] Session crashed")
            else:
                with self._lock:
                    self._completed += 1
            finally:
                with self._lock:
                    self._in_flight -= 1

        logger.debug(f"{name} stopped")

    def shutdown(self, timeout: Optional[float] = None):
        """
        Stop every worker once its current session ends.

        Sessions still queued are closed unserved. Open sessions are not
        interrupted here; the server aborts their sockets first.

        Args:
            timeout: Upper bound on waiting for all threads (None = wait).
        """
        if not self._started:
            return

        logger.info("Shutting down session pool...")
        self._closing = True

        while True:
            try:
                conn = self._queue.get_nowait()
            except queue.Empty:
                break
            if conn is not None:
                with self._lock:
                    self._in_flight -= 1
                conn.close()

        with self._lock:
            threads = list(self._threads)
        for _ in threads:
            self._queue.put(None)

        deadline = time.time() + timeout if timeout else None
        for thread in threads:
            remaining = max(0.0, deadline - time.time()) if deadline else None
            thread.join(remaining)
            if thread.is_alive():
                logger.warning(f"{thread.name} still busy at shutdown")

        with self._lock:
            self._threads.clear()
        self._started = False
        logger.info("Session pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def in_flight(self) -> int:
        """Sessions queued or running."""
        return self._in_flight

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "workers": len(self._threads),
                "in_flight": self._in_flight,
                "queued": self._queue.qsize(),
                "completed": self._completed,
                "failed": self._failed,
            }
