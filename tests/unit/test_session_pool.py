"""
Unit tests for the session pool.
"""

import socket
import threading

import pytest

from covidquery.core import Connection, SessionPool


@pytest.fixture
def connections():
    """Factory for server-side Connections over socket pairs."""
    peers = []

    def _make() -> Connection:
        server_sock, client_sock = socket.socketpair()
        peers.append(client_sock)
        return Connection(socket=server_sock, address=("127.0.0.1", len(peers)))

    yield _make

    for sock in peers:
        sock.close()


def blocking_handler():
    """Handler that holds every session until released."""
    release = threading.Event()
    started = threading.Semaphore(0)

    def handle(conn: Connection):
        started.release()
        release.wait(5.0)
        conn.close()

    return handle, release, started


class TestSessionPool:
    """Tests for SessionPool."""

    def test_start_creates_min_workers(self):
        pool = SessionPool(lambda conn: None, min_workers=2, max_workers=4)
        pool.start()
        try:
            assert pool.stats["workers"] == 2
        finally:
            pool.shutdown(timeout=2.0)

    def test_runs_handler_for_each_session(self, connections):
        seen = []
        done = threading.Semaphore(0)

        def handle(conn: Connection):
            seen.append(conn.id)
            done.release()

        pool = SessionPool(handle, min_workers=2, max_workers=2)
        pool.start()
        try:
            conns = [connections() for _ in range(3)]
            for conn in conns:
                assert pool.submit(conn)
            for _ in conns:
                assert done.acquire(timeout=2.0)

            assert sorted(seen) == sorted(c.id for c in conns)
        finally:
            pool.shutdown(timeout=2.0)

    def test_crashing_session_does_not_kill_worker(self, connections):
        done = threading.Event()

        def handle(conn: Connection):
            if conn.client_port == 1:
                raise RuntimeError("boom")
            done.set()

        pool = SessionPool(handle, min_workers=1, max_workers=1)
        pool.start()
        try:
            pool.submit(connections())
            pool.submit(connections())

            assert done.wait(2.0)
            assert pool.stats["workers"] == 1
        finally:
            pool.shutdown(timeout=2.0)

        assert pool.stats["failed"] == 1

    def test_grows_instead_of_queueing(self, connections):
        """A new session gets its own thread while the pool can grow."""
        handle, release, started = blocking_handler()
        pool = SessionPool(handle, min_workers=1, max_workers=3)
        pool.start()
        try:
            for _ in range(3):
                pool.submit(connections())

            for _ in range(3):
                assert started.acquire(timeout=2.0)
            assert pool.stats["workers"] == 3
        finally:
            release.set()
            pool.shutdown(timeout=2.0)

    def test_saturated_pool_rejects(self, connections):
        handle, release, started = blocking_handler()
        pool = SessionPool(handle, min_workers=1, max_workers=1, queue_size=1)
        pool.start()
        try:
            assert pool.submit(connections())
            assert started.acquire(timeout=2.0)
            assert pool.submit(connections())          # waits for the worker
            assert pool.submit(connections()) is False
            assert pool.in_flight == 2
        finally:
            release.set()
            pool.shutdown(timeout=2.0)

    def test_shutdown_closes_queued_sessions(self, connections):
        handle, release, started = blocking_handler()
        pool = SessionPool(handle, min_workers=1, max_workers=1, queue_size=5)
        pool.start()
        queued = connections()
        try:
            pool.submit(connections())
            assert started.acquire(timeout=2.0)
            pool.submit(queued)
        finally:
            release.set()
            pool.shutdown(timeout=2.0)

        assert queued.is_closed
        assert pool.stats["workers"] == 0

    def test_submit_before_start_raises(self, connections):
        with pytest.raises(RuntimeError):
            SessionPool(lambda conn: None).submit(connections())

    def test_shutdown_before_start_is_noop(self):
        SessionPool(lambda conn: None).shutdown()
