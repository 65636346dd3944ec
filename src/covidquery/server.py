"""
=============================================================================
QUERY SERVER
=============================================================================

The orchestrator: loads the dataset, listens on TCP 4040, and runs one
session per client connection.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         QueryServer                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    load_records() ──► Dataset (immutable, shared by every session)  │
    │                                                                      │
    │    SocketServer ──accept──► Connection                               │
    │                                  │                                   │
    │                  ┌───────────────┴───────────────┐                   │
    │                  ▼                               ▼                   │
    │        concurrent=True                 concurrent=False              │
    │       SessionPool.submit()            run on the accept thread      │
    │                  │                               │                   │
    │                  └───────────────┬───────────────┘                   │
    │                                  ▼                                   │
    │                        _process_connection()                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SESSION FLOW
=============================================================================

    1. GREETING          send the banner             (fail → close)
    2. AWAITING_REQUEST  one recv() = one request    (EOF/fail → close)
    3. PROCESSING        decode_request()
                         execute_query()             (bad date → no rows)
                         encode_response()           (fault → close)
                         sendall()                   (fail → close)
    4. back to 2

A failure on one connection never touches another one. Startup failures
(dataset, bind) and accept failures propagate out of run(); the CLI turns
them into a non-zero exit.

=============================================================================
"""

import logging
import threading
import time
from typing import Optional

from .access_log import QueryLog, log_query, new_query_id, timestamp
from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState, SessionPool
from .data import Dataset, load_records
from .errors import MalformedDateError, ResponseEncodingError
from .protocol import decode_request, encode_response
from .query import execute_query


logger = logging.getLogger(__name__)


class QueryServer:
    """
    TCP query server over an in-memory dataset.

    =========================================================================
    USAGE
    =========================================================================

        server = QueryServer(ServerConfig(data_file="covid_final_data.csv"))
        server.run()  # blocks until SIGINT/SIGTERM

    Or with a dataset already in memory (tests, embedding):

        server = QueryServer(config, dataset=load_records(path))

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        dataset: Optional[Dataset] = None,
        install_signal_handlers: bool = True,
    ):
        """
        Args:
            config: Server configuration. Defaults reproduce the historical
                    service (0.0.0.0:4040, 1 KB reads).
            dataset: Preloaded dataset. When None, run() loads
                     config.data_file.
            install_signal_handlers: Forwarded to SocketServer.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._dataset = dataset

        self._socket_server = SocketServer(
            self.config,
            install_signal_handlers=install_signal_handlers,
            on_shutdown=self._abort_sessions,
            on_ready=self.print_startup_banner,
        )

        self._session_pool: Optional[SessionPool] = None
        if self.config.concurrent:
            self._session_pool = SessionPool(
                self._process_connection,
                min_workers=self.config.min_workers,
                max_workers=self.config.max_workers,
                queue_size=self.config.queue_size,
            )

        self._greeting = self.config.greeting.encode("utf-8")

        # Open sessions by connection id, so shutdown can unblock their recv().
        # Reentrant: the SIGINT handler may run on the thread holding it.
        self._sessions: dict[str, Connection] = {}
        self._sessions_lock = threading.RLock()

        self._running = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def dataset(self) -> Dataset:
        """The loaded dataset. Loads it on first access."""
        return self.load_dataset()

    @property
    def address(self) -> tuple:
        """Bound (host, port), once listening."""
        return self._socket_server.address

    @property
    def active_sessions(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Load the dataset and serve until stopped (blocking).

        Raises:
            OSError: Dataset file unreadable, or bind failed.
            DatasetFormatError: Dataset file malformed.
            ListenerError: accept() failed.
        """
        self._setup_logging()

        # Dataset first: no point listening without data to serve
        self.load_dataset()

        self._running = True
        if self._session_pool:
            self._session_pool.start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def load_dataset(self) -> Dataset:
        """
        Load config.data_file unless a dataset is already present.

        Raises:
            OSError: File cannot be opened.
            DatasetFormatError: File is malformed.
        """
        if self._dataset is None:
            self._dataset = load_records(self.config.data_file)
        return self._dataset

    def stop(self):
        """Ask the server to stop. Safe from any thread."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket is up. False on timeout."""
        return self._socket_server.wait_until_ready(timeout)

    def print_startup_banner(self):
        """Print server startup information."""
        host, port = self.address
        mode = (
            f"{self.config.min_workers}-{self.config.max_workers} worker threads"
            if self.config.concurrent
            else "sequential (one client at a time)"
        )
        print()
        print("Server is running")
        print(f"  Listening on {host}:{port}")
        print(
            f"  Dataset: {len(self.dataset)} records, {len(self.dataset.regions)} regions"
            f" from {self.dataset.source or 'memory'}"
        )
        print(f"  Mode:    {mode}")
        print("  Press Ctrl+C to stop")
        print()

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("covidquery").setLevel(level)

    def _shutdown(self):
        """Stop the pool and close any session still open."""
        logger.info(f"Shutting down server ({self.active_sessions} open sessions)...")
        self._running = False

        self._abort_sessions()

        if self._session_pool:
            self._session_pool.shutdown(timeout=5.0)
            logger.debug(f"Session pool stats: {self._session_pool.stats}")

        logger.info("Server stopped")

    def _abort_sessions(self):
        with self._sessions_lock:
            sessions = list(self._sessions.values())
        for conn in sessions:
            conn.abort()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Dispatch a new connection (called by SocketServer).

        Sequential mode runs the whole session here, so the next accept()
        only happens once this client is gone.
        """
        if self._session_pool is None:
            self._process_connection(conn)
            return

        if not self._session_pool.submit(conn):
            logger.warning(
                f"[{conn.id}] Session pool full ({self._session_pool.in_flight} sessions), "
                f"rejecting connection from {conn.client_ip}"
            )
            # On the accept thread: no draining of what the client sent
            conn.abort()
            conn.close()

    def _process_connection(self, conn: Connection):
        """
        Run one client session to completion.

        Every exit path closes the connection (``with conn``).
        """
        if not self._running:
            conn.close()  # Queued before shutdown began
            return

        with self._sessions_lock:
            self._sessions[conn.id] = conn

        try:
            with conn:
                conn.state = ConnectionState.GREETING
                if not conn.send(self._greeting):
                    return

                while True:
                    payload = conn.read_request()
                    if payload is None:
                        break  # Client gone

                    conn.state = ConnectionState.PROCESSING
                    try:
                        response = self.answer(payload, conn.id, conn.client_ip)
                    except ResponseEncodingError:
                        logger.exception(f"[{conn.id}] Dropping connection")
                        break

                    if not conn.send(response):
                        break
        finally:
            with self._sessions_lock:
                self._sessions.pop(conn.id, None)
            logger.debug(
                f"[{conn.id}] Session with {conn.client_ip}:{conn.client_port} "
                f"ended after {conn.age:.2f}s"
            )

    def answer(self, payload: bytes, connection_id: str = "-", client_ip: str = "-") -> bytes:
        """
        Turn one request payload into response bytes.

        Never fails on bad input: garbled requests and malformed dates are
        answered with an empty result set.

        Args:
            payload: Bytes of one read.
            connection_id: For the access log.
            client_ip: For the access log.

        Returns:
            Encoded response, terminator included.

        Raises:
            ResponseEncodingError: If the result set cannot be encoded.
        """
        start_time = time.time()
        criteria = decode_request(payload)

        try:
            results = execute_query(self.dataset, criteria)
        except MalformedDateError as e:
            logger.warning(f"[{connection_id}] {e}; answering with no rows")
            results = []

        response = encode_response(results)

        log_query(
            QueryLog(
                query_id=new_query_id(),
                connection_id=connection_id,
                client_ip=client_ip,
                region=criteria.region,
                date=criteria.date,
                matches=len(results),
                response_bytes=len(response),
                duration_ms=(time.time() - start_time) * 1000,
                timestamp=timestamp(),
            ),
            log_format=self.config.log_format,
        )

        return response
