"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket: create, bind, listen, accept, close.
Every accepted client socket is wrapped in a Connection and handed to a
callback supplied by the QueryServer.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a TCP socket
    2. bind()      Reserve 0.0.0.0:4040
    3. listen()    OS starts queueing incoming connections
    4. accept()    BLOCKS until a client connects, returns a NEW socket
    5. close()     Release the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    │   (Server Socket)     │     Bound to 0.0.0.0:4040
                    └───────────┬───────────┘     Never sends/receives data
                                │
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Client    │         │ Client    │         │ Client    │
    │ Socket 1  │         │ Socket 2  │         │ Socket 3  │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
FAILURE POLICY
=============================================================================

    bind() fails     → OSError propagates out of start()
    accept() fails   → ListenerError propagates out of start()

Neither is retried. Both are fatal to the process; the decision to exit is
made by the entry point, never here.

=============================================================================
SIGNAL HANDLING
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (docker stop, kill) flip the running flag. The
accept() call waits at most one second at a time, so the loop notices
within a second and returns. Handlers can only be installed from the main
thread; servers started on other threads (tests) skip them.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from ..errors import ListenerError
from .connection import Connection


logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 1.0


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(callback)                                                   │
    │        ├──► _create_socket()   socket() + SO_REUSEADDR              │
    │        ├──► bind()             OSError → caller                      │
    │        ├──► listen()                                                 │
    │        ├──► _setup_signals()   SIGTERM/SIGINT → shutdown()          │
    │        └──► _accept_loop()     BLOCKS here                           │
    │                 └──► accept() → Connection → callback(conn)         │
    │                                                                      │
    │    shutdown()       _running = False                                 │
    │    _cleanup()       restore signals, close socket                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(
        self,
        config: ServerConfig,
        install_signal_handlers: bool = True,
        on_shutdown: Optional[Callable[[], None]] = None,
        on_ready: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize the socket server.

        Args:
            config: Server configuration (host, port, backlog, buffer_size,
                    timeout).
            install_signal_handlers: Catch SIGINT/SIGTERM for shutdown when
                                     started from the main thread.
            on_shutdown: Called by shutdown(), e.g. to abort open sessions
                         that would otherwise keep blocking in recv().
            on_ready: Called once the socket is listening, before the
                      first accept().

        The socket is created lazily in start().
        """
        self.config = config
        self.install_signal_handlers = install_signal_handlers
        self.on_shutdown = on_shutdown
        self.on_ready = on_ready

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None

        # Set once the socket is listening; tests wait on it
        self._ready_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """
        The address actually bound.

        Differs from the configured one when port 0 was requested.
        """
        return self._bound_address or (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Allow immediate restart without "Address already in use"
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # accept() returns every ACCEPT_POLL_INTERVAL to check _running
        sock.settimeout(ACCEPT_POLL_INTERVAL)

        return sock

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers that trigger shutdown()."""
        if not self.install_signal_handlers:
            return
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept connections until shutdown() is called.

        Args:
            connection_handler: Called with each new Connection. In
                                sequential mode it runs the whole client
                                session before returning.

        Raises:
            OSError: If the socket cannot be bound.
            ListenerError: If accept() fails while the server is running.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._setup_signals()

        host, port = self._bound_address
        logger.info(f"Server listening on {host}:{port}")
        if self.on_ready:
            self.on_ready()
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until _running becomes False.

        ┌─────────────────────────────────────────────────────────────────┐
        │   while self._running:                                           │
        │       accept()          ← at most ACCEPT_POLL_INTERVAL           │
        │       Connection(...)   ← wrap, apply buffer size / timeout      │
        │       handler(conn)     ← QueryServer takes it from here         │
        └─────────────────────────────────────────────────────────────────┘

        Raises:
            ListenerError: accept() failed for a reason other than shutdown.
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue  # Poll tick: re-check self._running
            except OSError as e:
                if not self._running:
                    break  # Socket closed by shutdown
                logger.critical(f"Accept error: {e}")
                raise ListenerError(f"accept() failed: {e}") from e

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
            )

            connection_handler(conn)

    def shutdown(self):
        """
        Stop accepting connections.

        Safe to call from a signal handler or another thread, and more
        than once.
        """
        logger.info("Shutting down socket server...")
        self._running = False

        if self.on_shutdown:
            self.on_shutdown()

    def _cleanup(self):
        """Restore signal handlers and close the listening socket."""
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._running = False
        self._ready_event.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the socket is listening.

        Returns:
            True once listening, False on timeout.
        """
        return self._ready_event.wait(timeout)
