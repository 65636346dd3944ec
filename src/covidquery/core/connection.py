"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the small API the query
handler needs: send the greeting, read a request, send a response, close.

=============================================================================
ONE READ IS ONE REQUEST
=============================================================================

TCP is a byte stream. It does NOT preserve message boundaries:

    Client sends:
        send('{"Query":{"Region":"X"}}')

    Server might receive:
        recv() → '{"Query":{"Reg'      (partial!)
        recv() → 'ion":"X"}}'          (rest)

This protocol has no length prefix and no request delimiter, so the server
cannot tell where a request ends. It does what the service has always done:
the bytes returned by ONE recv() call are treated as ONE complete request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  KNOWN LIMITATION                                                    │
    │  ─────────────────────────────────────────────────────────────────  │
    │  - Requests larger than buffer_size are cut in two.                 │
    │  - Requests split across TCP segments are read in pieces.           │
    │  Either way the pieces fail to decode and are answered with an      │
    │  empty result set. Small requests on a LAN arrive in one segment    │
    │  in practice.                                                        │
    └─────────────────────────────────────────────────────────────────────┘

Responses don't have this problem from our side: sendall() keeps writing
until every byte is out, and the client reads until the "\\n\\n" terminator.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    GREETING ──────► AWAITING_REQUEST ──────► PROCESSING
       │                  ▲      │                 │
       │                  │      │                 │
       │                  └──────┼─────────────────┘
       │                         │   (response sent)
       │                         │
       │    send fails           │  EOF / read error / send fails
       └────────────────────► CLOSING ◄────────────┘
                                 │
                                 ▼
                               CLOSED

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states.

    Tracked for logging and so close() is idempotent.
    """
    GREETING = "greeting"                  # Just accepted, banner not sent yet
    AWAITING_REQUEST = "awaiting_request"  # Blocked in recv()
    PROCESSING = "processing"              # Decoding, filtering, encoding
    CLOSING = "closing"                    # Shutdown sequence in progress
    CLOSED = "closed"                      # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. SINGLE-READ REQUESTS                                             │
    │     └── read_request() returns the bytes of exactly one recv()      │
    │                                                                      │
    │  2. FAILURE AS END OF STREAM                                         │
    │     └── EOF, resets and socket errors all mean "client gone"        │
    │     └── The handler only has to check for None / False              │
    │                                                                      │
    │  3. STATE AND COUNTERS                                               │
    │     └── Current state and requests handled, for logging             │
    │                                                                      │
    │  4. GUARANTEED CLOSE                                                 │
    │     └── Context manager closes on every exit path                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        requests_handled: Number of requests read on this connection.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.GREETING
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 1024
    timeout: Optional[float] = None  # None = block forever

    def __post_init__(self):
        """Put the socket in blocking mode, with the optional timeout."""
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one request: the bytes of a single recv() call.

        Returns:
            The received bytes, or None if the client disconnected or the
            read failed for any reason (timeout included).
        """
        self.state = ConnectionState.AWAITING_REQUEST

        try:
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            logger.debug(f"[{self.id}] Read timed out")
            return None
        except OSError as e:
            # ConnectionResetError, BrokenPipeError, ... are all OSError
            logger.debug(f"[{self.id}] Read failed: {e}")
            return None

        if not data:
            return None  # Clean EOF

        self.requests_handled += 1
        return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send bytes to the client.

        Uses sendall() so a large result set is written completely.

        Args:
            data: Bytes to send.

        Returns:
            True if send succeeded, False if connection lost.
        """
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

        1. shutdown(SHUT_WR): tell the client we're done sending (FIN)
        2. Drain whatever the client already sent, briefly
        3. close(): release the file descriptor

        Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass  # socket.timeout is an OSError too

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def abort(self):
        """
        Unblock a session stuck in recv() so it ends on its own.

        Used at shutdown, possibly from another thread or a signal handler;
        the owning session still calls close().
        """
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Not connected anymore

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        """
        Allows ``with conn:`` so the socket is closed on every exit path:

            with conn:
                data = conn.read_request()
                conn.send(response)
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions
