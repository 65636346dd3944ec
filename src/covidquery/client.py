"""
=============================================================================
QUERY CLIENT
=============================================================================

A small blocking client for the query server, used by the ``query`` CLI
command and the integration tests.

    with QueryClient("127.0.0.1", 4040) as client:
        rows = client.query(region="Punjab", date="20-05-2020")

Both the greeting and every response end with a blank line ("\\n\\n"), so
the client reads until it sees one. The request is written in one sendall()
because the server treats a single read as the whole request.

=============================================================================
"""

import logging
import socket
from typing import Optional

from .protocol import QueryCriteria, encode_request, decode_response, MESSAGE_TERMINATOR


logger = logging.getLogger(__name__)


class QueryClient:
    """
    Blocking client connection to a QueryServer.

    Attributes:
        greeting: Banner received on connect (terminator stripped).
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 4040, timeout: Optional[float] = 10.0):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.greeting: str = ""

        self._socket: Optional[socket.socket] = None
        self._buffer = b""

    def connect(self) -> "QueryClient":
        """
        Open the connection and consume the greeting banner.

        Raises:
            OSError: If the server cannot be reached.
            ConnectionError: If the server closes before greeting.
        """
        self._socket = socket.create_connection((self.host, self.port), timeout=self.timeout)
        try:
            self.greeting = self._read_message().decode("utf-8")
        except Exception:
            self.close()
            raise
        logger.debug(f"Connected to {self.host}:{self.port}: {self.greeting!r}")
        return self

    def _read_message(self) -> bytes:
        """Read up to and excluding the next MESSAGE_TERMINATOR."""
        while MESSAGE_TERMINATOR not in self._buffer:
            chunk = self._socket.recv(4096)
            if not chunk:
                raise ConnectionError("Server closed the connection")
            self._buffer += chunk

        message, _, self._buffer = self._buffer.partition(MESSAGE_TERMINATOR)
        return message

    def send_raw(self, payload: bytes) -> bytes:
        """
        Send arbitrary request bytes and return the raw response.

        The terminator is stripped from the returned bytes.
        """
        if self._socket is None:
            raise RuntimeError("Not connected")

        self._socket.sendall(payload)
        return self._read_message()

    def query(self, region: str = "", date: str = "") -> list[dict]:
        """
        Run one query.

        Args:
            region: Region to match exactly ("" = no region filter).
            date: DD-MM-YYYY date ("" = no date filter).

        Returns:
            Row dicts keyed by the wire field names.
        """
        response = self.send_raw(encode_request(QueryCriteria(region=region, date=date)))
        return decode_response(response)

    def close(self):
        if self._socket is not None:
            try:
                self._socket.close()
            finally:
                self._socket = None
                self._buffer = b""

    def __enter__(self) -> "QueryClient":
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
