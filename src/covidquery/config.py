"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the query server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m covidquery serve --port 5050                    │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── COVIDQUERY_PORT=5050 python -m covidquery                 │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The defaults reproduce the historical service exactly: every interface,
port 4040, 1 KB reads, no socket timeouts, covid_final_data.csv in the
working directory.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .data import DEFAULT_DATA_FILE


GREETING = "Connected to server, send the query in the form of JSON object\n\n"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the query server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, timeout

    DATA
    - data_file

    CONCURRENCY
    - concurrent, min_workers, max_workers, queue_size

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Address to bind. The service has always listened on all interfaces."""

    port: int = 4040
    """TCP port. 0 lets the OS pick one (tests)."""

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 1024
    """
    Size of the single read that makes up one request.
    Requests larger than this are cut and will decode as empty criteria.
    """

    timeout: Optional[float] = None
    """
    Per-connection socket timeout in seconds.
    None = block forever, which is how the service has always behaved.
    """

    greeting: str = GREETING
    """Banner written to every client on connect."""

    # ─────────────────────────────────────────────────────────────────────
    # DATA
    # ─────────────────────────────────────────────────────────────────────

    data_file: str = DEFAULT_DATA_FILE
    """CSV file loaded once at startup. Relative to the working directory."""

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    concurrent: bool = True
    """
    Handle connections on a thread pool.
    False = one client at a time on the accept thread, as the service always has.
    """

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 16
    """Upper bound on worker threads. Also bounds concurrent clients."""

    queue_size: int = 100
    """Accepted connections waiting for a free worker."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        COVIDQUERY_HOST        Bind address (default: 0.0.0.0)
        COVIDQUERY_PORT        Port (default: 4040)
        COVIDQUERY_DATA_FILE   Dataset path (default: covid_final_data.csv)
        COVIDQUERY_WORKERS     Max worker threads (default: 16)
        COVIDQUERY_TIMEOUT     Socket timeout in seconds (default: none)
        COVIDQUERY_SEQUENTIAL  "1"/"true" to serve one client at a time
        COVIDQUERY_LOG_LEVEL   Logging level (default: INFO)
        COVIDQUERY_LOG_FORMAT  text or json (default: text)

        =====================================================================
        """
        timeout = os.getenv("COVIDQUERY_TIMEOUT")
        sequential = os.getenv("COVIDQUERY_SEQUENTIAL", "").lower() in ("1", "true", "yes")
        max_workers = int(os.getenv("COVIDQUERY_WORKERS", "16"))

        return cls(
            host=os.getenv("COVIDQUERY_HOST", "0.0.0.0"),
            port=int(os.getenv("COVIDQUERY_PORT", "4040")),
            data_file=os.getenv("COVIDQUERY_DATA_FILE", DEFAULT_DATA_FILE),
            timeout=float(timeout) if timeout else None,
            concurrent=not sequential,
            min_workers=min(4, max_workers),
            max_workers=max_workers,
            log_level=os.getenv("COVIDQUERY_LOG_LEVEL", "INFO"),
            log_format=os.getenv("COVIDQUERY_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so a bad value fails immediately instead of
        on the first client.

        Raises:
            ValueError: On the first invalid setting.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
