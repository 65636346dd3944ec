"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the query server:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds 0.0.0.0:4040 and runs the accept() loop                    │
    │  • Bind/accept failures propagate to the caller                     │
    │  • SIGINT/SIGTERM stop the loop                                     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          SESSION POOL                                │
    │  • Optional: runs each client session on a worker thread            │
    │  • Without it, sessions run one at a time on the accept thread      │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • One recv() = one request                                         │
    │  • sendall() for responses                                          │
    │  • Closed on every exit path                                        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .session_pool import SessionPool

__all__ = [
    "SocketServer",     # Listening socket and accept loop
    "Connection",       # Client socket wrapper
    "ConnectionState",  # Session lifecycle states
    "SessionPool",      # Worker threads for concurrent sessions
]
