"""
=============================================================================
COVIDQUERY - TCP Query Server over an In-Memory COVID Dataset
=============================================================================

A client connects over TCP, sends a small JSON query naming a date and/or
a region, and gets the matching rows of a CSV dataset back as JSON. The
dataset is loaded once at startup and never changes.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    covidquery/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m covidquery)
    ├── server.py            # QueryServer: sessions and orchestration
    ├── client.py            # QueryClient
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # Exception hierarchy
    ├── access_log.py        # Per-query structured log
    ├── core/                # Low-level networking
    │   ├── socket_server.py # Listening socket and accept loop
    │   ├── connection.py    # Client socket wrapper
    │   └── session_pool.py  # Worker threads
    ├── data/
    │   └── dataset.py       # Record, Dataset, CSV loader
    ├── query/
    │   ├── filters.py       # Date reformatting, linear-scan selection
    │   └── engine.py        # Criteria → records
    └── protocol/
        ├── request.py       # Request decoding (best effort)
        └── response.py      # Response envelope encoding

=============================================================================
QUICK START
=============================================================================

    from covidquery import QueryServer, ServerConfig

    server = QueryServer(ServerConfig(port=4040, data_file="covid_final_data.csv"))
    server.run()

    # elsewhere
    from covidquery import QueryClient

    with QueryClient("127.0.0.1", 4040) as client:
        rows = client.query(region="Punjab")

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import QueryServer
from .client import QueryClient
from .data import Record, Dataset, load_records

__all__ = [
    "QueryServer",
    "QueryClient",
    "ServerConfig",
    "Record",
    "Dataset",
    "load_records",
    "__version__",
]
