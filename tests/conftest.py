"""
pytest configuration and fixtures.
"""

import socket
import threading
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from covidquery import QueryServer, ServerConfig
from covidquery.data import Record, Dataset, load_records


# Raw rows as they appear in the source file: 12 columns, no header.
# positive=2 tests=3 date=4 discharged=5 expired=6 region=9 admitted=10
SAMPLE_ROWS = [
    "1,PB,100,1000,2020-05-,50,2,x,y,Punjab,30,z",
    "2,SD,200,2000,2020-05-,60,3,x,y,Sindh,40,z",
    "3,PB,150,1500,2020-06-,70,4,x,y,Punjab,35,z",
    "4,KP,80,900,2020-06-,20,1,x,y,KP,10,z",
]


@pytest.fixture
def sample_csv(tmp_path: Path) -> Path:
    """Dataset file with four rows over two dates and three regions."""
    path = tmp_path / "covid_final_data.csv"
    path.write_text("\n".join(SAMPLE_ROWS) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def dataset(sample_csv: Path) -> Dataset:
    """The sample file, loaded."""
    return load_records(sample_csv)


@pytest.fixture
def records() -> list[Record]:
    """Hand-built records in stored form, independent of the loader."""
    return [
        Record("2020-05-20", "100", "1000", "2", "30", "50", "Punjab"),
        Record("2020-05-20", "200", "2000", "3", "40", "60", "Sindh"),
        Record("2020-06-20", "150", "1500", "4", "35", "70", "Punjab"),
        Record("2020-06-20", "80", "900", "1", "10", "20", "KP"),
    ]


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class ServerThread:
    """Runs a QueryServer in a background thread."""

    def __init__(self, server: QueryServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def address(self) -> tuple:
        return self.server.address

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.stop()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)


def make_config(**overrides) -> ServerConfig:
    """Test configuration: loopback, OS-picked port, quiet logs."""
    settings = dict(
        host="127.0.0.1",
        port=0,
        min_workers=2,
        max_workers=4,
        log_level="WARNING",
    )
    settings.update(overrides)
    return ServerConfig(**settings)


@pytest.fixture
def server_factory(dataset: Dataset):
    """
    Factory that starts QueryServers over the sample dataset.

    Every server started is stopped after the test.
    """
    started: list[ServerThread] = []

    def _create(**overrides) -> ServerThread:
        server = QueryServer(make_config(**overrides), dataset=dataset)
        srv = ServerThread(server)
        srv.start()
        started.append(srv)
        return srv

    yield _create

    for srv in started:
        srv.stop()


@pytest.fixture
def running_server(server_factory) -> Generator[ServerThread, None, None]:
    """A concurrent server over the sample dataset."""
    yield server_factory()
