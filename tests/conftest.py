"""
Pytest configuration and shared fixtures.

Provides an in-memory stand-in for the database driver so the scrape
pipeline can be exercised without a running server.
"""

from typing import Any, Dict, List, Sequence, Tuple, Union
from unittest.mock import MagicMock

import pymysql
import pytest

from src.exporter.scraper import GLOBAL_STATUS_QUERY, SLAVE_STATUS_QUERY
from src.utils.config import ConnectionSettings
from src.utils.correlation import clear_scrape_id

# query -> (columns, rows) or an exception raised by execute()
QueryResult = Union[Tuple[Sequence[str], List[Sequence[Any]]], Exception]


class FakeCursor:
    """Cursor answering a fixed set of queries."""

    def __init__(self, results: Dict[str, QueryResult]):
        self.results = results
        self.executed: List[str] = []
        self.description = None
        self._rows: List[Sequence[Any]] = []
        self.closed = False

    def execute(self, query: str) -> int:
        self.executed.append(query)

        if query not in self.results:
            raise pymysql.err.ProgrammingError(1146, f"Unexpected query: {query}")

        result = self.results[query]
        if isinstance(result, Exception):
            raise result

        columns, rows = result
        self.description = tuple((name, None, None, None, None, None, True) for name in columns)
        self._rows = list(rows)
        return len(self._rows)

    def fetchall(self) -> List[Sequence[Any]]:
        return self._rows

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class FakeConnection:
    """Connection handing out a single FakeCursor."""

    def __init__(self, results: Dict[str, QueryResult]):
        self.cursor_instance = FakeCursor(results)
        self.closed = False

    def cursor(self) -> FakeCursor:
        return self.cursor_instance

    def close(self) -> None:
        self.closed = True


def status_rows(**values: Any) -> Tuple[Sequence[str], List[Sequence[Any]]]:
    """Build a SHOW GLOBAL STATUS result from keyword arguments."""
    return ("Variable_name", "Value"), [(name, value) for name, value in values.items()]


NO_SLAVE_STATUS: Tuple[Sequence[str], List[Sequence[Any]]] = (("Slave_IO_State",), [])


@pytest.fixture(autouse=True)
def reset_scrape_id():
    """Ensure no scrape ID leaks between tests."""
    clear_scrape_id()
    yield
    clear_scrape_id()


@pytest.fixture
def connection_settings():
    """Connection settings for a local test server."""
    return ConnectionSettings(host="db.test", port=3306, user="exporter", password="secret")


@pytest.fixture
def fake_database():
    """
    Factory building a driver connect() mock over canned query results.

    Global status and slave status default to an empty, healthy server.
    """
    def factory(results: Dict[str, QueryResult] = None):
        answers: Dict[str, QueryResult] = {
            GLOBAL_STATUS_QUERY: status_rows(),
            SLAVE_STATUS_QUERY: NO_SLAVE_STATUS,
        }
        answers.update(results or {})

        connection = FakeConnection(answers)
        connect = MagicMock(return_value=connection)
        return connect, connection

    return factory
