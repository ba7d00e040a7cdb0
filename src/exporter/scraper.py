"""
Scrape Driver for the Database Exporter

Runs the fixed sequence of introspection queries against one connection and
turns every row into typed observations:

    IDLE -> CONNECTING -> QUERYING_GLOBAL_STATUS -> QUERYING_SLAVE_STATUS
         -> [QUERYING_PERF_SCHEMA] -> [QUERYING_USER_STATS] -> DONE | FAILED

A connection, query or row-scan failure ends the poll in FAILED and sets the
error flag; observations already emitted stay emitted. A cell that cannot be
parsed is skipped on its own. Whatever the outcome, the three self-observation
metrics are emitted and the sink is closed before scrape() returns.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

import pymysql

from src.exporter.classifier import (
    TABLE_IO_OPERATIONS,
    TABLE_IO_WAITS,
    Classification,
    ColumnClassifier,
    MetricKind,
)
from src.exporter.parser import parse_status
from src.exporter.sink import MetricSink, Observation
from src.monitoring.metrics import ExporterMetrics
from src.utils.config import ConnectionSettings
from src.utils.correlation import ScrapeContext

logger = logging.getLogger(__name__)

GLOBAL_STATUS_QUERY = "SHOW GLOBAL STATUS"
SLAVE_STATUS_QUERY = "SHOW SLAVE STATUS"
TABLE_IO_WAITS_QUERY = (
    "SELECT OBJECT_SCHEMA, OBJECT_NAME, COUNT_READ, COUNT_WRITE, COUNT_FETCH, "
    "COUNT_INSERT, COUNT_UPDATE, COUNT_DELETE "
    "FROM performance_schema.table_io_waits_summary_by_table "
    "WHERE OBJECT_SCHEMA NOT IN ('mysql', 'performance_schema')"
)
USER_STATISTICS_QUERY = "SELECT * FROM information_schema.USER_STATISTICS"


class ScrapeError(Exception):
    """Base class for failures that abort a poll."""
    pass


class DatabaseConnectionError(ScrapeError):
    """Raised when the database connection cannot be opened."""
    pass


class QueryExecutionError(ScrapeError):
    """Raised when one of the fixed queries fails."""
    pass


class RowScanError(ScrapeError):
    """Raised when result metadata or row values cannot be read."""
    pass


class ScrapePhase(Enum):
    """States of a single poll."""
    IDLE = "idle"
    CONNECTING = "connecting"
    QUERYING_GLOBAL_STATUS = "querying_global_status"
    QUERYING_SLAVE_STATUS = "querying_slave_status"
    QUERYING_PERF_SCHEMA = "querying_perf_schema"
    QUERYING_USER_STATS = "querying_user_stats"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ScrapeState:
    """
    Ephemeral state of one poll.

    Attributes:
        start_time: Monotonic clock reading at poll entry
        error: Whether the poll failed
        rows_seen: Rows read across all queries
        phase: Current state machine phase
        failed_phase: Phase that was running when the poll failed
        duration_seconds: Elapsed time, set when the poll ends
        visited: Phases entered, in order
    """

    start_time: float
    error: bool = False
    rows_seen: int = 0
    phase: ScrapePhase = ScrapePhase.IDLE
    failed_phase: Optional[ScrapePhase] = None
    duration_seconds: float = 0.0
    visited: List[ScrapePhase] = field(default_factory=list)

    def enter(self, phase: ScrapePhase) -> None:
        logger.debug(f"Scrape phase {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.visited.append(phase)


class DatabaseScraper:
    """
    Produces the observations of one poll.

    Configuration (connection settings, feature toggles, rule tables) is
    fixed at construction. The self-observation metrics live as long as the
    scraper; overlapping scrape() calls on one scraper must be prevented by
    the caller.
    """

    def __init__(
        self,
        connection: ConnectionSettings,
        collect_table_io_waits: bool = False,
        collect_user_statistics: bool = False,
        scrape_timeout: Optional[float] = None,
        classifier: Optional[ColumnClassifier] = None,
        metrics: Optional[ExporterMetrics] = None,
        connect: Callable[..., Any] = pymysql.connect
    ):
        """
        Initialize the scraper.

        Args:
            connection: Database connection settings
            collect_table_io_waits: Query performance_schema table I/O waits
            collect_user_statistics: Query information_schema.USER_STATISTICS
            scrape_timeout: Per-poll deadline applied to connect/read/write
            classifier: Column classifier (default rule tables if omitted)
            metrics: Self-observation metrics (created if omitted)
            connect: Driver connect function
        """
        self.connection = connection
        self.collect_table_io_waits = collect_table_io_waits
        self.collect_user_statistics = collect_user_statistics
        self.scrape_timeout = scrape_timeout
        self.classifier = classifier or ColumnClassifier()
        self.metrics = metrics or ExporterMetrics()
        self._connect = connect
        self.last_state: Optional[ScrapeState] = None

        logger.info(
            f"DatabaseScraper initialized for {connection.describe()} "
            f"(table_io_waits={collect_table_io_waits}, user_statistics={collect_user_statistics})"
        )

    def scrape(self, sink: MetricSink) -> ScrapeState:
        """
        Run one poll, emitting into the sink.

        Never raises for database failures; they end the poll with the error
        flag set. The sink is closed on return.

        Args:
            sink: Destination of the poll's observations

        Returns:
            Final ScrapeState of the poll
        """
        state = ScrapeState(start_time=time.monotonic())
        self.metrics.begin_scrape()

        with ScrapeContext():
            try:
                self._run(state, sink)
                state.enter(ScrapePhase.DONE)
            except ScrapeError as e:
                state.error = True
                state.failed_phase = state.phase
                state.enter(ScrapePhase.FAILED)
                self.metrics.record_error()
                logger.error(f"Scrape failed during {state.failed_phase.value}: {e}")
            finally:
                state.duration_seconds = time.monotonic() - state.start_time
                self.metrics.record_duration(state.duration_seconds)
                self.last_state = state

                try:
                    for observation in self.metrics.observations():
                        sink.emit(observation)
                finally:
                    sink.close()

            logger.debug(
                f"Scrape finished in {state.duration_seconds:.3f}s: "
                f"phase={state.phase.value}, rows={state.rows_seen}, observations={sink.emitted}"
            )

        return state

    def _run(self, state: ScrapeState, sink: MetricSink) -> None:
        state.enter(ScrapePhase.CONNECTING)
        db = self._open()

        try:
            with db.cursor() as cursor:
                self._scrape_global_status(cursor, state, sink)
                self._scrape_slave_status(cursor, state, sink)

                if self.collect_table_io_waits:
                    self._scrape_table_io_waits(cursor, state, sink)

                if self.collect_user_statistics:
                    self._scrape_user_statistics(cursor, state, sink)
        except pymysql.MySQLError as e:
            # cursor open/close talks to the server as well
            raise RowScanError(f"Error reading from database: {e}") from e
        finally:
            try:
                db.close()
            except pymysql.MySQLError as e:
                logger.warning(f"Error closing database connection: {e}")

    def _open(self):
        try:
            return self._connect(**self.connection.connect_kwargs(self.scrape_timeout))
        except (pymysql.MySQLError, OSError) as e:
            raise DatabaseConnectionError(f"Error opening connection to database: {e}") from e

    def _query(self, cursor, query: str, what: str) -> List[Sequence[Any]]:
        try:
            cursor.execute(query)
        except pymysql.MySQLError as e:
            raise QueryExecutionError(f"Error running {what} query on database: {e}") from e

        try:
            return list(cursor.fetchall())
        except pymysql.MySQLError as e:
            raise RowScanError(f"Error getting result set: {e}") from e

    @staticmethod
    def _columns(cursor) -> List[str]:
        try:
            return [column[0] for column in cursor.description]
        except (TypeError, IndexError) as e:
            raise RowScanError(f"Error retrieving column list: {e}") from e

    def _scrape_global_status(self, cursor, state: ScrapeState, sink: MetricSink) -> None:
        state.enter(ScrapePhase.QUERYING_GLOBAL_STATUS)

        for row in self._query(cursor, GLOBAL_STATUS_QUERY, "global status"):
            state.rows_seen += 1
            try:
                key, raw = row
            except (TypeError, ValueError) as e:
                raise RowScanError(f"Unexpected global status row {row!r}: {e}") from e

            value, ok = parse_status(raw)
            if not ok:
                continue

            self._emit(sink, self.classifier.classify_global_status(_text(key)), value)

    def _scrape_slave_status(self, cursor, state: ScrapeState, sink: MetricSink) -> None:
        state.enter(ScrapePhase.QUERYING_SLAVE_STATUS)

        rows = self._query(cursor, SLAVE_STATUS_QUERY, "slave status")
        if not rows:
            return

        if len(rows) > 1:
            logger.warning(
                f"SHOW SLAVE STATUS returned {len(rows)} rows; multi-source replication "
                f"is not supported, reporting the first channel only"
            )

        columns = self._columns(cursor)
        row = rows[0]
        state.rows_seen += 1

        if len(row) != len(columns):
            raise RowScanError(f"Slave status row has {len(row)} values for {len(columns)} columns")

        for column, raw in zip(columns, row):
            value, ok = parse_status(raw)
            if ok:
                self._emit(sink, self.classifier.classify_slave_status(column), value)

    def _scrape_table_io_waits(self, cursor, state: ScrapeState, sink: MetricSink) -> None:
        state.enter(ScrapePhase.QUERYING_PERF_SCHEMA)

        for row in self._query(cursor, TABLE_IO_WAITS_QUERY, "table I/O waits"):
            state.rows_seen += 1
            if len(row) != 2 + len(TABLE_IO_OPERATIONS):
                raise RowScanError(f"Table I/O waits row has {len(row)} values, expected {2 + len(TABLE_IO_OPERATIONS)}")

            schema, name = _text(row[0]), _text(row[1])
            counts = []
            for raw in row[2:]:
                count, ok = parse_status(raw)
                if not ok:
                    raise RowScanError(f"Non-numeric table I/O waits counter {raw!r} for {schema}.{name}")
                counts.append(count)

            for operation, count in zip(TABLE_IO_OPERATIONS, counts):
                sink.emit(Observation(TABLE_IO_WAITS, MetricKind.COUNTER, count, (schema, name, operation)))

    def _scrape_user_statistics(self, cursor, state: ScrapeState, sink: MetricSink) -> None:
        state.enter(ScrapePhase.QUERYING_USER_STATS)

        rows = self._query(cursor, USER_STATISTICS_QUERY, "user statistics")
        columns = self._columns(cursor)
        if not columns:
            raise RowScanError("USER_STATISTICS returned no columns")

        # Resolved once per query, position -> classification
        classifications = [self.classifier.classify_user_statistic(column) for column in columns[1:]]

        for row in rows:
            state.rows_seen += 1
            if len(row) != len(columns):
                raise RowScanError(f"USER_STATISTICS row has {len(row)} values for {len(columns)} columns")

            user = _text(row[0])
            for classification, raw in zip(classifications, row[1:]):
                value, ok = parse_status(raw)
                if not ok:
                    logger.debug(f"Skipping non-numeric {classification.identity.fq_name} for user {user}")
                    continue
                self._emit(sink, classification._replace(label_values=(user,)), value)

    @staticmethod
    def _emit(sink: MetricSink, classification: Classification, value: float) -> None:
        sink.emit(Observation(
            classification.identity,
            classification.kind,
            value,
            classification.label_values
        ))


def _text(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return "" if value is None else str(value)
