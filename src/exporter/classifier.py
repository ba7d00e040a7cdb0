"""
Column Classifier for Database Status Metrics

Maps raw status variable and column names onto a stable metric namespace.
Rules are applied in precedence order:

1. Explicit static map (user statistics columns)
2. Regex families (global status: com_, connection_errors_, innodb_rows_,
   performance_schema_)
3. Generic fallback: the lower-cased raw name becomes an untyped metric

Classification never fails. Unknown or future columns always resolve to a
fallback identity so new server versions keep being exported.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

# Namespace for all metrics.
NAMESPACE = "db"

# Subsystems.
EXPORTER = "exporter"
GLOBAL_STATUS = "global_status"
SLAVE_STATUS = "slave_status"
PERFORMANCE_SCHEMA = "perf_schema"
INFORMATION_SCHEMA = "info_schema"

SUBSYSTEMS = (EXPORTER, GLOBAL_STATUS, SLAVE_STATUS, PERFORMANCE_SCHEMA, INFORMATION_SCHEMA)


class MetricKind(Enum):
    """Value type of an exported metric."""
    COUNTER = "counter"
    GAUGE = "gauge"
    UNTYPED = "untyped"


@dataclass(frozen=True)
class MetricIdentity:
    """
    Stable identity of an exported metric.

    Attributes:
        subsystem: One of SUBSYSTEMS
        name: Metric name within the subsystem
        label_names: Ordered label names
        help: Metric description
        namespace: Metric namespace prefix
    """

    subsystem: str
    name: str
    label_names: Tuple[str, ...] = ()
    help: str = ""
    namespace: str = NAMESPACE

    @property
    def fq_name(self) -> str:
        """Fully-qualified metric name, e.g. db_global_status_commands_total."""
        return "_".join(part for part in (self.namespace, self.subsystem, self.name) if part)


class Classification(NamedTuple):
    """Result of classifying one raw column."""
    identity: MetricIdentity
    kind: MetricKind
    label_values: Tuple[str, ...] = ()


@lru_cache(maxsize=None)
def fallback_identity(subsystem: str, raw_name: str, help: str) -> MetricIdentity:
    """
    Build the generic label-less identity for an unrecognized column.

    Cached so repeated polls reuse the same identity object.
    """
    return MetricIdentity(subsystem=subsystem, name=raw_name.lower(), help=help)


# Global status families.
GLOBAL_COMMANDS = MetricIdentity(
    GLOBAL_STATUS, "commands_total",
    ("command",),
    "Total number of executed commands.",
)
GLOBAL_CONNECTION_ERRORS = MetricIdentity(
    GLOBAL_STATUS, "connection_errors_total",
    ("error",),
    "Total number of connection errors.",
)
GLOBAL_INNODB_ROW_OPS = MetricIdentity(
    GLOBAL_STATUS, "innodb_row_ops_total",
    ("operation",),
    "Total number of InnoDB row operations.",
)
GLOBAL_PERFORMANCE_SCHEMA_LOST = MetricIdentity(
    GLOBAL_STATUS, "performance_schema_lost_total",
    ("instrumentation",),
    "Total number of instrumentations that could not be loaded or created due to memory constraints.",
)

GLOBAL_STATUS_FAMILIES: Mapping[str, MetricIdentity] = MappingProxyType({
    "com": GLOBAL_COMMANDS,
    "connection_errors": GLOBAL_CONNECTION_ERRORS,
    "innodb_rows": GLOBAL_INNODB_ROW_OPS,
    "performance_schema": GLOBAL_PERFORMANCE_SCHEMA_LOST,
})

GLOBAL_STATUS_RE = re.compile(r"^(com|connection_errors|innodb_rows|performance_schema)_(.*)$", re.DOTALL)

# Performance schema table I/O waits.
TABLE_IO_WAITS = MetricIdentity(
    PERFORMANCE_SCHEMA, "table_io_waits_total",
    ("schema", "name", "operation"),
    "The total number of table I/O wait events for each table and operation.",
)
TABLE_IO_OPERATIONS = ("read", "write", "fetch", "insert", "update", "delete")


def _user_stat(kind: MetricKind, column: str, help: str) -> Tuple[MetricKind, MetricIdentity]:
    identity = MetricIdentity(
        INFORMATION_SCHEMA,
        f"user_statistics_{column.lower()}",
        ("user",),
        help,
    )
    return kind, identity


USER_STATISTICS: Mapping[str, Tuple[MetricKind, MetricIdentity]] = MappingProxyType({
    column: _user_stat(kind, column, help)
    for column, kind, help in (
        ("TOTAL_CONNECTIONS", MetricKind.COUNTER, "The number of connections created for this user."),
        ("CONCURRENT_CONNECTIONS", MetricKind.GAUGE, "The number of concurrent connections for this user."),
        ("CONNECTED_TIME", MetricKind.COUNTER, "The cumulative number of seconds elapsed while there were connections from this user."),
        ("BUSY_TIME", MetricKind.COUNTER, "The cumulative number of seconds there was activity on connections from this user."),
        ("CPU_TIME", MetricKind.COUNTER, "The cumulative CPU time elapsed, in seconds, while servicing this user's connections."),
        ("BYTES_RECEIVED", MetricKind.COUNTER, "The number of bytes received from this user's connections."),
        ("BYTES_SENT", MetricKind.COUNTER, "The number of bytes sent to this user's connections."),
        ("BINLOG_BYTES_WRITTEN", MetricKind.COUNTER, "The number of bytes written to the binary log from this user's connections."),
        ("ROWS_FETCHED", MetricKind.COUNTER, "The number of rows fetched by this user's connections."),
        ("ROWS_UPDATED", MetricKind.COUNTER, "The number of rows updated by this user's connections."),
        ("TABLE_ROWS_READ", MetricKind.COUNTER, "The number of rows read from tables by this user's connections. (It may be different from ROWS_FETCHED.)"),
        ("SELECT_COMMANDS", MetricKind.COUNTER, "The number of SELECT commands executed from this user's connections."),
        ("UPDATE_COMMANDS", MetricKind.COUNTER, "The number of UPDATE commands executed from this user's connections."),
        ("OTHER_COMMANDS", MetricKind.COUNTER, "The number of other commands executed from this user's connections."),
        ("COMMIT_TRANSACTIONS", MetricKind.COUNTER, "The number of COMMIT commands issued by this user's connections."),
        ("ROLLBACK_TRANSACTIONS", MetricKind.COUNTER, "The number of ROLLBACK commands issued by this user's connections."),
        ("DENIED_CONNECTIONS", MetricKind.COUNTER, "The number of connections denied to this user."),
        ("LOST_CONNECTIONS", MetricKind.COUNTER, "The number of this user's connections that were terminated uncleanly."),
        ("ACCESS_DENIED", MetricKind.COUNTER, "The number of times this user's connections issued commands that were denied."),
        ("EMPTY_QUERIES", MetricKind.COUNTER, "The number of times this user's connections sent empty queries to the server."),
        ("TOTAL_SSL_CONNECTIONS", MetricKind.COUNTER, "The number of times this user's connections connected using SSL to the server."),
    )
})


class ColumnClassifier:
    """
    Resolves raw column names to metric identities.

    The rule tables are immutable and shared; one classifier is built at
    startup and handed to the scraper.
    """

    def __init__(
        self,
        global_status_re: re.Pattern = GLOBAL_STATUS_RE,
        global_status_families: Optional[Mapping[str, MetricIdentity]] = None,
        user_statistics: Optional[Mapping[str, Tuple[MetricKind, MetricIdentity]]] = None
    ):
        """
        Initialize the classifier.

        Args:
            global_status_re: Regex with (family, remainder) capture groups
            global_status_families: Family name to identity map
            user_statistics: User statistics column to (kind, identity) map
        """
        self.global_status_re = global_status_re
        self.global_status_families = global_status_families or GLOBAL_STATUS_FAMILIES
        self.user_statistics = user_statistics or USER_STATISTICS

        logger.debug(
            f"Initialized ColumnClassifier with {len(self.global_status_families)} "
            f"global status families and {len(self.user_statistics)} user statistics"
        )

    def classify_global_status(self, key: str) -> Classification:
        """
        Classify a SHOW GLOBAL STATUS variable name.

        Args:
            key: Variable name, e.g. "Com_select"

        Returns:
            Classification with the family label filled in, or the untyped
            fallback when no family matches
        """
        lowered = key.lower()
        match = self.global_status_re.match(lowered)

        if match:
            identity = self.global_status_families.get(match.group(1))
            if identity is not None:
                return Classification(identity, MetricKind.COUNTER, (match.group(2),))

        identity = fallback_identity(GLOBAL_STATUS, lowered, "Generic metric from SHOW GLOBAL STATUS.")
        return Classification(identity, MetricKind.UNTYPED)

    def classify_slave_status(self, column: str) -> Classification:
        """Classify a SHOW SLAVE STATUS column. Always the untyped fallback."""
        identity = fallback_identity(SLAVE_STATUS, column, "Generic metric from SHOW SLAVE STATUS.")
        return Classification(identity, MetricKind.UNTYPED)

    def classify_user_statistic(self, column: str) -> Classification:
        """
        Classify a USER_STATISTICS column.

        Known columns are matched case-sensitively. Label values are left
        empty; the caller supplies the user name for each row.
        """
        known = self.user_statistics.get(column)
        if known is not None:
            kind, identity = known
            return Classification(identity, kind)

        return Classification(_unknown_user_statistic(column), MetricKind.UNTYPED)


@lru_cache(maxsize=None)
def _unknown_user_statistic(column: str) -> MetricIdentity:
    return MetricIdentity(
        INFORMATION_SCHEMA,
        f"user_statistics_{column.lower()}",
        ("user",),
        f"Unsupported metric from column {column}",
    )
