"""
Self-Observation Metrics for the Database Exporter

Three long-lived metrics describing the exporter's own scrape health. They
are created once per exporter, mutated in place once per poll, and emitted
after every poll whatever its outcome.
"""

import logging
from typing import List

from prometheus_client import Counter, Gauge

from src.exporter.classifier import EXPORTER, NAMESPACE, MetricIdentity, MetricKind
from src.exporter.sink import Observation

logger = logging.getLogger(__name__)

LAST_SCRAPE_DURATION = MetricIdentity(
    EXPORTER, "last_scrape_duration_seconds",
    help="Duration of the last scrape of metrics from the database.",
)
SCRAPES_TOTAL = MetricIdentity(
    EXPORTER, "scrapes_total",
    help="Total number of times the database was scraped for metrics.",
)
LAST_SCRAPE_ERROR = MetricIdentity(
    EXPORTER, "last_scrape_error",
    help="Whether the last scrape of metrics from the database resulted in an error (1 for error, 0 for success).",
)


def _sample_value(metric, sample_name: str) -> float:
    for family in metric.collect():
        for sample in family.samples:
            if sample.name == sample_name:
                return sample.value
    return 0.0


class ExporterMetrics:
    """
    Scrape health metrics of one exporter instance.

    Not thread-safe across overlapping polls; the caller serializes polls.
    """

    def __init__(self, namespace: str = NAMESPACE):
        """
        Initialize exporter metrics.

        Args:
            namespace: Metric namespace prefix
        """
        self.namespace = namespace

        # Not registered: values reach the registry through the scrape sink
        self.duration = Gauge(
            LAST_SCRAPE_DURATION.name,
            LAST_SCRAPE_DURATION.help,
            namespace=namespace,
            subsystem=EXPORTER,
            registry=None
        )

        self.total_scrapes = Counter(
            SCRAPES_TOTAL.name,
            SCRAPES_TOTAL.help,
            namespace=namespace,
            subsystem=EXPORTER,
            registry=None
        )

        self.error = Gauge(
            LAST_SCRAPE_ERROR.name,
            LAST_SCRAPE_ERROR.help,
            namespace=namespace,
            subsystem=EXPORTER,
            registry=None
        )

        logger.debug("ExporterMetrics initialized")

    def begin_scrape(self) -> None:
        """Reset the error flag and count a new scrape attempt."""
        self.error.set(0)
        self.total_scrapes.inc()

    def record_error(self) -> None:
        """Flag the current scrape as failed."""
        self.error.set(1)

    def record_duration(self, duration_seconds: float) -> None:
        """Record how long the current scrape took."""
        self.duration.set(max(duration_seconds, 0.0))

    @property
    def duration_seconds(self) -> float:
        return _sample_value(self.duration, self._identity(LAST_SCRAPE_DURATION).fq_name)

    @property
    def scrapes(self) -> float:
        return _sample_value(self.total_scrapes, self._identity(SCRAPES_TOTAL).fq_name)

    @property
    def last_error(self) -> float:
        return _sample_value(self.error, self._identity(LAST_SCRAPE_ERROR).fq_name)

    def observations(self) -> List[Observation]:
        """
        Snapshot the three metrics as observations.

        Returns:
            Duration, scrape count and error flag, in that order
        """
        return [
            Observation(self._identity(LAST_SCRAPE_DURATION), MetricKind.GAUGE, self.duration_seconds),
            Observation(self._identity(SCRAPES_TOTAL), MetricKind.COUNTER, self.scrapes),
            Observation(self._identity(LAST_SCRAPE_ERROR), MetricKind.GAUGE, self.last_error),
        ]

    def _identity(self, identity: MetricIdentity) -> MetricIdentity:
        if identity.namespace == self.namespace:
            return identity
        return MetricIdentity(identity.subsystem, identity.name, identity.label_names, identity.help, self.namespace)
