"""
Registry Collector for the Database Exporter

Bridges the scraper to prometheus_client: every registry collection runs one
poll, drains the poll's sink and groups the observations into metric families.
Polls are serialized with a lock because the self-observation metrics are
shared between polls.
"""

import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import pymysql
from prometheus_client import CollectorRegistry
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric, UnknownMetricFamily
from prometheus_client.registry import Collector

from src.exporter.classifier import MetricIdentity, MetricKind
from src.exporter.scraper import DatabaseScraper
from src.exporter.sink import MetricSink, Observation
from src.utils.config import ExporterConfig

logger = logging.getLogger(__name__)

_FAMILY_TYPES = {
    MetricKind.COUNTER: CounterMetricFamily,
    MetricKind.GAUGE: GaugeMetricFamily,
    MetricKind.UNTYPED: UnknownMetricFamily,
}


def build_families(observations: Iterable[Observation]) -> List[Metric]:
    """
    Group observations into prometheus_client metric families.

    Families keep the order in which their identity was first seen; samples
    keep emission order.

    Args:
        observations: Observations of one poll

    Returns:
        List of metric families
    """
    families: Dict[Tuple[MetricIdentity, MetricKind], Metric] = {}

    for observation in observations:
        key = (observation.identity, observation.kind)
        family = families.get(key)

        if family is None:
            identity = observation.identity
            family = _FAMILY_TYPES[observation.kind](
                identity.fq_name,
                identity.help,
                labels=list(identity.label_names)
            )
            families[key] = family

        family.add_metric(list(observation.label_values), observation.value)

    return list(families.values())


class DatabaseCollector(Collector):
    """
    prometheus_client collector running one database poll per collection.

    describe() uses a dry-run poll to learn which metrics exist. That is
    best-effort: if the database is unreachable at registration time only
    the self-observation metrics are described.
    """

    def __init__(self, scraper: DatabaseScraper, sink_size: int = 0):
        """
        Initialize the collector.

        Args:
            scraper: Scraper producing the observations
            sink_size: Bound of the per-poll sink, 0 for unbounded. A bounded
                sink makes the poll run on a worker thread while observations
                are drained.
        """
        self.scraper = scraper
        self.sink_size = sink_size
        self._lock = threading.Lock()

    def poll(self) -> List[Observation]:
        """Run one serialized poll and return its observations."""
        with self._lock:
            sink = MetricSink(maxsize=self.sink_size)

            if not self.sink_size:
                self.scraper.scrape(sink)
                return list(sink)

            worker = threading.Thread(
                target=self.scraper.scrape,
                args=(sink,),
                name="db-scrape",
                daemon=True
            )
            worker.start()
            observations = list(sink)
            worker.join()
            return observations

    def collect(self) -> Iterable[Metric]:
        return build_families(self.poll())

    def describe(self) -> Iterable[Metric]:
        logger.info("Describing metrics with a dry-run scrape")
        return build_families(self.poll())


def create_collector(
    config: ExporterConfig,
    connect: Callable[..., Any] = pymysql.connect
) -> DatabaseCollector:
    """
    Build the scraper and collector for a configuration without registering.

    The collector can be handed to generate_latest() directly to render a
    single poll.
    """
    scraper = DatabaseScraper(
        config.connection,
        collect_table_io_waits=config.collect_table_io_waits,
        collect_user_statistics=config.collect_user_statistics,
        scrape_timeout=config.scrape_timeout,
        connect=connect
    )
    return DatabaseCollector(scraper)


def create_registry(
    config: ExporterConfig,
    connect: Callable[..., Any] = pymysql.connect,
    registry: Optional[CollectorRegistry] = None
) -> Tuple[CollectorRegistry, DatabaseCollector]:
    """
    Build the scraper and collector for a configuration and register them.

    Registration triggers the describe dry-run poll.

    Args:
        config: Exporter configuration
        connect: Driver connect function
        registry: Registry to register into (a new one if omitted)

    Returns:
        Tuple of (registry, collector)
    """
    collector = create_collector(config, connect)

    registry = registry if registry is not None else CollectorRegistry(auto_describe=True)
    registry.register(collector)

    return registry, collector
