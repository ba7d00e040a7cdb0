"""
Exporter Module for Database Status Metrics

The scrape-and-classify pipeline:
- parser: raw status cells to numbers
- classifier: raw column names to metric identities
- sink: per-poll observation channel
- scraper: the query sequence and poll lifecycle
- collector: prometheus_client integration

Usage:
    from src.exporter import MetricSink
    from src.exporter.scraper import DatabaseScraper
    from src.utils.config import parse_dsn

    scraper = DatabaseScraper(parse_dsn("exporter:secret@tcp(db:3306)/"))
    sink = MetricSink()
    state = scraper.scrape(sink)
    observations = list(sink)

Only the leaf modules are re-exported here; scraper and collector depend on
src.monitoring, which itself builds on these types.
"""

from src.exporter.parser import parse_status
from src.exporter.classifier import ColumnClassifier, MetricIdentity, MetricKind
from src.exporter.sink import MetricSink, Observation, SinkClosedError

__all__ = [
    "parse_status",
    "ColumnClassifier",
    "MetricIdentity",
    "MetricKind",
    "MetricSink",
    "Observation",
    "SinkClosedError",
]

__version__ = "1.0.0"
