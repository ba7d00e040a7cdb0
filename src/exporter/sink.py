"""
Metric Emission Sink

Write-only channel between the scraper (producer) and the registry collector
(consumer). The producer closes the sink when a poll ends; iterating the sink
yields observations in emission order until that close signal is seen.
"""

import logging
import queue
from dataclasses import dataclass
from typing import Iterator, Tuple

from src.exporter.classifier import MetricIdentity, MetricKind

logger = logging.getLogger(__name__)


class SinkClosedError(Exception):
    """Raised when emitting into a sink that has already been closed."""
    pass


@dataclass(frozen=True)
class Observation:
    """
    One typed, labeled data point produced by a poll.

    Attributes:
        identity: Metric identity
        kind: Counter, gauge or untyped
        value: Finite observed value
        label_values: Label values, ordered like identity.label_names
    """

    identity: MetricIdentity
    kind: MetricKind
    value: float
    label_values: Tuple[str, ...] = ()

    def __post_init__(self):
        if len(self.label_values) != len(self.identity.label_names):
            raise ValueError(
                f"{self.identity.fq_name} expects {len(self.identity.label_names)} "
                f"label values, got {len(self.label_values)}"
            )


_CLOSED = object()


class MetricSink:
    """
    Queue-backed observation channel for a single poll.

    A bounded sink (maxsize > 0) blocks the producer until the consumer
    drains it, so both ends must run on different threads.
    """

    def __init__(self, maxsize: int = 0):
        """
        Initialize the sink.

        Args:
            maxsize: Queue bound, 0 for unbounded
        """
        self.maxsize = maxsize
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._closed = False
        self.emitted = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, observation: Observation) -> None:
        """
        Hand one observation to the consumer.

        Raises:
            SinkClosedError: If the sink has been closed
        """
        if self._closed:
            raise SinkClosedError(f"Cannot emit {observation.identity.fq_name}: sink is closed")

        self._queue.put(observation)
        self.emitted += 1

    def close(self) -> None:
        """Signal that no more observations will be emitted. Idempotent."""
        if self._closed:
            return

        self._closed = True
        self._queue.put(_CLOSED)
        logger.debug(f"Sink closed after {self.emitted} observations")

    def __iter__(self) -> Iterator[Observation]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item
