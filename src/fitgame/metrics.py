"""Anomaly counters for best-effort aggregates."""

from __future__ import annotations

import logging
from collections import Counter

from fitgame.errors import AggregateReconciliationAnomaly

logger = logging.getLogger(__name__)

ANOMALY_HASH_KEY = "metrics:aggregate_anomalies"


class AnomalyRecorder:
    """Counts aggregate reconciliation anomalies in-process and, if configured, in Redis."""

    def __init__(self, redis: object | None = None) -> None:
        self.redis = redis
        self.counts: Counter[str] = Counter()
        self.recent: list[AggregateReconciliationAnomaly] = []

    async def record(self, anomaly: AggregateReconciliationAnomaly) -> None:
        self.counts[anomaly.counter] += 1
        self.recent.append(anomaly)
        del self.recent[:-100]
        logger.warning(
            "Partition update matched no row: counter=%s entity=%s partition=%d deltas=%s",
            anomaly.counter,
            anomaly.entity_key,
            anomaly.partition_key,
            anomaly.deltas,
        )
        if self.redis is not None:
            try:
                await self.redis.hincrby(ANOMALY_HASH_KEY, anomaly.counter, 1)  # type: ignore[attr-defined]
            except Exception:
                logger.warning("Failed to publish anomaly metric", exc_info=True)

    @property
    def total(self) -> int:
        return sum(self.counts.values())
