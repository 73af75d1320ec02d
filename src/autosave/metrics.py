"""
Counters for save activity.

MetricsCollector is the only thing the engine writes to; AutosaveMetrics is
the plain snapshot it exposes for display or export.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class AutosaveMetrics:
    """Point-in-time counters."""
    save_count: int = 0
    failed_saves: int = 0
    skipped_saves: int = 0
    retry_count: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    debounce_count: int = 0
    validation_failures: int = 0
    total_save_ms: float = 0.0
    last_save_ms: Optional[float] = None

    @property
    def average_save_ms(self) -> float:
        attempted = self.save_count + self.failed_saves
        return self.total_save_ms / attempted if attempted else 0.0

    @property
    def success_rate(self) -> float:
        """Fraction of transport-reaching saves that succeeded (1.0 when none)."""
        attempted = self.save_count + self.failed_saves
        return self.save_count / attempted if attempted else 1.0

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def to_dict(self) -> Dict:
        """Export to JSON-serializable dict, derived rates included."""
        data = asdict(self)
        data['average_save_ms'] = self.average_save_ms
        data['success_rate'] = self.success_rate
        data['cache_hit_rate'] = self.cache_hit_rate
        return data


class MetricsCollector:
    """Mutable accumulator behind AutosaveMetrics."""

    def __init__(self):
        self._metrics = AutosaveMetrics()

    def record_save(self, ok: bool, duration_ms: float) -> None:
        if ok:
            self._metrics.save_count += 1
        else:
            self._metrics.failed_saves += 1
        self._metrics.total_save_ms += duration_ms
        self._metrics.last_save_ms = duration_ms

    def record_skip(self) -> None:
        self._metrics.skipped_saves += 1

    def record_retry(self) -> None:
        self._metrics.retry_count += 1

    def record_cache_hit(self) -> None:
        self._metrics.cache_hits += 1

    def record_cache_miss(self) -> None:
        self._metrics.cache_misses += 1

    def record_debounce(self) -> None:
        self._metrics.debounce_count += 1

    def record_validation_failure(self) -> None:
        self._metrics.validation_failures += 1

    def snapshot(self) -> AutosaveMetrics:
        """Copy of the current counters."""
        return AutosaveMetrics(**asdict(self._metrics))

    def reset(self) -> None:
        self._metrics = AutosaveMetrics()
        logger.debug("Metrics reset")
