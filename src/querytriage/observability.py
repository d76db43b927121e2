"""Metrics emitted as structured log lines, optionally mirrored to Prometheus."""

from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from typing import Any, Iterator

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_PROM_NAME_RE = re.compile(r"[^a-zA-Z0-9_]")

_PROM_TYPES = {"counter": Counter, "gauge": Gauge, "histogram": Histogram}


class MetricsRecorder:
    """Record counters, gauges and timings for the triage pipeline.

    Every observation becomes one ``querytriage.<metric> key=value ...`` log
    line on the ``querytriage.metrics`` logger. With Prometheus enabled the
    same observation is applied to a metric in a private registry, created on
    first use per (metric, label set).
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        namespace: str = "querytriage",
        logger: logging.Logger | None = None,
        prometheus_enabled: bool = False,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self._enabled = enabled
        self._namespace = namespace.strip() or "querytriage"
        self._logger = logger or logging.getLogger("querytriage.metrics")
        self._registry: CollectorRegistry | None = None
        if prometheus_enabled:
            self._registry = registry if registry is not None else CollectorRegistry()
        self._prom_metrics: dict[tuple[str, str, tuple[str, ...]], Any] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def prometheus_enabled(self) -> bool:
        return self._registry is not None

    @property
    def prometheus_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def render_prometheus(self) -> bytes:
        if self._registry is None:
            raise RuntimeError("Prometheus export is disabled")
        return generate_latest(self._registry)

    def increment(self, metric: str, *, value: int = 1, **tags: Any) -> None:
        if not self._enabled:
            return
        tags = _clean(tags)
        self._log(metric, {"value": int(value)}, tags)
        self._prom("counter", metric, tags).inc(float(max(int(value), 0)))

    def set_gauge(self, metric: str, value: float, **tags: Any) -> None:
        if not self._enabled:
            return
        tags = _clean(tags)
        self._log(metric, {"value": value}, tags)
        self._prom("gauge", metric, tags).set(float(value))

    def record_timing(self, metric: str, duration_seconds: float, **tags: Any) -> None:
        """Log the duration in milliseconds and observe it in seconds."""

        if not self._enabled:
            return
        tags = _clean(tags)
        seconds = max(duration_seconds, 0.0)
        self._log(metric, {"duration_ms": round(seconds * 1000.0, 4)}, tags)
        self._prom("histogram", metric, tags).observe(seconds)

    @contextmanager
    def track_timing(self, metric: str, **tags: Any) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(metric, time.perf_counter() - start, **tags)

    def _log(self, metric: str, fields: dict[str, Any], tags: dict[str, Any]) -> None:
        segments = [f"{key}={_stringify(value)}" for key, value in sorted(fields.items())]
        segments += [f"{key}={_stringify(value)}" for key, value in sorted(tags.items())]
        message = f"{self._namespace}.{metric}"
        if segments:
            message = f"{message} {' '.join(segments)}"
        self._logger.info(message)

    def _prom(self, kind: str, metric: str, tags: dict[str, Any]) -> Any:
        if self._registry is None:
            return _NullMetric
        label_keys = tuple(sorted(tags))
        label_names = tuple(_PROM_NAME_RE.sub("_", key) or "label" for key in label_keys)
        cache_key = (kind, metric, label_names)
        prom_metric = self._prom_metrics.get(cache_key)
        if prom_metric is None:
            prom_metric = _PROM_TYPES[kind](
                f"{_PROM_NAME_RE.sub('_', self._namespace)}_{_PROM_NAME_RE.sub('_', metric)}".strip("_"),
                f"{metric} {kind}",
                labelnames=list(label_names),
                registry=self._registry,
            )
            self._prom_metrics[cache_key] = prom_metric
        if not label_names:
            return prom_metric
        return prom_metric.labels(
            **{name: _stringify(tags[key]) for name, key in zip(label_names, label_keys)}
        )


class _NullMetric:
    @staticmethod
    def inc(_value: float) -> None:
        return None

    @staticmethod
    def set(_value: float) -> None:
        return None

    @staticmethod
    def observe(_value: float) -> None:
        return None


def _clean(tags: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in tags.items() if value is not None}


def _stringify(value: Any) -> str:
    if isinstance(value, float):
        return f"{int(value)}" if value.is_integer() else f"{value:.4f}"
    return str(value)


__all__ = ["MetricsRecorder"]
