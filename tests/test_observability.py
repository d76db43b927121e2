import io
import logging

import pytest
from prometheus_client import CollectorRegistry

from querytriage.observability import MetricsRecorder


def _capture_logger_output(logger_name: str):
    logger = logging.getLogger(logger_name)
    buffer = io.StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger, handler, buffer


def test_metrics_recorder_logs_when_enabled() -> None:
    metrics = MetricsRecorder(enabled=True, namespace="querytriage.test")
    logger, handler, buffer = _capture_logger_output("querytriage.metrics")

    try:
        metrics.increment("analyze.requests", source="ai", project=None)
        metrics.record_timing("analyze.duration", 0.05, source="ai")
    finally:
        logger.removeHandler(handler)

    output = buffer.getvalue()
    assert "querytriage.test.analyze.requests value=1 source=ai" in output
    assert "project" not in output
    assert "querytriage.test.analyze.duration duration_ms=50 source=ai" in output


def test_metrics_recorder_disabled_suppresses_logs() -> None:
    metrics = MetricsRecorder(enabled=False, prometheus_enabled=True)
    logger, handler, buffer = _capture_logger_output("querytriage.metrics")

    try:
        metrics.increment("analyze.requests", source="ai")
        metrics.record_timing("analyze.duration", 0.1)
    finally:
        logger.removeHandler(handler)

    assert buffer.getvalue() == ""
    assert b"querytriage_analyze_requests" not in metrics.render_prometheus()


def test_prometheus_export_mirrors_observations() -> None:
    registry = CollectorRegistry()
    metrics = MetricsRecorder(prometheus_enabled=True, registry=registry)

    metrics.increment("analyze.requests", source="ai")
    metrics.increment("analyze.requests", value=2, source="ai")
    metrics.set_gauge("analyze.wasted_cost", 700.5)
    with metrics.track_timing("llm.duration"):
        pass

    assert registry.get_sample_value("querytriage_analyze_requests_total", {"source": "ai"}) == 3.0
    assert registry.get_sample_value("querytriage_analyze_wasted_cost") == 700.5
    assert registry.get_sample_value("querytriage_llm_duration_count") == 1.0
    assert b"querytriage_analyze_requests_total" in metrics.render_prometheus()


def test_render_requires_prometheus() -> None:
    metrics = MetricsRecorder()

    assert not metrics.prometheus_enabled
    with pytest.raises(RuntimeError):
        metrics.render_prometheus()
