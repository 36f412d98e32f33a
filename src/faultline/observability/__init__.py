"""Observability module for faultline."""

from faultline.observability.logging import configure_logging, get_logger
from faultline.observability.metrics import generate_metrics, get_metrics_collector

__all__ = ["configure_logging", "get_logger", "generate_metrics", "get_metrics_collector"]
