"""Observability: logging and metrics for ecomevents."""

from ecomevents.observability.logger import get_logger
from ecomevents.observability.metrics import Metrics

__all__ = ["get_logger", "Metrics"]
