"""
Metric queries over post-processed simulation runs.
"""

from .catalog import MetricCatalog, MetricName
from .flow import Arc, FlowEngine
from .inventory import InventoryReconstructor
from .series import XY, MultiSeries, Row

__all__ = [
    "XY",
    "Arc",
    "FlowEngine",
    "InventoryReconstructor",
    "MetricCatalog",
    "MetricName",
    "MultiSeries",
    "Row",
]
