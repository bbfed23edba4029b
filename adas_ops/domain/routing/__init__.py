"""Routing domain - shop confirmations and tech review requests"""

from .calibrations import build_presented_calibrations, capped_operations, parse_report_text
from .dispatcher import RoutingDispatcher

__all__ = [
    "RoutingDispatcher",
    "build_presented_calibrations",
    "capped_operations",
    "parse_report_text",
]
