"""Utility functions for the library system."""

from library_system.utils.id_generator import generate_transaction_id, to_base36
from library_system.utils.time_utils import Clock, days_late, parse_datetime, utc_now

__all__ = [
    "Clock",
    "days_late",
    "generate_transaction_id",
    "parse_datetime",
    "to_base36",
    "utc_now",
]
