"""Core utilities: configuration, date planning and input validation."""

from .config import ConfigError, load_credentials, load_locations, load_project_config
from .dates import DateRange, RecurringWindow, anchor_recurring_window, iter_days, plan_chunks
from .runtime import QueryRuntime
from .validation import ValidationError

__all__ = [
    "ConfigError",
    "load_credentials",
    "load_locations",
    "load_project_config",
    "DateRange",
    "RecurringWindow",
    "anchor_recurring_window",
    "iter_days",
    "plan_chunks",
    "QueryRuntime",
    "ValidationError",
]
