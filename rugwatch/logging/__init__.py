"""
Structured logging for Rugwatch.

JSON logs with timestamp, warning_id, event_type.
Use get_logger() in all modules for aggregation-friendly output.
"""

from rugwatch.logging.logger import bind_warning, get_logger

__all__ = ["bind_warning", "get_logger"]
