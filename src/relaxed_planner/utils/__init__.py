"""Utility helpers for relaxed-planner."""

from relaxed_planner.utils.console import (
    get_console,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from relaxed_planner.utils.logging_setup import configure_logging, mask_token

__all__ = [
    "configure_logging",
    "get_console",
    "mask_token",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
]
