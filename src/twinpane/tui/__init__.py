"""Public API for the twinpane TUI package."""

from .prompts import wire_prompts
from .renderer import print_capabilities, print_faults, print_status, status_table

__all__ = ["print_capabilities", "print_faults", "print_status", "status_table", "wire_prompts"]
