"""Selectors for the workflow kernel (read side)."""

from workflow_kernel.selectors.history_selector import HistorySelector

__all__ = ["HistorySelector"]
