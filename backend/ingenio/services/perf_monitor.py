"""Performance monitoring utilities for the Ingenio budget services."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("ingenio-api.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def my_function():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "function_name": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for budget-level metrics.

    Tracks:
    - Budgets recalculated and their average duration
    - Partidas recalculated (whole budgets, edits and AI replacements)
    - Upstream price discrepancies found
    - Rejected requests broken down by reason
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._budgets_recalculated: int = 0
        self._total_budget_duration_ms: float = 0.0
        self._slowest_budget_ms: float = 0.0
        self._line_items_recalculated: int = 0
        self._discrepancies_found: int = 0
        self._error_counts: Dict[str, int] = {}   # reason -> count

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_budget_recalculated(
        self, duration_ms: float, line_items: int = 0, discrepancies: int = 0
    ) -> None:
        """Call once per whole-budget recalculation."""
        with self._lock:
            self._budgets_recalculated += 1
            self._total_budget_duration_ms += duration_ms
            self._slowest_budget_ms = max(self._slowest_budget_ms, duration_ms)
            self._line_items_recalculated += line_items
            self._discrepancies_found += discrepancies

    def record_line_items_recalculated(self, count: int, discrepancies: int = 0) -> None:
        """Partidas recalculated outside a whole-budget pass (edits, AI replacements)."""
        with self._lock:
            self._line_items_recalculated += count
            self._discrepancies_found += discrepancies

    def record_error(self, reason: str) -> None:
        """Increment the counter for a rejected request."""
        with self._lock:
            self._error_counts[reason] = self._error_counts.get(reason, 0) + 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            budgets_recalculated        : int
            avg_budget_duration_ms      : float  (0 if none processed)
            slowest_budget_ms           : float
            line_items_recalculated     : int
            price_discrepancies_found   : int
            error_count                 : int
            error_count_by_reason       : dict  {reason: count}
        """
        with self._lock:
            avg = (
                round(self._total_budget_duration_ms / self._budgets_recalculated, 2)
                if self._budgets_recalculated > 0
                else 0.0
            )
            return {
                "budgets_recalculated": self._budgets_recalculated,
                "avg_budget_duration_ms": avg,
                "slowest_budget_ms": round(self._slowest_budget_ms, 2),
                "line_items_recalculated": self._line_items_recalculated,
                "price_discrepancies_found": self._discrepancies_found,
                "error_count": sum(self._error_counts.values()),
                "error_count_by_reason": dict(self._error_counts),
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._budgets_recalculated = 0
            self._total_budget_duration_ms = 0.0
            self._slowest_budget_ms = 0.0
            self._line_items_recalculated = 0
            self._discrepancies_found = 0
            self._error_counts.clear()


# Module-level singleton — import this instance everywhere else.
tracker = PerformanceTracker()
