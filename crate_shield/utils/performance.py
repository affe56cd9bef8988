"""Performance monitoring utilities for CrateShield."""

import functools
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar
from rich.console import Console
from rich.table import Table

from .logging import get_logger

F = TypeVar('F', bound=Callable[..., Any])

BENCHMARK_ENV_VAR = "CRATESHIELD_VERBOSE_BENCHMARK"


@dataclass
class PerformanceMetrics:
    """Container for performance metrics."""

    function_name: str
    execution_time: float
    items: Optional[int] = None


class PerformanceMonitor:
    """Collects wall-clock timings for named pipeline stages."""

    def __init__(self, enabled: bool = True) -> None:
        self.metrics: List[PerformanceMetrics] = []
        self.enabled = enabled

    @contextmanager
    def measure(self, name: str) -> Iterator[PerformanceMetrics]:
        """Context manager for measuring a stage.

        The yielded metric may be updated with an item count by the caller.

        Args:
            name: Name of the operation being measured
        """
        metric = PerformanceMetrics(function_name=name, execution_time=0.0)
        start_time = time.perf_counter()
        try:
            yield metric
        finally:
            metric.execution_time = time.perf_counter() - start_time
            if self.enabled:
                self.metrics.append(metric)

    def get_summary(self) -> Dict[str, Any]:
        """Get performance summary.

        Returns:
            Dictionary with performance summary
        """
        if not self.metrics:
            return {}

        total_time = sum(m.execution_time for m in self.metrics)
        return {
            "total_executions": len(self.metrics),
            "total_time": total_time,
            "average_time": total_time / len(self.metrics),
            "metrics": list(self.metrics),
        }

    def print_summary(self, console: Optional[Console] = None) -> None:
        """Print a per-stage timing table."""
        summary = self.get_summary()
        if not summary:
            return

        table = Table(title="Performance Summary")
        table.add_column("Stage", style="cyan")
        table.add_column("Time", style="green")
        table.add_column("Items", style="blue")

        for metric in summary["metrics"]:
            table.add_row(
                metric.function_name,
                f"{metric.execution_time:.4f}s",
                "" if metric.items is None else str(metric.items),
            )
        table.add_row("total", f"{summary['total_time']:.4f}s", "")

        (console or Console(stderr=True)).print(table)


def benchmark(func: F) -> F:
    """Simple benchmark decorator.

    Timings are only logged when ``CRATESHIELD_VERBOSE_BENCHMARK`` is set.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        end_time = time.perf_counter()

        if os.environ.get(BENCHMARK_ENV_VAR):
            get_logger("Performance").info(f"{func.__name__} took {end_time - start_time:.4f} seconds")
        return result
    return wrapper  # type: ignore[return-value]
