"""Query timing for link, evidence and feedback lookups."""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger()

_slow_query_ms: float = 100.0


def set_slow_query_threshold(milliseconds: float) -> None:
    """Set the duration above which a query is logged as a warning."""
    global _slow_query_ms
    _slow_query_ms = float(milliseconds)


def get_slow_query_threshold() -> float:
    return _slow_query_ms


class QueryTimer:
    """Collects the result count of a timed query."""

    def __init__(self) -> None:
        self.result_count = 0

    def record(self, result: Any) -> Any:
        if isinstance(result, (list, tuple, set, dict)):
            self.result_count = len(result)
        else:
            self.result_count = 1 if result else 0
        return result


@contextmanager
def timed(operation: str, *entity_types: str) -> Iterator[QueryTimer]:
    """Time a query block and log its duration and result count.

    Example:
        with timed("get_evidence", "assumption") as timer:
            rows = timer.record(backend.select(...))
    """
    timer = QueryTimer()
    start = time.perf_counter()
    try:
        yield timer
    finally:
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        path = " -> ".join(str(t) for t in entity_types)
        if duration_ms > _slow_query_ms:
            logger.warning(
                "Slow query",
                operation=operation,
                entity_types=path,
                duration_ms=duration_ms,
                result_count=timer.result_count,
            )
        else:
            logger.debug(
                "Query completed",
                operation=operation,
                entity_types=path,
                duration_ms=duration_ms,
                result_count=timer.result_count,
            )
