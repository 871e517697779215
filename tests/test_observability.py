"""Tests for query timing."""

from unittest.mock import MagicMock

import pytest

from entity_links import observability


@pytest.fixture
def logger(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace the module logger and restore the threshold afterwards."""
    mock_logger = MagicMock()
    monkeypatch.setattr(observability, "logger", mock_logger)
    monkeypatch.setattr(observability, "_slow_query_ms", 100.0)
    return mock_logger


def fake_clock(monkeypatch: pytest.MonkeyPatch, *readings: float) -> None:
    clock = MagicMock()
    clock.perf_counter.side_effect = list(readings)
    monkeypatch.setattr(observability, "time", clock)


def test_fast_query_logs_debug(logger: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test a quick query is logged at debug level with its result count."""
    fake_clock(monkeypatch, 1.0, 1.02)

    with observability.timed("get_links", "assumption", "hypothesis") as timer:
        timer.record([{"id": "l1"}, {"id": "l2"}])

    logger.warning.assert_not_called()
    kwargs = logger.debug.call_args.kwargs
    assert kwargs["entity_types"] == "assumption -> hypothesis"
    assert kwargs["result_count"] == 2
    assert kwargs["duration_ms"] == 20.0


def test_slow_query_logs_warning(logger: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test a query above the threshold is logged as a warning."""
    observability.set_slow_query_threshold(50)
    fake_clock(monkeypatch, 1.0, 1.2)

    with observability.timed("get_evidence", "assumption"):
        pass

    logger.warning.assert_called_once()
    assert logger.warning.call_args.kwargs["operation"] == "get_evidence"
    assert observability.get_slow_query_threshold() == 50.0


def test_timing_logged_when_query_fails(logger: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test the duration is still logged when the block raises."""
    fake_clock(monkeypatch, 1.0, 1.001)

    with pytest.raises(RuntimeError):
        with observability.timed("get_feedback"):
            raise RuntimeError("boom")

    logger.debug.assert_called_once()


def test_record_counts_scalars() -> None:
    """Test single rows count as one result and None as zero."""
    timer = observability.QueryTimer()
    assert timer.record({"id": "a"}) == {"id": "a"}
    assert timer.result_count == 1
    timer.record(None)
    assert timer.result_count == 0
