"""Tests for the bounded worker pool."""

import logging
import time

import pytest

from backtester.config import BacktesterConfig, RobustnessDefaults, set_config
from backtester.optimization.parallel import default_workers, run_parallel


def square(x: int) -> int:
    return x * x


class TestRunParallel:
    def test_results_in_submission_order(self):
        def slow_for_small(x: int) -> int:
            time.sleep(0.01 * (5 - x))
            return x

        results = run_parallel(slow_for_small, [0, 1, 2, 3, 4], max_workers=5)
        assert [task for task, _ in results] == [0, 1, 2, 3, 4]
        assert [value for _, value in results] == [0, 1, 2, 3, 4]

    def test_failures_are_dropped_and_logged(self, caplog):
        def picky(x: int) -> int:
            if x % 2:
                raise ValueError(f"odd {x}")
            return x

        with caplog.at_level(logging.WARNING, logger="backtester.parallel"):
            results = run_parallel(picky, [0, 1, 2, 3], max_workers=2)
        assert results == [(0, 0), (2, 2)]
        assert "Task 1 failed: odd 1" in caplog.text
        assert "Task 3 failed: odd 3" in caplog.text

    def test_empty_tasks(self):
        assert run_parallel(square, []) == []

    def test_single_worker(self):
        assert run_parallel(square, [1, 2, 3], max_workers=1) == [(1, 1), (2, 4), (3, 9)]

    @pytest.mark.slow
    def test_process_pool(self):
        assert run_parallel(abs, [-2, 3], max_workers=2, use_processes=True) == [(-2, 2), (3, 3)]


class TestDefaultWorkers:
    def test_configured_value_wins(self):
        set_config(BacktesterConfig(robustness=RobustnessDefaults(max_workers=3)))
        assert default_workers() == 3

    def test_falls_back_to_cpu_count(self, monkeypatch):
        monkeypatch.setattr("backtester.optimization.parallel.os.cpu_count", lambda: 6)
        assert default_workers() == 6
