"""
Bounded worker pool for independent backtest runs.

The pool lives for a single call. Tasks that raise are logged and dropped;
the survivors come back in submission order so callers stay deterministic
regardless of completion order.

Workers are module-level functions bound with ``functools.partial`` so the
same task can run on threads or, for CPU-bound simulations, on processes.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Any, TypeVar

from backtester.backtest.config import BacktestConfig
from backtester.backtest.engine import BacktestEngine, BacktestResult
from backtester.config import get_config
from backtester.data.series import TimeSeries
from backtester.logging import get_logger
from backtester.strategy.registry import StrategyFactory

logger = get_logger("parallel")

T = TypeVar("T")
R = TypeVar("R")


def default_workers() -> int:
    configured = get_config().robustness.max_workers
    if configured:
        return configured
    return os.cpu_count() or 1


def run_parallel(
    fn: Callable[[T], R],
    tasks: Sequence[T],
    max_workers: int | None = None,
    use_processes: bool = False,
) -> list[tuple[T, R]]:
    """Evaluate ``fn`` over ``tasks`` concurrently.

    Args:
        fn: Callable applied to each task. Must be picklable when
            ``use_processes`` is set.
        tasks: Task inputs.
        max_workers: Pool size; defaults to the configured worker count or
            the number of CPUs.
        use_processes: Use a process pool instead of threads.

    Returns:
        ``(task, result)`` pairs for the tasks that succeeded, in submission
        order.
    """
    if not tasks:
        return []

    workers = max(1, min(max_workers or default_workers(), len(tasks)))
    executor_cls: type[Executor] = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
    started = time.perf_counter()
    results: dict[int, R] = {}
    failures = 0

    with executor_cls(max_workers=workers) as executor:
        future_to_index = {executor.submit(fn, task): i for i, task in enumerate(tasks)}
        for future in as_completed(future_to_index):
            index = future_to_index[future]
            try:
                results[index] = future.result()
            except Exception as e:
                failures += 1
                logger.warning(f"Task {index} failed: {e}")

    logger.debug(
        f"Parallel run of {len(tasks)} tasks on {workers} workers finished in "
        f"{time.perf_counter() - started:.2f}s ({failures} failed)"
    )
    return [(tasks[i], results[i]) for i in sorted(results)]


def simulate(
    strategy_factory: StrategyFactory,
    config: BacktestConfig,
    series: TimeSeries,
    parameters: dict[str, Any] | None = None,
) -> BacktestResult:
    """Run a fresh strategy with ``parameters`` over ``series``.

    Process pools need ``strategy_factory`` to be picklable: a strategy class
    or a module-level function, not a lambda.
    """
    strategy = strategy_factory()
    if parameters:
        strategy.set_parameters(parameters)
    return BacktestEngine(config).run(strategy, series)
