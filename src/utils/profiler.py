"""Wall-clock stage timers for the toolpath pipeline.

Provides:
    - timer(): time one block, report to a sink or the DEBUG log
    - TimerAccumulator: repeated measurements of one kind of stage
      (e.g. every operation of a run), with mean/min/max

The pipeline records profile extraction and each operation through
``timer`` into ``GenerationStatistics.stage_times`` and summarises the
operations with an accumulator.

Uses time.perf_counter only; no cProfile or line_profiler overhead.
"""

import logging
import math
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

logger = logging.getLogger(__name__)

Sink = Callable[[str, float], None]


@contextmanager
def timer(name: str, sink: Optional[Sink] = None) -> Iterator[None]:
    """Time the enclosed block.

    Parameters
    ----------
    name : str
        Stage name passed to the sink or logged
    sink : Optional[Callable[[str, float], None]]
        Receives ``(name, seconds)``; None logs at DEBUG instead

    Notes
    -----
    The measurement is reported even when the block raises.

    Examples
    --------
    >>> stage_times = {}
    >>> with timer("profile_extraction", sink=stage_times.__setitem__):
    ...     profile = extract_segment_profile(part)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is None:
            logger.debug("%s: %.3f s", name, elapsed)
        else:
            sink(name, elapsed)


class TimerAccumulator:
    """Collect durations of repeated stages.

    Attributes
    ----------
    name : str
        Label used in ``repr`` and logs
    total_time : float
        Sum of measurements (s)
    count : int
        Number of measurements
    min_time, max_time : float
        Extremes (s); ``inf``/``0.0`` before the first measurement

    Examples
    --------
    >>> op_timer = TimerAccumulator("operations")
    >>> for op in operations:
    ...     with op_timer.measure():
    ...         op.generate_from_profile(profile)
    >>> op_timer.as_dict()["max_s"]
    """

    def __init__(self, name: str):
        self.name = name
        self.reset()

    def add(self, seconds: float) -> None:
        """Record one externally measured duration."""
        self.total_time += seconds
        self.count += 1
        self.min_time = min(self.min_time, seconds)
        self.max_time = max(self.max_time, seconds)

    @contextmanager
    def measure(self) -> Iterator[None]:
        """Time the enclosed block and record it (also on error)."""
        with timer(self.name, sink=lambda _name, seconds: self.add(seconds)):
            yield

    def mean(self) -> float:
        """Mean duration in seconds, 0.0 with no measurements."""
        return self.total_time / self.count if self.count else 0.0

    def reset(self) -> None:
        self.total_time = 0.0
        self.count = 0
        self.min_time = math.inf
        self.max_time = 0.0

    def as_dict(self) -> Dict[str, float]:
        """Summary for logs and result statistics."""
        return {
            "total_s": self.total_time,
            "count": float(self.count),
            "mean_s": self.mean(),
            "min_s": self.min_time if self.count else 0.0,
            "max_s": self.max_time,
        }

    def __repr__(self) -> str:
        return f"TimerAccumulator({self.name}, mean={self.mean():.4f}s, count={self.count})"
