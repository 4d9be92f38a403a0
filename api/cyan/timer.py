"""Wall-clock instrumentation keyed by label."""

import time
from collections import defaultdict


class Timer:
    """Accumulates elapsed seconds per label across start/stop cycles.

    Starting a label that is already running is a no-op, and stopping a label
    that was never started does nothing.

    Examples:
        >>> timer = Timer()
        >>> timer.start("walk")
        >>> timer.stop("walk")
        >>> timer.totals["walk"] >= 0.0
        True
    """

    def __init__(self) -> None:
        self._starts: dict[str, float] = {}
        self.totals: dict[str, float] = defaultdict(float)

    def start(self, label: str) -> None:
        if label not in self._starts:
            self._starts[label] = time.perf_counter()

    def stop(self, label: str) -> None:
        start = self._starts.pop(label, None)
        if start is not None:
            self.totals[label] += time.perf_counter() - start

    def running(self) -> list[str]:
        return list(self._starts)
