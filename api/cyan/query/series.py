"""
Time series types and alignment of several series onto one timestep axis.
"""

from dataclasses import dataclass
from typing import Iterable, NamedTuple, Sequence


class XY(NamedTuple):
    """One point of a time series."""

    x: int
    y: float


@dataclass
class Row:
    """One timestep with a value from each aligned series."""

    x: int
    ys: list[float]


class MultiSeries:
    """Independently produced series merged on the union of their timesteps.

    Timesteps missing from a series are filled with ``zero`` rather than
    omitted.

    Examples:
        >>> ms = MultiSeries([[XY(0, 1), XY(2, 3)], [XY(1, 5)]])
        >>> [(r.x, r.ys) for r in ms.rows()]
        [(0, [1, 0]), (1, [0, 5]), (2, [3, 0])]
    """

    def __init__(self, series: Iterable[Sequence[XY]] = (), zero: float = 0):
        self.series: list[list[XY]] = [list(s) for s in series]
        self.zero = zero

    def append(self, xys: Sequence[XY]) -> None:
        self.series.append(list(xys))

    def __len__(self) -> int:
        return len(self.series)

    def rows(self) -> list[Row]:
        """Rows sorted by timestep, one per distinct timestep."""
        rowmap: dict[int, Row] = {}
        for i, xys in enumerate(self.series):
            for x, y in xys:
                row = rowmap.get(x)
                if row is None:
                    row = rowmap[x] = Row(x, [self.zero] * len(self.series))
                row.ys[i] = y

        return [rowmap[x] for x in sorted(rowmap)]
