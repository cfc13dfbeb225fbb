"""
statistics.py - Storeless statistics and message counters

Latency samples are folded into running estimators as they are produced, so
the stack does not have to retain every message to report distributions:
- Quartiles: P-square estimators (Jain & Chlamtac, 1985)
- Mean and sample standard deviation: Welford's online algorithm
"""

import math
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional


class PSquareQuantile:
    """
    Running estimate of the p-quantile using five markers.

    The first five observations are kept verbatim; while fewer than five
    values were seen the result is the exact (linearly interpolated)
    quantile.
    """

    def __init__(self, p: float):
        if not (0.0 <= p <= 1.0):
            raise ValueError(f"Quantile must be in [0, 1], got {p}")
        self.p = p
        self._initial: List[float] = []
        self._heights: Optional[List[float]] = None
        self._positions: Optional[List[float]] = None
        self._desired: Optional[List[float]] = None
        self._increments = [0.0, p / 2, p, (1 + p) / 2, 1.0]

    def add_value(self, x: float):
        if self._heights is None:
            self._initial.append(x)
            if len(self._initial) == 5:
                self._heights = sorted(self._initial)
                self._positions = [0.0, 1.0, 2.0, 3.0, 4.0]
                p = self.p
                self._desired = [0.0, 2 * p, 4 * p, 2 + 2 * p, 4.0]
            return

        q, n = self._heights, self._positions
        if x < q[0]:
            q[0] = x
            k = 0
        elif x >= q[4]:
            q[4] = x
            k = 3
        else:
            k = 0
            while not (q[k] <= x < q[k + 1]):
                k += 1

        for i in range(k + 1, 5):
            n[i] += 1
        for i in range(5):
            self._desired[i] += self._increments[i]

        for i in (1, 2, 3):
            d = self._desired[i] - n[i]
            if (d >= 1 and n[i + 1] - n[i] > 1) or (d <= -1 and n[i - 1] - n[i] < -1):
                s = 1 if d >= 0 else -1
                candidate = self._parabolic(i, s)
                if q[i - 1] < candidate < q[i + 1]:
                    q[i] = candidate
                else:
                    q[i] = q[i] + s * (q[i + s] - q[i]) / (n[i + s] - n[i])
                n[i] += s

    def _parabolic(self, i: int, s: int) -> float:
        q, n = self._heights, self._positions
        return q[i] + s / (n[i + 1] - n[i - 1]) * (
            (n[i] - n[i - 1] + s) * (q[i + 1] - q[i]) / (n[i + 1] - n[i])
            + (n[i + 1] - n[i] - s) * (q[i] - q[i - 1]) / (n[i] - n[i - 1])
        )

    def result(self) -> float:
        if self._heights is not None:
            return self._heights[2]
        if not self._initial:
            return math.nan
        values = sorted(self._initial)
        position = self.p * (len(values) - 1)
        lower = int(math.floor(position))
        upper = min(lower + 1, len(values) - 1)
        return values[lower] + (values[upper] - values[lower]) * (position - lower)


@dataclass
class StatisticsSummary:
    count: int
    min: float
    first_quartile: float
    median: float
    third_quartile: float
    max: float
    mean: float
    std_dev: float


class StorelessStatistics:
    """Five-number summary plus mean and standard deviation, without storing samples."""

    CSV_HEADER = "min;firstQuartile;median;thirdQuartile;max;mean;stdDev"

    def __init__(self):
        self.count = 0
        self._min = math.inf
        self._max = -math.inf
        self._mean = 0.0
        self._m2 = 0.0
        self._q1 = PSquareQuantile(0.25)
        self._median = PSquareQuantile(0.5)
        self._q3 = PSquareQuantile(0.75)

    def add_value(self, value: float):
        value = float(value)
        self.count += 1
        self._min = min(self._min, value)
        self._max = max(self._max, value)

        delta = value - self._mean
        self._mean += delta / self.count
        self._m2 += delta * (value - self._mean)

        self._q1.add_value(value)
        self._median.add_value(value)
        self._q3.add_value(value)

    def result(self) -> StatisticsSummary:
        if self.count == 0:
            nan = math.nan
            return StatisticsSummary(0, nan, nan, nan, nan, nan, nan, nan)
        std_dev = math.sqrt(self._m2 / (self.count - 1)) if self.count > 1 else 0.0
        return StatisticsSummary(
            count=self.count,
            min=self._min,
            first_quartile=self._q1.result(),
            median=self._median.result(),
            third_quartile=self._q3.result(),
            max=self._max,
            mean=self._mean,
            std_dev=std_dev,
        )

    def csv_line(self) -> str:
        r = self.result()
        return ";".join(str(v) for v in (
            r.min, r.first_quartile, r.median, r.third_quartile, r.max, r.mean, r.std_dev))


class MessageCounter:
    """Number of recorded messages per message kind."""

    def __init__(self):
        self._counts: Counter = Counter()

    def count_message(self, message):
        self._counts[message.kind] += 1

    def get(self, kind: str) -> int:
        return self._counts[kind]

    def total(self) -> int:
        return sum(self._counts.values())

    def as_dict(self) -> Dict[str, int]:
        return dict(sorted(self._counts.items()))

    def csv_lines(self) -> List[str]:
        return [f"{kind};{count}" for kind, count in sorted(self._counts.items())]
