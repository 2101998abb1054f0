"""Timing measurements for the stages of the line detection pipeline."""

from __future__ import annotations

import math
import sys
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator


class MetricType(Enum):
    """Pipeline stages whose duration can be measured."""

    TOTAL_PROCESSING = 0
    ACQUISITION = 1
    GRAYSCALE = 2
    EDGE_DETECTION = 3
    BINARIZATION = 4
    HOUGH_TRANSFORM = 5
    DISPLAY = 6


_CSV_NAMES = {
    MetricType.TOTAL_PROCESSING: "Total",
    MetricType.ACQUISITION: "Acquisition",
    MetricType.GRAYSCALE: "Grayscale",
    MetricType.EDGE_DETECTION: "Edge Detection",
    MetricType.BINARIZATION: "Binarization",
    MetricType.HOUGH_TRANSFORM: "Hough Transform",
    MetricType.DISPLAY: "Display",
}

_REPORT_NAMES = {**_CSV_NAMES, MetricType.TOTAL_PROCESSING: "Total Processing"}

CSV_HEADER = "Metric,Count,Min,Max,Average,StdDev,FPS"


@dataclass(frozen=True)
class Statistics:
    """Summary of the measurements of one metric, in milliseconds."""

    count: int = 0
    minimum: float = 0.0
    maximum: float = 0.0
    average: float = 0.0
    std_dev: float = 0.0


class PerformanceMetrics:
    """Thread-safe collection of durations, in milliseconds, per metric.

    ``clock`` returns a time in seconds; it defaults to ``time.perf_counter``.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._starts: dict[MetricType, float] = {}
        self._measurements: dict[MetricType, list[float]] = {m: [] for m in MetricType}

    def start_measurement(self, metric: MetricType) -> None:
        """Mark the start of a measurement of ``metric``."""
        now = self._clock()
        with self._lock:
            self._starts[metric] = now

    def end_measurement(self, metric: MetricType) -> float:
        """Record and return the milliseconds elapsed since the matching start."""
        now = self._clock()
        with self._lock:
            try:
                start = self._starts[metric]
            except KeyError:
                raise ValueError(f"no measurement of {metric.name} was started") from None
            duration = (now - start) * 1000.0
            self._measurements[metric].append(duration)
            return duration

    def last_measurement(self, metric: MetricType) -> float:
        """The most recent duration of ``metric``, or 0.0 when there is none."""
        with self._lock:
            values = self._measurements[metric]
            return values[-1] if values else 0.0

    def average_measurement(self, metric: MetricType) -> float:
        """The mean duration of ``metric``, or 0.0 when there is none."""
        with self._lock:
            values = self._measurements[metric]
            return sum(values) / len(values) if values else 0.0

    def statistics(self, metric: MetricType) -> Statistics:
        """Count, minimum, maximum, mean and population standard deviation."""
        with self._lock:
            values = list(self._measurements[metric])
        if not values:
            return Statistics()
        avg = sum(values) / len(values)
        variance = sum((v - avg) ** 2 for v in values) / len(values)
        return Statistics(
            count=len(values),
            minimum=min(values),
            maximum=max(values),
            average=avg,
            std_dev=math.sqrt(variance),
        )

    def calculate_fps(self) -> float:
        """Frames per second from the mean total processing time."""
        avg = self.average_measurement(MetricType.TOTAL_PROCESSING)
        if avg <= 0.0:
            return 0.0
        return 1000.0 / avg

    def _recorded(self) -> Iterator[tuple[MetricType, Statistics]]:
        for metric in MetricType:
            stats = self.statistics(metric)
            if stats.count:
                yield metric, stats

    def save_to_file(self, filename: str | Path) -> None:
        """Write the statistics of every recorded metric as CSV."""
        lines = [CSV_HEADER]
        with self._lock:
            for metric, stats in self._recorded():
                fps = self.calculate_fps() if metric is MetricType.TOTAL_PROCESSING else 0.0
                fields = [
                    _CSV_NAMES[metric],
                    str(stats.count),
                    *(f"{v:g}" for v in (stats.minimum, stats.maximum, stats.average, stats.std_dev, fps)),
                ]
                lines.append(",".join(fields))
        Path(filename).write_text("\n".join(lines) + "\n", encoding="utf-8")

    def report(self) -> str:
        """A readable report of every recorded metric."""
        parts = ["\n=== Performance Report ===\n"]
        with self._lock:
            for metric, stats in self._recorded():
                parts.append(f"{_REPORT_NAMES[metric]}:\n")
                parts.append(f"  Count:  {stats.count}\n")
                parts.append(f"  Min:    {stats.minimum:.2f} ms\n")
                parts.append(f"  Max:    {stats.maximum:.2f} ms\n")
                parts.append(f"  Avg:    {stats.average:.2f} ms\n")
                parts.append(f"  StdDev: {stats.std_dev:.2f} ms\n")
                if metric is MetricType.TOTAL_PROCESSING:
                    parts.append(f"  FPS:    {self.calculate_fps():.2f}\n")
                parts.append("\n")
        return "".join(parts)

    def print_report(self) -> str:
        """Write :meth:`report` to standard output and return the text written."""
        text = self.report()
        sys.stdout.write(text)
        sys.stdout.flush()
        return text

    def reset(self) -> None:
        """Forget every recorded measurement."""
        with self._lock:
            for values in self._measurements.values():
                values.clear()

    @contextmanager
    def measure(self, metric: MetricType) -> Iterator[None]:
        """Measure the duration of the enclosed block as ``metric``."""
        self.start_measurement(metric)
        try:
            yield
        finally:
            self.end_measurement(metric)