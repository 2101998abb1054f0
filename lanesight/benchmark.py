"""Lane line detection benchmark: fast edge filters, a region-of-interest Hough
transform split among threads, a steering angle and run statistics.

Colour frames are ``(rows, cols, 3)`` uint8 arrays in BGR order, grayscale
frames ``(rows, cols)`` uint8 arrays. The Hough accumulator is a
``(theta bins, rho bins)`` uint16 array with one theta bin per six degrees.
"""

from __future__ import annotations

import argparse
import math
import threading
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from PIL import Image

from lanesight.acquisition import AcquisitionError, ImageAcquisition, SourceType
from lanesight.metrics import MetricType, PerformanceMetrics
from lanesight.preprocessing import RED, draw_line, draw_lines, gaussian_blur, grayscale_filter
from lanesight.thread_pool import ThreadPool

PI = 3.14159265
THETA_STEP = 6
ANGLE_COUNT = 180 // THETA_STEP
NUM_THREADS = 4
ROI_FACTOR = 0.6
BENCHMARK_RUNS = 50
MAX_LINES = 8
MIN_LINE_VOTES = 20
MIN_STEERING_VOTES = 10
SUPPRESSION_RADIUS = 2
EDGE_THRESHOLD = 30
STABILITY_LIMIT = 10.0
DEFAULT_IMAGE = "route_low.jpg"

GREEN = (0, 255, 0)


@dataclass(frozen=True)
class BenchmarkSummary:
    """Statistics of a series of benchmark runs; times in milliseconds."""

    runs: int
    avg_time: float
    min_time: float
    max_time: float
    avg_fps: float
    min_fps: float
    max_fps: float
    std_dev: float
    cv: float
    stable: bool


def _row_ranges(start: int, end: int, parts: int) -> list[tuple[int, int]]:
    per = (end - start) // parts
    return [
        (start + i * per, end if i == parts - 1 else start + (i + 1) * per)
        for i in range(parts)
    ]


def _run_parallel(fn, ranges: list[tuple[int, int]]) -> None:
    with ThreadPool(len(ranges)) as pool:
        futures = [pool.submit(fn, s, e) for s, e in ranges]
        for future in futures:
            future.result()


def _require_gray(frame: np.ndarray) -> None:
    if frame.ndim != 2:
        raise ValueError("expected a (rows, cols) grayscale image")


def sobel_multithread(frame: np.ndarray, limit: int) -> np.ndarray:
    """Sobel magnitude over four, zeroed below ``limit``, rows split among threads.

    Border pixels are zero and magnitudes above 255 are clipped.
    """
    _require_gray(frame)
    rows, cols = frame.shape
    out = np.zeros((rows, cols), dtype=np.uint8)
    src = frame.astype(np.float64)

    def process(start: int, end: int) -> None:
        lo, hi = max(start, 1), min(end, rows - 1)
        if lo >= hi or cols < 3:
            return
        up, mid, down = src[lo - 1:hi - 1], src[lo:hi], src[lo + 1:hi + 1]
        sum_x = (up[:, 2:] - up[:, :-2] + 2 * (mid[:, 2:] - mid[:, :-2])
                 + down[:, 2:] - down[:, :-2])
        sum_y = (down[:, :-2] - up[:, :-2] + 2 * (down[:, 1:-1] - up[:, 1:-1])
                 + down[:, 2:] - up[:, 2:])
        gradient = np.sqrt(sum_x ** 2 + sum_y ** 2) / 4
        kept = np.where(gradient < limit, 0, np.minimum(gradient, 255))
        out[lo:hi, 1:-1] = kept.astype(np.uint8)

    _run_parallel(process, _row_ranges(0, rows, NUM_THREADS))
    return out


def fast_edge_detection(src: np.ndarray, threshold: int) -> np.ndarray:
    """Binary edges where the Manhattan Sobel magnitude exceeds ``threshold``."""
    _require_gray(src)
    rows, cols = src.shape
    out = np.zeros((rows, cols), dtype=np.uint8)
    if rows < 3 or cols < 3:
        return out
    s = src.astype(np.int64)
    prev, curr, nxt = s[:-2], s[1:-1], s[2:]
    gx = (prev[:, 2:] - prev[:, :-2]) + 2 * (curr[:, 2:] - curr[:, :-2]) + (nxt[:, 2:] - nxt[:, :-2])
    gy = (nxt[:, :-2] - prev[:, :-2]) + 2 * (nxt[:, 1:-1] - prev[:, 1:-1]) + (nxt[:, 2:] - prev[:, 2:])
    out[1:-1, 1:-1] = np.where(np.abs(gx) + np.abs(gy) > threshold, 255, 0)
    return out


def _check_accumulator(acc: np.ndarray) -> None:
    if acc.ndim != 2 or acc.dtype != np.uint16:
        raise ValueError("accumulator must be a 2-D uint16 array")
    if acc.shape[0] < ANGLE_COUNT:
        raise ValueError(f"accumulator needs at least {ANGLE_COUNT} theta rows")


def hough_multithread(frame: np.ndarray, acc: np.ndarray,
                      output: np.ndarray | None = None) -> list[tuple[int, int, int, int]]:
    """Vote the lower part of ``frame`` into ``acc`` and extract up to eight lines.

    Only the bottom 60 % of the rows vote. ``acc`` is updated in place; each
    extracted peak and its 5x5 neighbourhood are cleared. The lines are
    returned as ``(x1, y1, x2, y2)`` and drawn on ``output`` when given.
    """
    _require_gray(frame)
    _check_accumulator(acc)
    rows = frame.shape[0]
    width = acc.shape[1]
    thetas = np.arange(ANGLE_COUNT) * (THETA_STEP * PI / 180.0)
    cos_t, sin_t = np.cos(thetas), np.sin(thetas)
    lock = threading.Lock()

    def vote(start: int, end: int) -> None:
        ys, xs = np.nonzero(frame[start:end])
        if not len(xs):
            return
        ys = ys + start
        rho = np.outer(xs, cos_t) + np.outer(ys, sin_t)
        t_idx = np.broadcast_to(np.arange(ANGLE_COUNT), rho.shape)
        positive = rho > 0
        r = np.rint(rho[positive]).astype(np.int64)
        t = t_idx[positive]
        if r.size and r.max() >= width:
            raise ValueError("accumulator is too small for this frame")
        counts = np.zeros((ANGLE_COUNT, width), dtype=np.int64)
        np.add.at(counts, (t, r), 1)
        with lock:
            acc[:ANGLE_COUNT] += counts.astype(np.uint16)

    roi_start = int(rows * (1 - ROI_FACTOR))
    _run_parallel(vote, _row_ranges(roi_start, rows, NUM_THREADS))

    lines: list[tuple[int, int, int, int]] = []
    if acc.size == 0:
        return lines
    r = SUPPRESSION_RADIUS
    for _ in range(MAX_LINES):
        y, x = divmod(int(np.argmax(acc)), width)
        if acc[y, x] < MIN_LINE_VOTES:
            break
        theta = y * THETA_STEP
        a = math.cos(theta * PI / 180)
        b = math.sin(theta * PI / 180)
        x0, y0 = a * x, b * x
        lines.append((round(x0 + 1000 * -b), round(y0 + 1000 * a),
                      round(x0 - 1000 * -b), round(y0 - 1000 * a)))
        acc[max(y - r, 0):y + r + 1, max(x - r, 0):x + r + 1] = 0

    if output is not None:
        for x1, y1, x2, y2 in lines:
            draw_line(output, (x1, y1), (x2, y2), RED, 2)
    return lines


def calculate_steering_angle(acc: np.ndarray) -> float:
    """Steering angle in degrees from the strongest accumulator peak, in [-90, 90]."""
    if acc.size == 0:
        return 0.0
    y, _ = divmod(int(np.argmax(acc)), acc.shape[1])
    if acc.flat[int(np.argmax(acc))] < MIN_STEERING_VOTES:
        return 0.0
    angle = float(y * THETA_STEP) - 90
    if angle < -90:
        angle += 180
    if angle > 90:
        angle -= 180
    return angle


def summarize(processing_times: Sequence[float]) -> BenchmarkSummary:
    """Time and frame-rate statistics of a series of runs (milliseconds each)."""
    times = [float(t) for t in processing_times]
    if not times:
        raise ValueError("no processing times to summarize")
    fps = [1000.0 / t if t > 0 else math.inf for t in times]
    runs = len(times)
    avg_time = sum(times) / runs
    avg_fps = sum(fps) / runs
    variance = sum((f - avg_fps) ** 2 for f in fps) / runs
    std_dev = math.sqrt(variance)
    cv = std_dev / avg_fps * 100 if avg_fps else math.inf
    return BenchmarkSummary(
        runs=runs,
        avg_time=avg_time,
        min_time=min(times),
        max_time=max(times),
        avg_fps=avg_fps,
        min_fps=min(fps),
        max_fps=max(fps),
        std_dev=std_dev,
        cv=cv,
        stable=cv < STABILITY_LIMIT,
    )


def _half_size(frame: np.ndarray) -> np.ndarray:
    rows, cols = frame.shape[:2]
    size = (max(1, round(cols * 0.5)), max(1, round(rows * 0.5)))
    rgb = Image.fromarray(np.ascontiguousarray(frame[..., ::-1]))
    resized = np.asarray(rgb.resize(size, Image.Resampling.BOX), dtype=np.uint8)
    return np.ascontiguousarray(resized[..., ::-1])


def _print_report(summary: BenchmarkSummary) -> None:
    print("\n=== PERFORMANCE CERTIFICATION ===")
    print(f"Runs: {summary.runs}")
    print(f"Mean processing time: {summary.avg_time:.2f} ms")
    print(f"Minimum time: {summary.min_time:.2f} ms")
    print(f"Maximum time: {summary.max_time:.2f} ms")
    print(f"Mean FPS: {summary.avg_fps:.2f}")
    print(f"Minimum FPS: {summary.min_fps:.2f}")
    print(f"Maximum FPS: {summary.max_fps:.2f}")
    print(f"FPS standard deviation: {summary.std_dev:.2f}")
    print(f"Coefficient of variation: {summary.cv:.2f}%")
    print(f"Real-time certification: {'STABLE' if summary.stable else 'UNSTABLE'}")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the line detection pipeline repeatedly on an image and report timings."""
    parser = argparse.ArgumentParser(description="Benchmark lane line detection on an image.")
    parser.add_argument("image", nargs="?", default=DEFAULT_IMAGE, help="path of the input image")
    parser.add_argument("--runs", type=int, default=BENCHMARK_RUNS, help="number of runs")
    parser.add_argument("--output", help="where to save the last image with detected lines")
    parser.add_argument("--edges", help="where to save the last edge image")
    args = parser.parse_args(argv)
    if args.runs <= 0:
        parser.error("--runs must be positive")

    print("Starting the line detection benchmark")
    acquisition = ImageAcquisition()
    try:
        acquisition.init(SourceType.IMAGE_FILE, args.image)
        frame = acquisition.get_frame()
    except AcquisitionError:
        print(f"Error: could not load the image '{args.image}'")
        return 1
    finally:
        acquisition.release()

    frame = _half_size(frame)
    rows, cols = frame.shape[:2]
    print("System configuration")
    print(f"Image size: {rows} rows, {cols} columns")
    acc_width = round(math.sqrt(cols ** 2 + rows ** 2))

    metrics = PerformanceMetrics()
    times: list[float] = []
    frame_copy = frame.copy()
    edges = np.zeros((rows, cols), dtype=np.uint8)
    for run in range(args.runs):
        frame_copy = frame.copy()
        acc = np.zeros((ANGLE_COUNT, acc_width), dtype=np.uint16)
        with metrics.measure(MetricType.TOTAL_PROCESSING):
            gray = grayscale_filter(frame_copy)
            gray = gaussian_blur(gray, 5, 1.5)
            edges = fast_edge_detection(gray, EDGE_THRESHOLD)
            hough_multithread(edges, acc, frame_copy)
            steering = calculate_steering_angle(acc)
        elapsed = metrics.last_measurement(MetricType.TOTAL_PROCESSING)
        times.append(elapsed)
        fps = 1000.0 / elapsed if elapsed > 0 else math.inf
        print(f"FPS: {fps:.2f} | Angle: {steering:.2f} deg | Run: {run + 1}/{args.runs}")

        center = (cols // 2, rows - 30)
        direction = (round(center[0] + math.sin(steering * PI / 180) * 50),
                     round(center[1] - math.cos(steering * PI / 180) * 50))
        draw_line(frame_copy, center, direction, GREEN, 2)

    _print_report(summarize(times))

    if args.output:
        Image.fromarray(np.ascontiguousarray(frame_copy[..., ::-1])).save(args.output)
    if args.edges:
        Image.fromarray(edges).save(args.edges)
    return 0


__all__ = [
    "BenchmarkSummary",
    "calculate_steering_angle",
    "draw_lines",
    "fast_edge_detection",
    "hough_multithread",
    "main",
    "sobel_multithread",
    "summarize",
]


if __name__ == "__main__":
    raise SystemExit(main())