"""Grayscale, edge detection, binarisation and Hough line detection on numpy images.

Colour images are ``(rows, cols, 3)`` uint8 arrays in BGR order; grayscale
images are ``(rows, cols)`` uint8 arrays.
"""

from __future__ import annotations

import math
import os
import time
from dataclasses import dataclass, field

import numpy as np

from lanesight.thread_pool import ThreadPool

Color = tuple[int, int, int]
RED: Color = (0, 0, 255)

_HOUGH_P_SEED = 0


@dataclass
class LineDetectionResult:
    """Lines found by a Hough transform and the image they were drawn on."""

    lines: list[tuple[float, float]] = field(default_factory=list)
    line_segments: list[tuple[int, int, int, int]] = field(default_factory=list)
    processing_time: float = 0.0
    image: np.ndarray | None = None


def _row_ranges(rows: int, num_threads: int) -> list[tuple[int, int]]:
    if num_threads <= 0:
        raise ValueError("num_threads must be positive")
    per = rows // num_threads
    return [
        (t * per, rows if t == num_threads - 1 else (t + 1) * per)
        for t in range(num_threads)
    ]


def _pad2d(img: np.ndarray, n: int, mode: str) -> np.ndarray:
    width = [(n, n), (n, n)] + [(0, 0)] * (img.ndim - 2)
    return np.pad(img, width, mode=mode)


def _sep_filter(img: np.ndarray, kx: np.ndarray, ky: np.ndarray, mode: str) -> np.ndarray:
    """Separable correlation of a 2-D or 3-D array over its first two axes."""
    n = len(kx) // 2
    src = _pad2d(img.astype(np.float64), n, mode)
    rows, cols = img.shape[:2]
    tmp = sum(w * src[:, k:k + cols] for k, w in enumerate(kx))
    return sum(w * tmp[k:k + rows] for k, w in enumerate(ky))


def _sobel(img: np.ndarray, mode: str) -> tuple[np.ndarray, np.ndarray]:
    smooth = np.array([1.0, 2.0, 1.0])
    deriv = np.array([-1.0, 0.0, 1.0])
    gx = _sep_filter(img, deriv, smooth, mode)
    gy = _sep_filter(img, smooth, deriv, mode)
    return gx.astype(np.int32), gy.astype(np.int32)


def _gaussian_kernel(ksize: int, sigma: float) -> np.ndarray:
    if sigma <= 0:
        sigma = 0.3 * ((ksize - 1) * 0.5 - 1) + 0.8
    x = np.arange(ksize) - (ksize - 1) / 2
    k = np.exp(-(x * x) / (2 * sigma * sigma))
    return k / k.sum()


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _ensure_gray(image: np.ndarray, use_multithread: bool) -> np.ndarray:
    return grayscale_filter(image, use_multithread) if image.ndim == 3 else image


def grayscale_filter(image: np.ndarray, use_multithread: bool = False) -> np.ndarray:
    """Convert a BGR image to grayscale; a grayscale image is copied."""
    if image.ndim == 2:
        return image.copy()
    if use_multithread:
        return grayscale_filter_threaded(image, os.cpu_count() or 1)
    b, g, r = (image[..., i].astype(np.float64) for i in range(3))
    return _to_uint8(0.299 * r + 0.587 * g + 0.114 * b)


def grayscale_filter_threaded(image: np.ndarray, num_threads: int) -> np.ndarray:
    """Grayscale conversion with rows split among threads; values are truncated."""
    ranges = _row_ranges(image.shape[0], num_threads)
    out = np.empty(image.shape[:2], dtype=np.uint8)

    def process(start: int, end: int) -> None:
        part = image[start:end].astype(np.float64)
        out[start:end] = (0.299 * part[..., 2] + 0.587 * part[..., 1]
                          + 0.114 * part[..., 0]).astype(np.uint8)

    with ThreadPool(num_threads) as pool:
        futures = [pool.submit(process, s, e) for s, e in ranges]
        for f in futures:
            f.result()
    return out


def gaussian_blur(image: np.ndarray, ksize: int = 5, sigma: float = 0.0) -> np.ndarray:
    """Gaussian blur with an odd square kernel and reflected borders."""
    if ksize <= 0 or ksize % 2 == 0:
        raise ValueError("ksize must be a positive odd number")
    k = _gaussian_kernel(ksize, sigma)
    return _to_uint8(_sep_filter(image, k, k, "reflect"))


def sobel_filter(image: np.ndarray, use_multithread: bool = False) -> np.ndarray:
    """Average of the absolute horizontal and vertical Sobel gradients."""
    def abs_x() -> np.ndarray:
        return np.clip(np.abs(_sobel(image, "reflect")[0]), 0, 255)

    def abs_y() -> np.ndarray:
        return np.clip(np.abs(_sobel(image, "reflect")[1]), 0, 255)

    if use_multithread:
        with ThreadPool(2) as pool:
            fx, fy = pool.submit(abs_x), pool.submit(abs_y)
            ax, ay = fx.result(), fy.result()
    else:
        ax, ay = abs_x(), abs_y()
    return _to_uint8(0.5 * ax + 0.5 * ay)


def sobel_filter_threaded(image: np.ndarray, num_threads: int) -> np.ndarray:
    """Sobel gradient magnitude, truncated and clipped to 255; borders are zero."""
    gray = grayscale_filter(image, True) if image.ndim == 3 else image
    rows, cols = gray.shape
    ranges = _row_ranges(rows, num_threads)
    out = np.zeros((rows, cols), dtype=np.uint8)
    src = gray.astype(np.int64)

    def process(start: int, end: int) -> None:
        lo, hi = max(start, 1), min(end, rows - 1)
        if lo >= hi or cols < 3:
            return
        up, mid, down = src[lo - 1:hi - 1], src[lo:hi], src[lo + 1:hi + 1]
        gx = (up[:, 2:] + 2 * mid[:, 2:] + down[:, 2:]
              - up[:, :-2] - 2 * mid[:, :-2] - down[:, :-2])
        gy = (down[:, :-2] + 2 * down[:, 1:-1] + down[:, 2:]
              - up[:, :-2] - 2 * up[:, 1:-1] - up[:, 2:])
        mag = np.sqrt(gx * gx + gy * gy).astype(np.int64)
        out[lo:hi, 1:-1] = np.minimum(mag, 255)

    with ThreadPool(num_threads) as pool:
        futures = [pool.submit(process, s, e) for s, e in ranges]
        for f in futures:
            f.result()
    return out


def canny_filter(image: np.ndarray, threshold1: float = 50, threshold2: float = 150,
                 use_multithread: bool = False) -> np.ndarray:
    """Canny edge detector returning a 0/255 edge map."""
    gray = _ensure_gray(image, use_multithread)
    low, high = sorted((threshold1, threshold2))
    gx, gy = _sobel(gray, "edge")
    mag = np.abs(gx) + np.abs(gy)
    rows, cols = mag.shape
    p = np.pad(mag, 1)

    def nb(dy: int, dx: int) -> np.ndarray:
        return p[1 + dy:1 + dy + rows, 1 + dx:1 + dx + cols]

    ax, ay = np.abs(gx).astype(np.float64), np.abs(gy).astype(np.float64)
    horiz = ay < ax * 0.4142135623730951
    vert = ~horiz & (ay > ax * 2.414213562373095)
    diag = ~horiz & ~vert
    same = (gx.astype(np.int64) * gy) >= 0
    keep = np.zeros_like(horiz)
    keep |= horiz & (mag > nb(0, -1)) & (mag >= nb(0, 1))
    keep |= vert & (mag > nb(-1, 0)) & (mag >= nb(1, 0))
    keep |= diag & same & (mag > nb(-1, -1)) & (mag >= nb(1, 1))
    keep |= diag & ~same & (mag > nb(-1, 1)) & (mag >= nb(1, -1))
    candidate = keep & (mag > low)
    edges = candidate & (mag > high)
    while True:
        q = np.pad(edges, 1)
        grown = np.zeros_like(edges)
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                grown |= q[1 + dy:1 + dy + rows, 1 + dx:1 + dx + cols]
        grown &= candidate
        if np.array_equal(grown | edges, edges):
            break
        edges |= grown
    return np.where(edges, 255, 0).astype(np.uint8)


def binarize(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """255 where a pixel exceeds ``threshold``, 0 elsewhere."""
    return np.where(image > threshold, 255, 0).astype(np.uint8)


def adaptive_binarize(image: np.ndarray, block_size: int = 11, c: int = 2) -> np.ndarray:
    """Threshold each pixel against the Gaussian-weighted mean of its block minus ``c``."""
    if block_size <= 1 or block_size % 2 == 0:
        raise ValueError("block_size must be an odd number greater than 1")
    k = _gaussian_kernel(block_size, 0.0)
    mean = _to_uint8(_sep_filter(image, k, k, "edge")).astype(np.int32)
    return np.where(image.astype(np.int32) - mean > -c, 255, 0).astype(np.uint8)


def _angles(num: int = 180) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    theta = np.arange(num) * (math.pi / 180)
    return theta, np.cos(theta), np.sin(theta)


def hough_lines(edges: np.ndarray, threshold: int) -> list[tuple[float, float]]:
    """Standard Hough transform (1 pixel, 1 degree) returning ``(rho, theta)`` lines."""
    rows, cols = edges.shape
    theta, cos_t, sin_t = _angles()
    numangle = len(theta)
    numrho = (cols + rows) * 2 + 1
    offset = (numrho - 1) // 2
    acc = np.zeros((numangle + 2, numrho + 2), dtype=np.int64)
    ys, xs = np.nonzero(edges)
    if len(xs):
        r = np.rint(np.outer(xs, cos_t) + np.outer(ys, sin_t)).astype(np.int64) + offset
        n = np.broadcast_to(np.arange(numangle), r.shape)
        np.add.at(acc, (n + 1, r + 1), 1)
    c = acc[1:-1, 1:-1]
    peaks = ((c > threshold) & (c > acc[1:-1, :-2]) & (c >= acc[1:-1, 2:])
             & (c > acc[:-2, 1:-1]) & (c >= acc[2:, 1:-1]))
    ns, rs = np.nonzero(peaks)
    order = sorted(range(len(ns)), key=lambda k: (-c[ns[k], rs[k]], ns[k] * numrho + rs[k]))
    return [(float(rs[k] - (numrho - 1) * 0.5), float(theta[ns[k]])) for k in order]


def hough_lines_p(edges: np.ndarray, threshold: int, min_line_length: float = 0,
                  max_line_gap: float = 0) -> list[tuple[int, int, int, int]]:
    """Probabilistic Hough transform returning ``(x1, y1, x2, y2)`` segments.

    Edge points are visited in a fixed pseudo-random order, so the result is
    reproducible for a given edge map.
    """
    rows, cols = edges.shape
    _, cos_t, sin_t = _angles()
    numangle = len(cos_t)
    numrho = (cols + rows) * 2 + 1
    offset = (numrho - 1) // 2
    idx = np.arange(numangle)
    acc = np.zeros((numangle, numrho), dtype=np.int64)
    mask = edges != 0
    voted = np.zeros_like(mask)
    points = np.argwhere(mask)
    np.random.default_rng(_HOUGH_P_SEED).shuffle(points)

    def bins(x: int, y: int) -> np.ndarray:
        return np.rint(x * cos_t + y * sin_t).astype(np.int64) + offset

    segments: list[tuple[int, int, int, int]] = []
    for y0, x0 in points:
        if not mask[y0, x0]:
            continue
        r = bins(x0, y0)
        acc[idx, r] += 1
        voted[y0, x0] = True
        best = int(np.argmax(acc[idx, r]))
        if acc[best, r[best]] < threshold:
            continue
        mask[y0, x0] = False
        norm = max(abs(sin_t[best]), abs(cos_t[best]))
        step = (-sin_t[best] / norm, cos_t[best] / norm)
        ends = []
        for sign in (1, -1):
            end = (int(x0), int(y0))
            gap, k = 0, 1
            while True:
                px = int(round(x0 + sign * k * step[0]))
                py = int(round(y0 + sign * k * step[1]))
                if not (0 <= px < cols and 0 <= py < rows):
                    break
                if mask[py, px]:
                    gap, end = 0, (px, py)
                else:
                    gap += 1
                    if gap > max_line_gap:
                        break
                k += 1
            ends.append(end)
        good = (abs(ends[0][0] - ends[1][0]) >= min_line_length
                or abs(ends[0][1] - ends[1][1]) >= min_line_length)
        for sign, end in zip((1, -1), ends):
            k = 0
            while True:
                px = int(round(x0 + sign * k * step[0]))
                py = int(round(y0 + sign * k * step[1]))
                if mask[py, px] or (px, py) == (x0, y0):
                    if good and voted[py, px]:
                        acc[idx, bins(px, py)] -= 1
                        voted[py, px] = False
                    mask[py, px] = False
                if (px, py) == end:
                    break
                k += 1
        if good:
            segments.append((ends[1][0], ends[1][1], ends[0][0], ends[0][1]))
    return segments


def _clip(pt1, pt2, rows: int, cols: int, margin: int):
    (x1, y1), (x2, y2) = pt1, pt2
    dx, dy = x2 - x1, y2 - y1
    t0, t1 = 0.0, 1.0
    for p, q in ((-dx, x1 + margin), (dx, cols - 1 + margin - x1),
                 (-dy, y1 + margin), (dy, rows - 1 + margin - y1)):
        if p == 0:
            if q < 0:
                return None
            continue
        t = q / p
        if p < 0:
            t0 = max(t0, t)
        else:
            t1 = min(t1, t)
    if t0 > t1:
        return None
    return (x1 + t0 * dx, y1 + t0 * dy), (x1 + t1 * dx, y1 + t1 * dy)


def draw_line(image: np.ndarray, pt1: tuple[int, int], pt2: tuple[int, int],
              color: Color = RED, thickness: int = 1) -> None:
    """Draw a straight line in place; parts outside the image are dropped."""
    rows, cols = image.shape[:2]
    radius = max(thickness, 1) / 2 if thickness > 1 else 0
    span = int(math.ceil(radius))
    clipped = _clip(pt1, pt2, rows, cols, span)
    if clipped is None:
        return
    (x1, y1), (x2, y2) = clipped
    n = int(max(abs(x2 - x1), abs(y2 - y1))) + 1
    xs = np.rint(np.linspace(x1, x2, n + 1)).astype(np.int64)
    ys = np.rint(np.linspace(y1, y2, n + 1)).astype(np.int64)
    value = color[0] if image.ndim == 2 else color
    for oy in range(-span, span + 1):
        for ox in range(-span, span + 1):
            if ox * ox + oy * oy > radius * radius:
                continue
            px, py = xs + ox, ys + oy
            ok = (px >= 0) & (px < cols) & (py >= 0) & (py < rows)
            image[py[ok], px[ok]] = value


def draw_lines(image: np.ndarray, lines, color: Color = RED) -> None:
    """Draw ``(rho, theta)`` lines in place, extended 1000 pixels each way."""
    for rho, theta in lines:
        a, b = math.cos(theta), math.sin(theta)
        x0, y0 = a * rho, b * rho
        pt1 = (round(x0 + 1000 * -b), round(y0 + 1000 * a))
        pt2 = (round(x0 - 1000 * -b), round(y0 - 1000 * a))
        draw_line(image, pt1, pt2, color, 2)


def draw_line_segments(image: np.ndarray, segments, color: Color = RED) -> None:
    """Draw ``(x1, y1, x2, y2)`` segments in place."""
    for x1, y1, x2, y2 in segments:
        draw_line(image, (x1, y1), (x2, y2), color, 2)


def hough_transform(image: np.ndarray, threshold: int = 100, use_binarization: bool = True,
                    use_multithread: bool = False) -> LineDetectionResult:
    """Sobel edges, optional binarisation, standard Hough; lines drawn on a copy."""
    start = time.perf_counter()
    edges = sobel_filter(_ensure_gray(image, use_multithread), use_multithread)
    if use_binarization:
        edges = binarize(edges, 100)
    lines = hough_lines(edges, threshold)
    output = image.copy()
    draw_lines(output, lines)
    return LineDetectionResult(lines=lines, processing_time=(time.perf_counter() - start) * 1000,
                               image=output)


def hough_transform_no_binarization(image: np.ndarray, threshold: int = 50,
                                    use_multithread: bool = False) -> LineDetectionResult:
    """:func:`hough_transform` without the binarisation step."""
    return hough_transform(image, threshold, False, use_multithread)


def probabilistic_hough_transform(image: np.ndarray, threshold: int = 50,
                                  use_multithread: bool = False) -> LineDetectionResult:
    """Canny edges then probabilistic Hough; segments drawn on a copy."""
    start = time.perf_counter()
    edges = canny_filter(_ensure_gray(image, use_multithread), 50, 150, use_multithread)
    segments = hough_lines_p(edges, threshold, 50, 10)
    output = image.copy()
    draw_line_segments(output, segments)
    return LineDetectionResult(line_segments=segments,
                               processing_time=(time.perf_counter() - start) * 1000,
                               image=output)