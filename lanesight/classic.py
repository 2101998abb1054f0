"""Hand-written Sobel filters, luminosity grayscale and a simple Hough transform.

Images are numpy arrays: colour frames are ``(rows, cols, 3)`` uint8 in BGR
order, grayscale frames are ``(rows, cols)`` uint8. The Hough accumulator is a
``(theta bins, rho bins)`` uint16 array.
"""

from __future__ import annotations

import argparse
import math
from collections.abc import Sequence

import numpy as np
from PIL import Image

from lanesight.acquisition import AcquisitionError, ImageAcquisition, SourceType
from lanesight.preprocessing import RED, draw_line, gaussian_blur

PI = 3.14159265
THETA_STEP = 4
MAX_LINES = 40
NEIGHBOURHOOD = 5

FILTER_GX = (-1, 0, 1, -2, 0, 2, -1, 0, 1)
FILTER_GY = (-1, -2, -1, 0, 0, 0, 1, 2, 1)


def _square_kernel(values: Sequence[int]) -> np.ndarray:
    size = math.isqrt(len(values))
    if size * size != len(values) or size % 2 == 0:
        raise ValueError("filter must hold an odd square number of coefficients")
    return np.asarray(values, dtype=np.float64).reshape(size, size)


def sobel_convolution(frame: np.ndarray, filter_gx: Sequence[int] = FILTER_GX,
                      filter_gy: Sequence[int] = FILTER_GY, limit: int = 25) -> np.ndarray:
    """Gradient magnitude over four from two square filters, zeroed below ``limit``.

    Coefficient ``i * size + j`` weighs the pixel ``i - size // 2`` columns and
    ``j - size // 2`` rows away. Border pixels are left at zero and magnitudes
    above 255 are clipped.
    """
    gx = _square_kernel(filter_gx)
    gy = _square_kernel(filter_gy)
    if gx.shape != gy.shape:
        raise ValueError("both filters must have the same size")
    size = gx.shape[0]
    step = size // 2
    border = max(step, 1)
    rows, cols = frame.shape
    out = np.zeros((rows, cols), dtype=np.uint8)
    if rows <= 2 * border or cols <= 2 * border:
        return out
    src = frame.astype(np.float64)
    sum_x = np.zeros((rows - 2 * border, cols - 2 * border))
    sum_y = np.zeros_like(sum_x)
    for i in range(size):
        for j in range(size):
            dr, dc = j - step, i - step
            window = src[border + dr:rows - border + dr, border + dc:cols - border + dc]
            sum_x += gx[i, j] * window
            sum_y += gy[i, j] * window
    magnitude = np.sqrt(sum_x ** 2 + sum_y ** 2) / 4
    stored = np.minimum(magnitude, 255).astype(np.uint8)
    stored[magnitude < limit] = 0
    out[border:rows - border, border:cols - border] = stored
    return out


def sobel_ed(frame: np.ndarray, limit: int) -> np.ndarray:
    """Binary edge map from central differences; a limit outside 0..255 becomes 255."""
    if limit > 255 or limit < 0:
        limit = 255
    rows, cols = frame.shape
    out = np.zeros((rows, cols), dtype=np.uint8)
    if rows < 3 or cols < 3:
        return out
    src = frame.astype(np.float64)
    sum_x = src[2:, 1:-1] - src[:-2, 1:-1]
    sum_y = src[1:-1, 2:] - src[1:-1, :-2]
    edges = np.sqrt(sum_x ** 2 + sum_y ** 2) > limit
    out[1:-1, 1:-1] = np.where(edges, 255, 0)
    return out


def _weighted(a: np.ndarray, wa: float, b: np.ndarray, wb: float) -> np.ndarray:
    return np.clip(np.rint(wa * a + wb * b), 0, 255)


def rgb_to_grayscale(rgb: np.ndarray) -> np.ndarray:
    """Luminosity grayscale: 0.07 blue, 0.72 green and 0.21 red of a BGR frame."""
    if rgb.ndim != 3 or rgb.shape[2] != 3:
        raise ValueError("expected a (rows, cols, 3) BGR image")
    blue, green, red = (rgb[..., k].astype(np.float64) for k in range(3))
    partial = _weighted(blue, 0.07, green, 0.72)
    return _weighted(partial, 1.0, red, 0.21).astype(np.uint8)


def accumulator_shape(rows: int, cols: int) -> tuple[int, int]:
    """Shape of the Hough accumulator for a frame: theta bins by rho bins."""
    width = int(math.sqrt(rows ** 2 + cols ** 2) * 2)
    return math.ceil(180 / THETA_STEP), width


def _vote(frame: np.ndarray, flat: np.ndarray, width: int) -> None:
    ys, xs = np.nonzero(frame)
    if not len(xs):
        return
    for t, theta in enumerate(range(0, 180, THETA_STEP)):
        rad = theta * PI / 180
        rho = xs * math.cos(rad) + ys * math.sin(rad)
        rho = rho[rho != 0]
        # Negative rho values land at the end of the previous theta row.
        idx = t * width + np.rint(rho).astype(np.int64)
        if len(idx) and (idx.min() < 0 or idx.max() >= flat.size):
            raise ValueError("accumulator is too small for this frame")
        np.add.at(flat, idx, np.uint16(1))


def simple_hough(frame: np.ndarray, acc: np.ndarray,
                 output: np.ndarray | None = None) -> list[tuple[int, int]]:
    """Vote edge pixels into ``acc`` and draw up to forty strongest lines on ``output``.

    ``acc`` is updated in place. Successive lines whose peaks lie within five
    bins of the previous one are skipped. Returns the drawn lines as
    ``(rho, theta in degrees)``; extraction stops early when no votes remain.
    """
    if acc.ndim != 2 or acc.dtype != np.uint16 or not acc.flags.c_contiguous:
        raise ValueError("accumulator must be a contiguous 2-D uint16 array")
    width = acc.shape[1]
    flat = acc.reshape(-1)
    _vote(frame, flat, width)

    first_row, first_col = divmod(int(np.argmax(flat)), width)
    old_x, old_y = first_col, first_row
    # The first peak is cleared through the byte view, as bytes, not counts.
    acc.view(np.uint8)[first_row, first_col] = 0

    lines: list[tuple[int, int]] = []
    while len(lines) < MAX_LINES:
        peak = int(np.argmax(flat))
        if flat[peak] == 0:
            break
        y, x = divmod(peak, width)
        if abs(old_x - x) > NEIGHBOURHOOD or abs(old_y - y) > NEIGHBOURHOOD:
            theta = y * THETA_STEP
            a = math.cos(theta * PI / 180)
            b = math.sin(theta * PI / 180)
            x0, y0 = a * x, b * x
            pt1 = (round(x0 + 1000 * -b), round(y0 + 1000 * a))
            pt2 = (round(x0 - 1000 * -b), round(y0 - 1000 * a))
            if output is not None:
                draw_line(output, pt1, pt2, RED, 3)
            lines.append((x, theta))
            old_x, old_y = x, y
        flat[peak] = 0
    return lines


def _save_bgr(frame: np.ndarray, path: str) -> None:
    Image.fromarray(np.ascontiguousarray(frame[..., ::-1])).save(path)


def main(argv: Sequence[str] | None = None) -> int:
    """Detect lines in an image file and optionally save the results."""
    parser = argparse.ArgumentParser(description="Detect straight lines in an image.")
    parser.add_argument("image", help="path of the input image")
    parser.add_argument("--output", help="where to save the image with detected lines")
    parser.add_argument("--edges", help="where to save the edge image")
    args = parser.parse_args(argv)

    print("OK !")
    acquisition = ImageAcquisition()
    try:
        acquisition.init(SourceType.IMAGE_FILE, args.image)
        frame = acquisition.get_frame()
    except AcquisitionError:
        print("Could not open or find the image")
        return 1
    finally:
        acquisition.release()

    print("setup")
    rows, cols = frame.shape[:2]
    shape = accumulator_shape(rows, cols)
    print(f"rows : {rows}, cols : {cols} ")
    acc = np.zeros(shape, dtype=np.uint16)
    print(f"rho : {shape[1]}, theta : {shape[0]} ")

    gray = gaussian_blur(rgb_to_grayscale(frame), 9, 2.0)
    sobel = sobel_convolution(gray, FILTER_GX, FILTER_GY, 25)
    lines = simple_hough(sobel, acc, frame)
    print(f"lines : {len(lines)}")

    if args.output:
        _save_bgr(frame, args.output)
    if args.edges:
        Image.fromarray(sobel).save(args.edges)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())