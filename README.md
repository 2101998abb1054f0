# lanesight

Detect road lines in still images with edge filters and Hough transforms,
and measure how long each stage of the pipeline takes.

Images are plain NumPy arrays. Colour images are `(rows, cols, 3)` `uint8`
arrays in BGR channel order. Grayscale images are `(rows, cols)` `uint8`
arrays. Image files are read and written with Pillow.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

### `lanesight.acquisition`

`ImageAcquisition` supplies frames. Call `init(SourceType.IMAGE_FILE, path)`
to load a still image. After that, each `get_frame()` returns a fresh copy
of the image.

For `SourceType.CAMERA`, give the constructor a `camera_opener`. This is a
callable that takes a camera index and returns an object with `read()` and
`release()`. The source string is parsed as the index, and defaults to 0.
The camera is read once when it is opened, to check that it works.

Failures raise `AcquisitionError`:
- an empty or unreadable path,
- a camera that cannot be opened or read,
- a `get_frame()` call before `init`.

`release()` closes the source. The object is also a context manager and
releases its source on exit.

### `lanesight.preprocessing`

Grayscale conversion:
- `grayscale_filter`
- `grayscale_filter_threaded`, which splits rows among threads.

Smoothing:
- `gaussian_blur`

Edge detection:
- `sobel_filter`, the mean of the absolute gradients.
- `sobel_filter_threaded`, the gradient magnitude.
- `canny_filter`

Thresholding:
- `binarize`
- `adaptive_binarize`, which uses a Gaussian-weighted local mean.

Hough line detection:
- `hough_lines` returns `(rho, theta)` lines.
- `hough_lines_p` returns `(x1, y1, x2, y2)` segments. It visits edge points in a fixed pseudo-random order, so its results can be reproduced.

Full pipelines:
- `hough_transform` and `hough_transform_no_binarization` run Sobel and then the standard Hough transform.
- `probabilistic_hough_transform` runs Canny and then the probabilistic transform.

Each full pipeline returns a `LineDetectionResult`. It holds the lines or segments found, the processing time in milliseconds, and a copy of the input image with the lines drawn on it.

Drawing helpers work in place:
- `draw_line`
- `draw_lines`
- `draw_line_segments`

### `lanesight.metrics`

`PerformanceMetrics` records durations in milliseconds for each `MetricType`. It is safe to use from several threads.

- `start_measurement` and `end_measurement` mark the two ends of a measurement.
- `measure(metric)` is a context manager that times a block.
- `statistics(metric)` returns a `Statistics` with count, minimum, maximum, average and population standard deviation.
- `calculate_fps()` derives frames per second from the mean total processing time.
- `report()` returns a readable report and `print_report()` prints it.
- `save_to_file(path)` writes a CSV summary.
- `reset()` clears all measurements.

### `lanesight.thread_pool`

`ThreadPool` keeps a fixed set of worker threads. Its size defaults to the CPU count.

- `submit(fn, *args, **kwargs)` returns a `concurrent.futures.Future`.
- `thread_count()` gives the number of workers.
- `shutdown()` runs any queued tasks, then joins the workers.

Submitting after shutdown raises `PoolStoppedError`. The pool is a context manager.

### `lanesight.classic`

A hand-written pipeline:
- `rgb_to_grayscale` is a luminosity grayscale conversion.
- `sobel_convolution` applies Sobel with arbitrary square filters.
- `sobel_ed` is a simple central-difference edge detector.
- `accumulator_shape` gives the shape of the accumulator.
- `simple_hough` votes edges into a `uint16` accumulator and draws up to forty strong lines.

### `lanesight.benchmark`

A faster pipeline:
- `fast_edge_detection`
- `sobel_multithread`
- `hough_multithread`, which votes only the lower 60 % of the frame, spread across threads, and extracts up to eight lines.
- `calculate_steering_angle`, which derives an angle from the strongest accumulator peak.
- `summarize`, which turns a series of processing times into a `BenchmarkSummary`. The summary holds time and FPS statistics, the coefficient of variation, and a stability verdict, which is stable below 10 %.

## Example

```python
from lanesight.acquisition import ImageAcquisition, SourceType
from lanesight.metrics import MetricType, PerformanceMetrics
from lanesight.preprocessing import hough_transform

metrics = PerformanceMetrics()

with ImageAcquisition() as source:
    source.init(SourceType.IMAGE_FILE, "road.jpg")
    with metrics.measure(MetricType.ACQUISITION):
        frame = source.get_frame()

with metrics.measure(MetricType.HOUGH_TRANSFORM):
    result = hough_transform(frame, 100, True, False)

print(len(result.lines), "lines found")
metrics.print_report()
metrics.save_to_file("timings.csv")
```

## Commands

```
lanesight-classic road.jpg [--output lines.png] [--edges edges.png]
lanesight-benchmark [road.jpg] [--runs 50] [--output lines.png] [--edges edges.png]
```

`lanesight-classic` runs the hand-written pipeline once: grayscale, a 9×9 Gaussian blur, Sobel, then the simple Hough transform. It prints the accumulator size and the number of lines found. It can also save the image with its lines and the edge image.

`lanesight-benchmark` first halves the image. It then runs the fast pipeline `--runs` times, printing the FPS and steering angle for each run. At the end it prints a performance summary: mean, minimum and maximum time and FPS, the FPS standard deviation, the coefficient of variation, and whether the timing is stable. The image defaults to `route_low.jpg`.

## What it does not do

- There is no built-in camera backend. Camera input needs a `camera_opener` that you supply, and neither command reads from a camera.
- Nothing is shown in windows. The commands print text and can save their result images to files instead.