import math

import numpy as np
import pytest
from PIL import Image

from lanesight.benchmark import (
    ANGLE_COUNT,
    BenchmarkSummary,
    calculate_steering_angle,
    fast_edge_detection,
    hough_multithread,
    main,
    sobel_multithread,
    summarize,
)


def _step_image(rows=10, cols=12, col=5, high=200):
    img = np.zeros((rows, cols), dtype=np.uint8)
    img[:, col:] = high
    return img


def _horizontal_line_frame():
    frame = np.zeros((60, 60), dtype=np.uint8)
    frame[50, 10:50] = 255
    return frame


def test_fast_edge_detection_uniform_is_empty():
    out = fast_edge_detection(np.full((8, 8), 77, dtype=np.uint8), 30)
    assert out.shape == (8, 8)
    assert not out.any()


def test_fast_edge_detection_marks_step_columns():
    out = fast_edge_detection(_step_image(), 30)
    assert set(np.unique(out)) <= {0, 255}
    assert (out[1:-1, 4] == 255).all()
    assert (out[1:-1, 5] == 255).all()
    assert not out[1:-1, 1:4].any()
    assert not out[1:-1, 6:-1].any()
    assert not out[0].any() and not out[-1].any()
    assert not out[:, 0].any() and not out[:, -1].any()


def test_fast_edge_detection_rejects_colour():
    with pytest.raises(ValueError):
        fast_edge_detection(np.zeros((4, 4, 3), dtype=np.uint8), 30)


def test_sobel_multithread_matches_edge_positions():
    img = _step_image()
    sobel = sobel_multithread(img, 10)
    fast = fast_edge_detection(img, 30)
    assert np.array_equal(sobel > 0, fast > 0)


def test_sobel_multithread_full_step_saturates():
    out = sobel_multithread(_step_image(high=255), 10)
    assert (out[1:-1, 4] == 255).all()
    assert not out[0].any() and not out[-1].any()


def test_sobel_multithread_limit_zeroes_weak_edges():
    img = _step_image(high=4)
    assert not sobel_multithread(img, 250).any()
    assert sobel_multithread(img, 0).any()


def test_sobel_multithread_tiny_image():
    out = sobel_multithread(np.full((2, 5), 9, dtype=np.uint8), 0)
    assert out.shape == (2, 5)
    assert not out.any()


def test_hough_multithread_finds_horizontal_line():
    frame = _horizontal_line_frame()
    acc = np.zeros((ANGLE_COUNT, 85), dtype=np.uint16)
    output = np.zeros((60, 60, 3), dtype=np.uint8)
    lines = hough_multithread(frame, acc, output)
    assert lines == [(-1000, 50, 1000, 50)]
    assert acc[15, 50] == 0
    assert acc.max() < 20
    assert tuple(output[50, 30]) == (0, 0, 255)


def test_hough_multithread_ignores_rows_above_roi():
    frame = np.zeros((60, 60), dtype=np.uint8)
    frame[5, 5:55] = 255
    acc = np.zeros((ANGLE_COUNT, 85), dtype=np.uint16)
    assert hough_multithread(frame, acc) == []
    assert not acc.any()


def test_hough_multithread_accumulator_too_narrow():
    acc = np.zeros((ANGLE_COUNT, 10), dtype=np.uint16)
    with pytest.raises(ValueError):
        hough_multithread(_horizontal_line_frame(), acc)


def test_hough_multithread_accumulator_too_few_rows():
    acc = np.zeros((ANGLE_COUNT - 1, 85), dtype=np.uint16)
    with pytest.raises(ValueError):
        hough_multithread(_horizontal_line_frame(), acc)


def test_steering_angle_without_votes():
    assert calculate_steering_angle(np.zeros((ANGLE_COUNT, 20), dtype=np.uint16)) == 0.0
    weak = np.zeros((ANGLE_COUNT, 20), dtype=np.uint16)
    weak[3, 4] = 9
    assert calculate_steering_angle(weak) == 0.0


def test_steering_angle_from_peak_row():
    acc = np.zeros((ANGLE_COUNT, 20), dtype=np.uint16)
    acc[0, 7] = 50
    assert calculate_steering_angle(acc) == -90.0
    acc[15, 2] = 60
    assert calculate_steering_angle(acc) == 0.0


def test_steering_angle_stays_in_range():
    for row in range(ANGLE_COUNT):
        acc = np.zeros((ANGLE_COUNT, 5), dtype=np.uint16)
        acc[row, 1] = 30
        assert -90.0 <= calculate_steering_angle(acc) <= 90.0


def test_summarize_constant_times_is_stable():
    summary = summarize([10.0, 10.0, 10.0])
    assert isinstance(summary, BenchmarkSummary)
    assert summary.runs == 3
    assert summary.avg_time == pytest.approx(10.0)
    assert summary.avg_fps * summary.avg_time == pytest.approx(1000.0)
    assert summary.std_dev == pytest.approx(0.0)
    assert summary.stable is True


def test_summarize_varying_times():
    summary = summarize([10.0, 20.0])
    assert summary.min_time == 10.0
    assert summary.max_time == 20.0
    assert summary.min_fps * summary.max_time == pytest.approx(1000.0)
    assert summary.max_fps * summary.min_time == pytest.approx(1000.0)
    assert summary.min_fps < summary.avg_fps < summary.max_fps
    assert summary.stable is False


def test_summarize_zero_time_gives_infinite_fps():
    summary = summarize([0.0, 5.0])
    assert summary.max_fps == math.inf
    assert summary.min_fps == pytest.approx(200.0)
    assert summary.min_time == 0.0
    assert summary.max_time == 5.0


def test_summarize_empty_raises():
    with pytest.raises(ValueError):
        summarize([])


def test_main_runs_and_saves(tmp_path, capsys):
    img = np.full((40, 40, 3), 255, dtype=np.uint8)
    img[30:32, :, :] = 0
    src = tmp_path / "road.png"
    Image.fromarray(img).save(src)
    out = tmp_path / "out.png"
    edges = tmp_path / "edges.png"
    code = main([str(src), "--runs", "2", "--output", str(out), "--edges", str(edges)])
    assert code == 0
    with Image.open(out) as saved:
        assert saved.size == (20, 20)
    with Image.open(edges) as saved_edges:
        assert saved_edges.size == (20, 20)
    assert "PERFORMANCE CERTIFICATION" in capsys.readouterr().out


def test_main_missing_image(tmp_path):
    assert main([str(tmp_path / "missing.png"), "--runs", "1"]) == 1


def test_main_rejects_non_positive_runs(tmp_path):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "x.png"), "--runs", "0"])