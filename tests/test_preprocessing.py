import math

import numpy as np
import pytest

from lanesight import preprocessing as pp


def _step_image(rows=30, cols=30, col=15):
    img = np.zeros((rows, cols), dtype=np.uint8)
    img[:, col:] = 200
    return img


def test_grayscale_of_gray_is_copy():
    img = _step_image()
    out = pp.grayscale_filter(img)
    assert np.array_equal(out, img)
    assert out is not img


def test_grayscale_pure_white_and_black():
    img = np.zeros((4, 4, 3), dtype=np.uint8)
    img[:2] = 255
    out = pp.grayscale_filter(img)
    assert out.shape == (4, 4)
    assert (out[:2] == 255).all() and (out[2:] == 0).all()


def test_grayscale_threaded_close_to_plain():
    rng = np.random.default_rng(1)
    img = rng.integers(0, 256, (17, 9, 3), dtype=np.uint8)
    a = pp.grayscale_filter(img)
    b = pp.grayscale_filter_threaded(img, 3)
    assert np.abs(a.astype(int) - b.astype(int)).max() <= 1
    assert np.array_equal(pp.grayscale_filter(img, True).shape, (17, 9))


def test_threaded_rejects_zero_threads():
    with pytest.raises(ValueError):
        pp.grayscale_filter_threaded(np.zeros((3, 3, 3), np.uint8), 0)


def test_gaussian_blur_constant_and_bad_ksize():
    img = np.full((10, 10), 77, dtype=np.uint8)
    assert (pp.gaussian_blur(img, 5, 1.5) == 77).all()
    with pytest.raises(ValueError):
        pp.gaussian_blur(img, 4, 1.0)


def test_sobel_filters_flat_image_zero():
    img = np.full((12, 12), 90, dtype=np.uint8)
    assert not pp.sobel_filter(img).any()
    assert not pp.sobel_filter_threaded(img, 2).any()


def test_sobel_responds_on_step_only():
    img = _step_image()
    out = pp.sobel_filter(img, use_multithread=True)
    assert out[10, 14] > 0 and out[10, 15] > 0
    assert out[10, 5] == 0 and out[10, 25] == 0
    thr = pp.sobel_filter_threaded(img, 4)
    assert thr[10, 14] == 255
    assert (thr[0] == 0).all() and (thr[-1] == 0).all()


def test_canny_step_edge_is_thin_column():
    out = pp.canny_filter(_step_image())
    cols = set(np.nonzero(out)[1])
    assert cols and cols <= {14, 15}
    assert set(np.unique(out)) <= {0, 255}


def test_binarize_values():
    img = np.array([[0, 128, 129, 255]], dtype=np.uint8)
    assert pp.binarize(img).tolist() == [[0, 0, 255, 255]]


def test_adaptive_binarize_constant_and_errors():
    img = np.full((15, 15), 40, dtype=np.uint8)
    assert (pp.adaptive_binarize(img, 11, 2) == 255).all()
    with pytest.raises(ValueError):
        pp.adaptive_binarize(img, 10, 2)


def test_hough_lines_vertical_and_horizontal():
    img = np.zeros((50, 50), dtype=np.uint8)
    img[:, 10] = 255
    rho, theta = pp.hough_lines(img, 30)[0]
    assert rho == 10 and theta == 0
    img = np.zeros((50, 50), dtype=np.uint8)
    img[20, :] = 255
    rho, theta = pp.hough_lines(img, 30)[0]
    assert rho == 20 and theta == pytest.approx(math.pi / 2)


def test_hough_lines_empty():
    assert pp.hough_lines(np.zeros((20, 20), np.uint8), 5) == []


def test_hough_lines_p_horizontal_segment():
    img = np.zeros((40, 80), dtype=np.uint8)
    img[20, 5:75] = 255
    segs = pp.hough_lines_p(img, 20, 30, 2)
    assert segs
    x1, y1, x2, y2 = segs[0]
    assert y1 == 20 and y2 == 20
    assert abs(x2 - x1) >= 30


def test_draw_line_and_segments():
    img = np.zeros((20, 20, 3), dtype=np.uint8)
    pp.draw_line(img, (0, 5), (19, 5), (1, 2, 3), 1)
    assert img[5, 0].tolist() == [1, 2, 3] and img[5, 19].tolist() == [1, 2, 3]
    assert not img[10].any()
    img2 = np.zeros((20, 20, 3), dtype=np.uint8)
    pp.draw_line_segments(img2, [(2, 2, 2, 17)])
    assert img2[10, 2].tolist() == list(pp.RED)


def test_draw_lines_far_endpoints():
    img = np.zeros((20, 20), dtype=np.uint8)
    pp.draw_lines(img, [(7.0, 0.0)], (200, 0, 0))
    assert (img[:, 7] == 200).all()


def test_hough_transform_result():
    img = np.zeros((60, 60, 3), dtype=np.uint8)
    img[:, 30:] = 255
    res = pp.hough_transform(img, 30)
    assert res.lines
    assert any(t == 0 for _, t in res.lines)
    assert res.image.shape == img.shape and res.processing_time >= 0
    assert not np.array_equal(res.image, img)
    res2 = pp.hough_transform_no_binarization(img, 30)
    assert res2.lines


def test_probabilistic_hough_transform_result():
    img = np.zeros((80, 120, 3), dtype=np.uint8)
    img[40:, :] = 255
    res = pp.probabilistic_hough_transform(img, 20)
    assert res.line_segments
    assert res.lines == []
    for x1, y1, x2, y2 in res.line_segments:
        assert abs(x2 - x1) >= 50 or abs(y2 - y1) >= 50