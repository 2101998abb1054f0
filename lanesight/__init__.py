"""Road line detection with edge filters and Hough transforms on NumPy images, with acquisition, thread pool, timing and benchmark tools."""

__version__ = "0.3.0"