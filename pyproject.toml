[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lanesight"
version = "0.3.0"
description = "Road line detection with Sobel edges and Hough transforms, plus timing and benchmarking helpers"
requires-python = ">=3.10"
keywords = [
    "lane detection",
    "hough transform",
    "sobel",
    "canny",
    "edge detection",
    "image processing",
    "benchmark",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
lanesight-classic = "lanesight.classic:main"
lanesight-benchmark = "lanesight.benchmark:main"

[tool.hatch.build.targets.wheel]
packages = ["lanesight"]

[tool.hatch.build.targets.sdist]
include = ["lanesight", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
