[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mrfparse"
version = "0.1.0"
description = "Download, decompress and search machine-readable price transparency files for billing codes, and export matches to CSV"
requires-python = ">=3.10"
keywords = ["price transparency", "machine-readable files", "billing codes", "json", "csv", "gzip"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Information Analysis",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
mrf-format = "mrfparse.jsonformat:main"
mrf-search = "mrfparse.search:main"
mrf-gunzip = "mrfparse.gunzip:main"
mrf-pipeline = "mrfparse.pipeline:main"
mrf-scrape = "mrfparse.scraper:main"

[tool.hatch.build.targets.wheel]
packages = ["mrfparse"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
