[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nutelladb"
version = "0.1.0"
description = "Paged B-tree key-value storage on JSON files, with an LRU cache and a content-addressed object store with delta compression"
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "b-tree", "key-value", "cache", "lru", "delta", "object-store", "snapshots"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: Software Development :: Version Control",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nutelladb"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
