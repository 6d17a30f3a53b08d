[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minibase"
version = "0.1.0"
description = "Core pieces of a small relational database: a file-backed B+ tree index, key encoding, WHERE-condition evaluation and a line-oriented SQL client."
requires-python = ">=3.10"
dependencies = []
keywords = ["database", "b+tree", "index", "sql", "storage-engine"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
minibase-client = "minibase.client:main"

[tool.hatch.build.targets.wheel]
packages = ["minibase"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
