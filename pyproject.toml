[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "emberkv"
version = "0.1.0"
description = "A small in-memory key-value server with strings, hashes and lists, append-only persistence and an interactive client"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "database", "server", "in-memory", "skiplist", "persistence"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
emberkv-server = "emberkv.server:main"
emberkv-cli = "emberkv.client:main"

[tool.hatch.build.targets.wheel]
packages = ["emberkv"]

[tool.hatch.build.targets.sdist]
include = ["emberkv", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
