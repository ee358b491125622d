[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wallepak"
version = "1.0.0"
description = "Extract, rebuild and validate WALL-E DPC archive files"
requires-python = ">=3.10"
dependencies = []
keywords = ["dpc", "archive", "asobo", "wall-e", "game-data"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Packaging",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
wallepak = "wallepak.backend:main"

[tool.hatch.build.targets.wheel]
packages = ["wallepak"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
