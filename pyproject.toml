[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bililive"
version = "0.1.0"
description = "Watch live stream rooms and record them to disk while they are live."
requires-python = ">=3.10"
keywords = ["live", "stream", "recorder", "bilibili", "flv", "ffmpeg"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Video :: Capture",
]
dependencies = [
    "pyyaml",
    "requests",
    "jinja2",
    "cachetools",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
bililive = "bililive.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["bililive"]

[tool.pytest.ini_options]
addopts = "-ra"
