[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "metricscope"
version = "0.1.0"
description = "Span-aware metric labelling and a terminal observer for streamed metrics"
requires-python = ">=3.10"
dependencies = []
keywords = ["metrics", "tracing", "spans", "labels", "monitoring", "observer", "terminal"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
metrics-observer = "metricscope.app:main"

[tool.hatch.build.targets.wheel]
packages = ["metricscope"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
