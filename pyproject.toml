[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "promexpo"
version = "0.1.0"
description = "Writing metrics in the Prometheus text and OpenMetrics formats, and encoding and decoding delimited protobuf metric families."
requires-python = ">=3.10"
dependencies = []
keywords = ["prometheus", "metrics", "openmetrics", "exposition", "monitoring", "protobuf"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
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

[tool.hatch.build.targets.wheel]
packages = ["promexpo"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
