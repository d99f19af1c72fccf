[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vulnscan"
version = "0.1.0"
description = "Vulnerability and misconfiguration scanning core: local and remote scanners, RPC message conversion and cache handlers"
requires-python = ">=3.10"
dependencies = []
keywords = ["security", "vulnerability", "scanner", "misconfiguration", "containers"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vulnscan"]

[tool.pytest.ini_options]
addopts = "-ra"
