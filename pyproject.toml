[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vulnfeed"
version = "0.1.0"
description = "Load distribution security feeds (Rocky Linux, SUSE CVRF, Ubuntu, Wolfi) into an in-memory vulnerability advisory store"
requires-python = ">=3.10"
dependencies = []
keywords = ["vulnerability", "security", "advisory", "cve", "rocky", "suse", "ubuntu", "wolfi"]
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
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vulnfeed"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
