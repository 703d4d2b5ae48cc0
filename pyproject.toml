[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "epaxos"
version = "0.1.0"
description = "A small Egalitarian Paxos replica with an in-memory key-value store"
requires-python = ">=3.10"
dependencies = []
keywords = ["epaxos", "paxos", "consensus", "replication", "key-value store", "distributed systems"]
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
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
epaxos = "epaxos.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["epaxos"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
