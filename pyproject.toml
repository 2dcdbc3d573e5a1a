[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "entropy"
version = "0.1.0"
description = "Building blocks for orchestrating Kubernetes workloads: coded errors, validation, cluster and Helm release settings, Kafka consumer resets, a retrying job worker and Firehose release construction."
requires-python = ">=3.10"
keywords = [
    "orchestration",
    "kubernetes",
    "helm",
    "kafka",
    "firehose",
    "job-queue",
    "worker",
]
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
    "Topic :: System :: Systems Administration",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "jsonschema",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["entropy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
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
