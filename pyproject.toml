[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kafkalite"
version = "0.1.0"
description = "A small Kafka client: wire-protocol encoding, broker connections, cluster metadata and a mock broker for tests"
requires-python = ">=3.10"
dependencies = []
keywords = ["kafka", "client", "protocol", "messaging", "broker", "metadata"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kafkalite"]

[tool.pytest.ini_options]
addopts = "-ra"
