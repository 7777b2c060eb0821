[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "uwspubsub"
version = "0.1.0"
description = "Topic-tree publish/subscribe, corkable socket writes and HTTP/1.1 response framing"
requires-python = ">=3.10"
dependencies = []
keywords = ["pubsub", "topic", "wildcards", "http", "response", "cork", "backpressure"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["uwspubsub"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
