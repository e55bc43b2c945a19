[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sikit"
version = "0.1.0"
description = "Buffered stream readers and writers, DB-API row scanning into dataclasses, HMAC helpers and a thread worker pool."
requires-python = ">=3.10"
dependencies = []
keywords = ["io", "buffered", "sql", "dataclass", "row scanner", "worker pool", "hmac"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sikit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
