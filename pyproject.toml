[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minis3"
version = "0.1.0"
description = "A tiny in-memory S3-compatible server for use in tests"
requires-python = ">=3.10"
dependencies = []
keywords = ["s3", "mock", "testing", "fake", "object-storage", "wsgi"]
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
    "Topic :: Software Development :: Testing :: Mocking",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["minis3"]

[tool.hatch.build.targets.sdist]
include = ["minis3", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
