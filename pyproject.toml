[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tlsfetch"
version = "0.1.0"
description = "A small asyncio HTTP/1.1 client with request queueing, keep-alive and transparent gzip/deflate decoding"
requires-python = ">=3.10"
dependencies = []
keywords = ["http", "https", "client", "asyncio", "keep-alive", "gzip", "deflate", "base64url"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Framework :: AsyncIO",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
tlsfetch = "tlsfetch.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["tlsfetch"]

[tool.hatch.build.targets.sdist]
include = ["tlsfetch", "tests", "README.md"]

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
