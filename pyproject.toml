[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "validation-api"
version = "0.1.1"
description = "Read-only HTTP, WebSocket and MCP API over image-validation, ephemeral-tenant and scan-job resources."
requires-python = ">=3.10"
keywords = ["validation", "compliance", "scanning", "mcp", "json-rpc", "rest", "websocket", "openapi"]
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
    "Framework :: AsyncIO",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Security",
]
dependencies = [
    "starlette",
    "uvicorn",
]

[project.optional-dependencies]
test = [
    "pytest",
    "httpx",
]

[project.scripts]
validation-api = "validation_api.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["validation_api"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
