[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ohmsecon"
version = "0.1.0"
description = "In-memory economics ledger for compute jobs: cost estimates, escrow, settlement, balances, subscriptions and payments"
requires-python = ">=3.10"
dependencies = []
keywords = ["escrow", "settlement", "billing", "subscriptions", "quotas", "payments"]
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
    "Topic :: Office/Business :: Financial",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ohmsecon"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
