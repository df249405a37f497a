[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "subpay"
version = "1.0.0"
description = "gRPC payment service that manages subscriptions through the Stripe API"
requires-python = ">=3.10"
keywords = ["payments", "subscriptions", "stripe", "grpc", "jwt"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business :: Financial",
    "Topic :: Internet",
]
dependencies = [
    "grpcio",
    "pyjwt",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
subpay = "subpay.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["subpay"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
