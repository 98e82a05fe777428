[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "deeprisk"
version = "0.1.0"
description = "Neural building blocks, int8 quantization, memory utilities and portfolio backtesting on NumPy"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "risk model",
    "portfolio",
    "backtesting",
    "stress testing",
    "graph attention",
    "gru",
    "quantization",
    "sparse tensor",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Financial and Insurance Industry",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Office/Business :: Financial :: Investment",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["deeprisk"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
