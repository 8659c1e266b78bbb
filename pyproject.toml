[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mpscentral"
version = "0.1.0"
description = "Machine protection system central node core: firmware register access, heartbeat, history messages and timing utilities"
requires-python = ">=3.10"
dependencies = []
keywords = ["machine protection", "accelerator", "central node", "firmware", "heartbeat"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Physics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mpscentral"]

[tool.pytest.ini_options]
addopts = "-ra"
