[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "advdecoder"
version = "0.1.0"
description = "Decode Bluetooth Low Energy advertisement data into readable device properties"
requires-python = ">=3.10"
dependencies = []
keywords = ["ble", "bluetooth", "advertisement", "decoder", "sensor", "iot"]
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
    "Topic :: Home Automation",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["advdecoder"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
