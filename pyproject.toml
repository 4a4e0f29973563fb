[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fatbin"
version = "0.1.0"
description = "Read, write and edit Mach-O universal (fat) binaries and ar archives"
requires-python = ">=3.10"
dependencies = []
keywords = ["mach-o", "fat binary", "universal binary", "macos", "ar", "static archive"]
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
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fatbin"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
