[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "romtools"
version = "0.1.0"
description = "Build helpers for Game Boy ROM projects: tile graphics cleanup, picture compression, include scanning and patch generation"
requires-python = ">=3.10"
dependencies = []
keywords = ["game boy", "rom", "2bpp", "tiles", "compression", "build tools"]
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
    "Topic :: Software Development :: Build Tools",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
romtools-gfx = "romtools.gfx:main"
romtools-scan-includes = "romtools.scan_includes:main"
romtools-pkmncompress = "romtools.pkmncompress:main"
romtools-make-patch = "romtools.make_patch:main"

[tool.hatch.build.targets.wheel]
packages = ["romtools"]

[tool.pytest.ini_options]
addopts = "-ra"
