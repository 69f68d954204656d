[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xvutils"
version = "0.1.0"
description = "Small teaching-OS user programs, a file-system image builder and a page-table model"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "operating-system",
    "shell",
    "grep",
    "mkfs",
    "page-table",
    "malloc",
    "virtio",
    "teaching",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System",
    "Topic :: Education",
    "Topic :: System :: Filesystems",
    "Topic :: Utilities",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
xv-grep = "xvutils.grep:main"
xv-wc = "xvutils.wc:main"
xv-cat = "xvutils.coreutils:cat_main"
xv-echo = "xvutils.coreutils:echo_main"
xv-ls = "xvutils.coreutils:ls_main"
xv-ln = "xvutils.coreutils:ln_main"
xv-mkdir = "xvutils.coreutils:mkdir_main"
xv-rm = "xvutils.coreutils:rm_main"
xv-kill = "xvutils.coreutils:kill_main"
xv-sh = "xvutils.sh:main"
xv-mkfs = "xvutils.mkfs:main"

[tool.hatch.build.targets.wheel]
packages = ["xvutils"]

[tool.hatch.build.targets.sdist]
include = ["xvutils", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
