[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wiltos"
version = "0.1.0"
description = "Storage, console and shell layers of a small hobby operating system, simulated in memory: FAT32, a tar-backed VFS, ELF checking and a command shell"
requires-python = ">=3.10"
dependencies = []
keywords = ["fat32", "filesystem", "tar", "vfs", "elf", "shell", "hobby-os"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: System :: Operating System",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
wiltos = "wiltos.shell:main"

[tool.hatch.build.targets.wheel]
packages = ["wiltos"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
