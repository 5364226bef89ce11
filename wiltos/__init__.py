"""Storage, console and shell layers of a small hobby operating system, simulated in memory."""

__version__ = "0.1.0"