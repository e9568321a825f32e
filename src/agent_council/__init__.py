"""Parallel council of external reasoning CLIs, driven through a job directory."""

__version__ = "0.1.0"
