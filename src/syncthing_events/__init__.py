"""Run shell commands when Syncthing reports matching file events."""

__version__ = "0.1.0"
