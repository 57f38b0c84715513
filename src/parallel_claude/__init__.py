"""Run several coding agents side by side, one clone, branch, port and terminal tab each."""

__version__ = "1.0.0"
