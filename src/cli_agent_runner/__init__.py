"""Run AI command-line agents and recover clean results from their output."""

__version__ = "0.1.0"
