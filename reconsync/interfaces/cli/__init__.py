"""Command-line interface for reconsync."""

from .__main__ import cli

__all__ = ["cli"]
