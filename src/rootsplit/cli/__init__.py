"""
rootsplit CLI Module.

Provides command-line interface for rootsplit operations.
"""

from rootsplit.cli.main import cli, main

__all__ = ["main", "cli"]
