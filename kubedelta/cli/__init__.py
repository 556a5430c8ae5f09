"""kubedelta command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubedelta`` script).
"""

from kubedelta.cli.main import cli

__all__ = ["cli"]
