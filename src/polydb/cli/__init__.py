"""
CLI layer for polydb.

Provides a Typer application whose commands delegate to the adapters in
``polydb.core.adapters``.  This package handles only terminal
transport: option parsing, coloured output and table formatting.

Entry point::

    polydb --help
"""

from polydb.cli.app import app

__all__ = ["app"]
