"""
Converter Module Entry Point

Allows execution via: python -m geobatch.apps.converter <command>

Delegates to the typer CLI for every command, including the worker.
"""

from geobatch.apps.converter.cli import app

if __name__ == "__main__":
    app()
