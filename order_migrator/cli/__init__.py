"""Command line entry point (python -m order_migrator.cli)."""
