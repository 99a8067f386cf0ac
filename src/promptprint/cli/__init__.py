"""Command-line interface for promptprint."""
