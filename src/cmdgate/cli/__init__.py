"""Command-line interface for cmdgate."""
