"""Command-line interface for cyan."""
