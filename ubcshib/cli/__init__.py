"""Command-line interface for ubcshib."""
