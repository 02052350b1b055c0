"""Command-line interface for session-pilot."""
