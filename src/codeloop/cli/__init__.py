"""Command line interface for codeloop."""
