"""Command line interface for dslkit."""
