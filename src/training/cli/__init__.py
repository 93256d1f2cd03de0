"""Command-line interface for the training system."""
