"""Core utilities: configuration, logging, errors and validation helpers."""
