"""Shared helpers: logging, HTTP and filesystem utilities."""
