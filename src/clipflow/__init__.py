"""Clipflow: multi-stage video clip pipeline with a durable upload scheduler."""

__version__ = "0.1.0"
