"""Command-line front end for chatbox."""

from .app import app, main

__all__ = ["app", "main"]
