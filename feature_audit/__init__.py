"""Audit a GitHub repository against feature tasks with a chunked LLM fold."""

__version__ = "0.1.0"
