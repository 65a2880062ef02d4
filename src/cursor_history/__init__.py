"""Browse Cursor chat history grouped by workspace."""

__version__ = "0.1.0"
