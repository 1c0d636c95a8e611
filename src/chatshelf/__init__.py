"""chatshelf — multi-conversation chat state kept on your own disk."""

__version__ = "0.1.0"
