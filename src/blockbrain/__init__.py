"""blockbrain: block-addressable Markdown notes with a SQLite index."""

__version__ = "0.1.0"
