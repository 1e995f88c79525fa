"""TalkArchive: YouTube transcript ingestion and hybrid search."""

__version__ = "0.1.0"
