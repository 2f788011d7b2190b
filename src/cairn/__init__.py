"""cairn: durable-first, content-addressed ingestion and indexing pipeline."""

__version__ = "0.1.0"
