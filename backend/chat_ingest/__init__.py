"""Incremental chat message ingestion into canonical documents."""
