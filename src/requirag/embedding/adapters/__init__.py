"""Embedding provider adapters, imported lazily by :func:`create_embedding_provider`."""
