# src/rag/vector_store/vector_store_factory.py — v2
"""Factory: instantiate vector store from configuration."""

from __future__ import annotations

import logging

from peoplefinder.config.settings import ConfigurationError, Settings
from peoplefinder.rag.vector_store.base_vector_store import BaseVectorStore

logger = logging.getLogger(__name__)


class UnsupportedVectorStoreError(ValueError):
    """Raised when a vector store type is not supported."""


def create_vector_store(settings: Settings) -> BaseVectorStore:
    """Instantiate the configured vector store.

    Args:
        settings: Application settings (VECTOR_DB_TYPE).

    Returns:
        Configured BaseVectorStore instance.

    Raises:
        ConfigurationError: If pinecone credentials are missing.
        UnsupportedVectorStoreError: If type is not supported.
    """
    db_type = settings.vector_db_type

    if db_type == "pinecone":
        from peoplefinder.rag.vector_store.pinecone_store import PineconeStore
        if not settings.pinecone_api_key or not settings.pinecone_index_host:
            raise ConfigurationError(
                "PINECONE_API_KEY and PINECONE_INDEX_HOST must be set when VECTOR_DB_TYPE=pinecone"
            )
        return PineconeStore(
            api_key=settings.pinecone_api_key,
            index_host=settings.pinecone_index_host,
            timeout_s=settings.http_timeout_s,
        )

    if db_type == "chromadb":
        from peoplefinder.rag.vector_store.chromadb_store import ChromaDBStore
        return ChromaDBStore(persist_path=settings.vector_db_path)

    raise UnsupportedVectorStoreError(
        f"Unsupported vector store type: {db_type!r}. "
        f"Available: pinecone, chromadb"
    )
