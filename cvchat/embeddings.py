"""OpenAI embeddings service for the vector retrieval path."""

from dataclasses import replace

import numpy as np
from openai import OpenAI

from .cache import BoundedCache, make_key
from .config import config
from .knowledge import KnowledgeBase

logger = config.get_logger(__name__)


class EmbeddingService:
    """Handles OpenAI embeddings generation with a bounded in-memory cache."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        cache_size: int | None = None,
    ) -> None:
        """Initialize the EmbeddingService with OpenAI API key and model.

        Args:
            api_key: OpenAI API key. If None,
                reads from OPENAI_API_KEY environment variable.
            model: Embedding model name. If None, uses config.EMBEDDING_MODEL.
            cache_size: Number of query embeddings kept. If None, uses
                config.EMBEDDING_CACHE_SIZE.
        """
        api_key = api_key or config.get_openai_api_key()
        default_headers = config.get_api_headers()
        self.client = OpenAI(
            api_key=api_key,
            base_url=config.OPENAI_BASE_URL,
            default_headers=default_headers or None,
        )
        self.model = model or config.EMBEDDING_MODEL
        self.cache = BoundedCache(cache_size or config.EMBEDDING_CACHE_SIZE)

    def get_embedding(self, text: str) -> np.ndarray:
        """Get embedding for a single text.

        Args:
            text: The input text to generate an embedding for.

        Returns:
            np.ndarray: The embedding vector for the input text.
        """
        key = make_key(self.model, text)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            response = self.client.embeddings.create(
                model=self.model,
                input=text,
            )
            embedding = np.array(response.data[0].embedding, dtype=np.float32)
        except Exception:
            logger.exception("Error generating embedding")
            raise
        else:
            self.cache.set(key, embedding)
            return embedding

    def get_embeddings_batch(
        self,
        texts: list[str],
        batch_size: int = 100,
    ) -> list[np.ndarray]:
        """Get embeddings for multiple texts in batches.

        Args:
            texts: List of input texts to generate embeddings for.
            batch_size: Number of texts to process in each batch.

        Returns:
            list[np.ndarray]: List of embedding vectors for the input texts.
        """
        embeddings = []

        for i in range(0, len(texts), batch_size):
            batch_texts = texts[i : i + batch_size]
            try:
                response = self.client.embeddings.create(
                    model=self.model,
                    input=batch_texts,
                )
                embeddings.extend(
                    np.array(data.embedding, dtype=np.float32)
                    for data in response.data
                )
                logger.info("Generated embeddings for batch %d", i // batch_size + 1)
            except Exception:
                logger.exception("Error generating batch embeddings")
                raise

        return embeddings

    def embed_knowledge_base(self, knowledge_base: KnowledgeBase) -> KnowledgeBase:
        """Fill in vectors for entries that have none.

        Returns:
            KnowledgeBase: A new knowledge base; entries with vectors are kept.
        """
        missing = [entry for entry in knowledge_base if entry.vector is None]
        if not missing:
            return knowledge_base

        vectors = self.get_embeddings_batch([entry.search_text for entry in missing])
        replacements = {
            entry.id: replace(entry, vector=vector)
            for entry, vector in zip(missing, vectors, strict=True)
        }
        logger.info("Embedded %d knowledge entries", len(replacements))
        return KnowledgeBase([
            replacements.get(entry.id, entry) for entry in knowledge_base
        ])
