"""
Embedding Generator
Converts item text to vectors with OpenAI text-embedding-3-small (1536-dim).

Implements the embedder contract used by the similarity engine:
    embed(text) -> List[float]
    embed_many(texts) -> List[List[float]]
A failed call yields a zero vector, which the similarity engine treats as
"no vector" and falls back to lexical similarity.
"""

import logging
import os
from typing import List, Optional

from openai import OpenAI, OpenAIError
from tqdm import tqdm

from assembly import config

log = logging.getLogger(__name__)


class EmbeddingGenerator:
    """OpenAI embeddings, single or batched."""

    DEFAULT_MODEL = "text-embedding-3-small"
    EMBEDDING_DIM = 1536

    def __init__(self, model_name: Optional[str] = None, api_key: Optional[str] = None, client: Optional[OpenAI] = None):
        self.model_name = model_name or config.EMBEDDING_MODEL or self.DEFAULT_MODEL
        if client is not None:
            self.client = client
            return
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "OPENAI_API_KEY not set. Please set environment variable or pass api_key parameter."
            )
        self.client = OpenAI(api_key=api_key)
        log.info(f"Embedding model: {self.model_name} ({self.EMBEDDING_DIM}-dim)")

    def _zero(self) -> List[float]:
        return [0.0] * self.EMBEDDING_DIM

    def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            return self._zero()
        try:
            response = self.client.embeddings.create(input=text, model=self.model_name)
        except OpenAIError as e:
            log.warning(f"Embedding generation failed: {e}")
            return self._zero()
        return list(response.data[0].embedding)

    def embed_many(self, texts: List[str], batch_size: int = 100, show_progress: bool = False) -> List[List[float]]:
        """
        Embed many texts, batch_size per API call, order preserved.

        A failed batch contributes zero vectors for each of its texts.
        """
        if not texts:
            return []
        processed = [t if t and t.strip() else " " for t in texts]
        batches = [processed[i:i + batch_size] for i in range(0, len(processed), batch_size)]
        iterator = tqdm(batches, desc="Batches") if show_progress and len(batches) > 1 else batches

        vectors: List[List[float]] = []
        for batch in iterator:
            try:
                response = self.client.embeddings.create(input=batch, model=self.model_name)
            except OpenAIError as e:
                log.warning(f"Batch embedding failed: {e}")
                vectors.extend(self._zero() for _ in batch)
                continue
            vectors.extend(list(d.embedding) for d in response.data)
        return vectors


_embedding_generator: Optional[EmbeddingGenerator] = None


def get_embedding_generator() -> EmbeddingGenerator:
    """Lazy singleton; the OpenAI client is created on first call."""
    global _embedding_generator
    if _embedding_generator is None:
        _embedding_generator = EmbeddingGenerator()
    return _embedding_generator
