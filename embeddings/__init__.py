"""
Embeddings package
Text-to-vector conversion for near-duplicate detection (OpenAI)
"""

from .generator import (
    EmbeddingGenerator,
    get_embedding_generator,
)

__all__ = [
    "EmbeddingGenerator",
    "get_embedding_generator",
]
