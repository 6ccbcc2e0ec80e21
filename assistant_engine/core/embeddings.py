"""OpenAI embeddings generation with validation."""

import asyncio

from openai import OpenAI

from assistant_engine.core.config import get_settings
from assistant_engine.core.logging import get_logger

logger = get_logger(__name__)


def _get_client() -> OpenAI:
    """Get OpenAI client instance."""
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def embed_texts(
    texts: list[str],
    client: OpenAI | None = None,
    model: str | None = None,
    dimension: int | None = None,
) -> list[list[float]]:
    """
    Generate embeddings for a list of texts using OpenAI.

    Args:
        texts: List of text strings to embed
        client: OpenAI client (defaults to one built from settings)
        model: Embedding model override
        dimension: Expected vector dimension override

    Returns:
        List of embedding vectors (each vector is list of floats)

    Raises:
        ValueError: If embedding dimension doesn't match the expected dimension
        Exception: If OpenAI API call fails
    """
    if not texts:
        return []

    settings = get_settings()
    client = client or _get_client()
    model = model or settings.EMBEDDING_MODEL
    dimension = dimension or settings.EMBEDDING_DIM

    try:
        response = client.embeddings.create(
            model=model,
            input=texts,
            encoding_format="float",
        )

        embeddings = []
        for i, embedding_obj in enumerate(response.data):
            embedding = embedding_obj.embedding

            if len(embedding) != dimension:
                raise ValueError(
                    f"Embedding dimension mismatch for text {i}: "
                    f"expected {dimension}, got {len(embedding)}"
                )

            embeddings.append(embedding)

        logger.info(
            f"Generated {len(embeddings)} embeddings using {model}",
            extra={"extra_data": {"model": model, "count": len(embeddings)}},
        )

        return embeddings

    except Exception as e:
        logger.error(f"Failed to generate embeddings: {e}")
        raise


class OpenAIEmbedder:
    """Embedding collaborator: ``embed(text) -> vector | None``.

    Failures are reported as None so retrieval can degrade instead of raising.
    """

    def __init__(self, api_key: str, model: str | None = None, dimension: int | None = None):
        self._client = OpenAI(api_key=api_key)
        self.model = model
        self.dimension = dimension

    async def embed(self, text: str) -> list[float] | None:
        try:
            vectors = await asyncio.to_thread(
                embed_texts, [text], self._client, self.model, self.dimension
            )
        except Exception as e:
            logger.warning(f"Query embedding failed: {e}")
            return None
        return vectors[0] if vectors else None
