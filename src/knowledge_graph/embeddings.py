"""Summary embeddings attached to Movie nodes before they are merged."""

from __future__ import annotations

import hashlib
import math
from typing import Protocol

from src.common.logging import get_logger

logger = get_logger(__name__)

# Native vector length of each supported OpenAI model.
OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

# Models that accept a ``dimensions`` argument to shorten their output.
SHORTENABLE_MODELS = frozenset({"text-embedding-3-small", "text-embedding-3-large"})


def openai_dimension(model: str, requested: int | None = None) -> int:
    """Length of the vectors ``model`` returns when ``requested`` is asked for.

    Shortening is only honoured by the text-embedding-3 family and only below
    the native size; otherwise the native size is returned.
    """
    if model not in OPENAI_MODEL_DIMENSIONS:
        raise ValueError(f"Unknown OpenAI embedding model: {model}")
    native = OPENAI_MODEL_DIMENSIONS[model]
    if requested and model in SHORTENABLE_MODELS and requested < native:
        return requested
    return native


class EmbeddingProvider(Protocol):
    """Turns a movie summary into a fixed-length vector."""

    dimension: int

    async def embed_text(self, text: str) -> list[float]:
        ...


class StubEmbeddingProvider:
    """Offline, deterministic summary vectors for tests and dry runs.

    Component ``i`` is derived from a hash of ``i`` and the summary, and the
    vector is scaled to unit length so cosine scores stay meaningful.
    """

    def __init__(self, dimension: int = 384):
        if dimension < 1:
            raise ValueError("dimension must be at least 1")
        self.model = "stub"
        self.dimension = dimension
        logger.warning("using_stub_embeddings", dimension=dimension)

    async def embed_text(self, text: str) -> list[float]:
        values = []
        for i in range(self.dimension):
            digest = hashlib.blake2b(f"{i}:{text}".encode(), digest_size=2).digest()
            values.append(int.from_bytes(digest, "big") / 32767.5 - 1.0)
        norm = math.sqrt(sum(v * v for v in values)) or 1.0
        return [v / norm for v in values]


class OpenAIEmbeddingProvider:
    """Summary vectors from the OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int | None = None,
    ):
        if not api_key:
            raise ValueError("OPENAI_API_KEY not set")
        self.model = model
        self.dimension = openai_dimension(model, dimension)

        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise ImportError("openai package required: pip install openai")
        self.client = AsyncOpenAI(api_key=api_key)

    async def embed_text(self, text: str) -> list[float]:
        options = {}
        if self.dimension != OPENAI_MODEL_DIMENSIONS[self.model]:
            options["dimensions"] = self.dimension
        response = await self.client.embeddings.create(
            model=self.model,
            input=text,
            **options,
        )
        return response.data[0].embedding


def get_embedding_provider(
    provider: str = "stub",
    model: str | None = None,
    dimension: int = 384,
    api_key: str = "",
) -> EmbeddingProvider | None:
    """
    Build the summary embedder named by ``provider``.

    Args:
        provider: "none", "stub" or "openai"
        model: OpenAI model name
        dimension: Vector length (shortens text-embedding-3 output)
        api_key: OpenAI API key

    Returns:
        A provider, or None when embeddings are off
    """
    if provider == "none":
        return None
    if provider == "stub":
        return StubEmbeddingProvider(dimension=dimension)
    if provider == "openai":
        return OpenAIEmbeddingProvider(
            api_key=api_key,
            model=model or "text-embedding-3-small",
            dimension=dimension,
        )
    raise ValueError(f"Unknown embedding provider: {provider}")
