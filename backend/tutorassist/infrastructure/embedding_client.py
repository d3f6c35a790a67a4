"""Embedding Client — OpenAI embeddings for question similarity search.

Invariants:
    - One API call per batch; output order matches input order
    - Failures surface as ExternalServiceError("openai", ...)
"""

import logging
from dataclasses import dataclass

from openai import AsyncOpenAI, OpenAIError

from tutorassist.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    total_tokens: int


class EmbeddingClient:
    def __init__(self, api_key: str, model: str = "text-embedding-3-small"):
        self.client = AsyncOpenAI(api_key=api_key)
        self.model = model

    async def embed(self, texts: list[str]) -> EmbeddingBatch:
        if not texts:
            return EmbeddingBatch([], self.model, 0)
        try:
            response = await self.client.embeddings.create(model=self.model, input=texts)
        except OpenAIError as e:
            logger.error(f"OpenAI embeddings request failed: {e}")
            raise ExternalServiceError("openai", f"Embedding request failed: {e}")

        ordered = sorted(response.data, key=lambda item: item.index)
        usage = getattr(response, "usage", None)
        return EmbeddingBatch(
            vectors=[list(item.embedding) for item in ordered],
            model=self.model,
            total_tokens=getattr(usage, "total_tokens", 0) or 0,
        )
