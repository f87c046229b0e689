from typing import Protocol, runtime_checkable

import openai
from loguru import logger


@runtime_checkable
class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]:
        """Return a fixed-dimension vector for ``text``."""
        ...


class OpenAIEmbedder:
    def __init__(self, api_key: str, model: str = "text-embedding-ada-002"):
        self._client = openai.AsyncOpenAI(api_key=api_key)
        self._model = model

    async def embed(self, text: str) -> list[float]:
        logger.debug(f"Embedding request: model={self._model}, chars={len(text)}")
        response = await self._client.embeddings.create(model=self._model, input=text)
        vector = list(response.data[0].embedding)
        logger.debug(f"Embedding response: dimensions={len(vector)}")
        return vector
