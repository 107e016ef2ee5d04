"""Text embedding providers and cosine similarity.

The similarity index only needs ``embed(text) -> vector | None``; ``None``
means "unavailable", and callers fail open on it.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import List, Optional, Sequence

import numpy as np
import openai
import requests

logger = logging.getLogger(__name__)

Vector = List[float]

VOYAGE_EMBEDDINGS_URL = "https://api.voyageai.com/v1/embeddings"


class EmbeddingUnavailable(Exception):
    """Raised when a provider cannot be initialized (missing key, client error)."""
    pass


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity; 0.0 for missing, mismatched or zero-length vectors."""
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0
    a_vec = np.asarray(a, dtype=np.float32)
    b_vec = np.asarray(b, dtype=np.float32)
    denom = float(np.linalg.norm(a_vec) * np.linalg.norm(b_vec))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a_vec, b_vec) / denom)


class EmbeddingProvider:
    """Base provider with a bounded text -> vector cache."""

    name: str = "base"

    def __init__(self, cache_size: int = 1000):
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, Vector]" = OrderedDict()
        self.is_initialized = False

    def initialize(self) -> None:
        self.is_initialized = True

    def _embed_many(self, texts: List[str]) -> List[Vector]:
        raise NotImplementedError

    def _remember(self, text: str, vector: Vector) -> None:
        self._cache[text] = vector
        self._cache.move_to_end(text)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    def embed(self, text: str) -> Optional[Vector]:
        if not text:
            return None
        if text in self._cache:
            return self._cache[text]
        if not self.is_initialized:
            try:
                self.initialize()
            except EmbeddingUnavailable as e:
                logger.warning(f"{self.name} embeddings unavailable: {e}")
                return None
        try:
            vector = self._embed_many([text])[0]
        except Exception as e:
            logger.error(f"Error getting {self.name} embedding for text: \"{text[:50]}...\": {e}")
            return None
        self._remember(text, vector)
        return vector

    def embed_batch(self, texts: Sequence[str]) -> List[Optional[Vector]]:
        results: List[Optional[Vector]] = [self._cache.get(t) for t in texts]
        missing = [i for i, vec in enumerate(results) if vec is None and texts[i]]
        if not missing:
            return results
        if not self.is_initialized:
            try:
                self.initialize()
            except EmbeddingUnavailable as e:
                logger.warning(f"{self.name} embeddings unavailable: {e}")
                return results
        try:
            vectors = self._embed_many([texts[i] for i in missing])
        except Exception as e:
            logger.error(f"Error getting {self.name} embeddings for {len(missing)} texts: {e}")
            return results
        for i, vector in zip(missing, vectors):
            results[i] = vector
            self._remember(texts[i], vector)
        return results

    @property
    def cache_len(self) -> int:
        return len(self._cache)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "openai"

    def __init__(self, api_key: str, model: str = "text-embedding-3-small", cache_size: int = 1000):
        super().__init__(cache_size=cache_size)
        self.api_key = api_key
        self.model = model or "text-embedding-3-small"
        self._client = None

    def initialize(self) -> None:
        if not self.api_key:
            raise EmbeddingUnavailable("OPENAI_API_KEY is not set")
        try:
            self._client = openai.OpenAI(api_key=self.api_key)
        except Exception as e:
            raise EmbeddingUnavailable(f"OpenAI client init failed: {e}") from e
        self.is_initialized = True
        logger.info(f"OpenAI embeddings initialized ({self.model})")

    def _embed_many(self, texts: List[str]) -> List[Vector]:
        response = self._client.embeddings.create(model=self.model, input=[t[:8000] for t in texts])
        data = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in data]


class VoyageEmbeddingProvider(EmbeddingProvider):
    name = "voyage"

    def __init__(self, api_key: str, model: str = "voyage-3.5-lite", timeout: float = 15.0, cache_size: int = 1000, session: Optional[requests.Session] = None):
        super().__init__(cache_size=cache_size)
        self.api_key = api_key
        self.model = model or "voyage-3.5-lite"
        self.timeout = timeout
        self.session = session or requests.Session()

    def initialize(self) -> None:
        if not self.api_key:
            raise EmbeddingUnavailable("VOYAGE_API_KEY is not set")
        self.is_initialized = True
        logger.info(f"Voyage embeddings initialized ({self.model})")

    def _embed_many(self, texts: List[str]) -> List[Vector]:
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json'
        }
        payload = {
            'input': texts,
            'model': self.model,
            'input_type': 'document',
            'truncation': True
        }
        response = self.session.post(VOYAGE_EMBEDDINGS_URL, headers=headers, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = sorted(response.json().get('data') or [], key=lambda d: d.get('index', 0))
        if len(data) != len(texts):
            raise ValueError(f"Voyage returned {len(data)} embeddings for {len(texts)} texts")
        return [list(d['embedding']) for d in data]


def create_embedding_provider(config) -> Optional[EmbeddingProvider]:
    """Voyage when its key is set, else OpenAI, else no provider."""
    if not config.vector_embedding:
        return None
    if config.voyage_api_key:
        return VoyageEmbeddingProvider(config.voyage_api_key, model=config.embedding_model)
    if config.openai_api_key:
        return OpenAIEmbeddingProvider(config.openai_api_key, model=config.embedding_model)
    logger.warning("Vector embedding enabled but no VOYAGE_API_KEY/OPENAI_API_KEY set; similarity checks disabled")
    return None
