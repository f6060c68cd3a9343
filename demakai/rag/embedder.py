"""
Embedding service client.

Turns publication queries and chunks into vectors through an
Ollama-compatible ``/api/embeddings`` endpoint. Results are cached in
memory by content hash. KBLI/KBJI lookups never need embeddings, so the
code-lookup mode short-circuits without a network call.
"""

import asyncio
import hashlib
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .. import config, lexicon
from ..models.records import Mode

logger = logging.getLogger(__name__)

# The endpoint rejected the request itself; retrying cannot help.
NON_RETRYABLE_STATUS_CODES = {400, 404}


class EmbeddingError(Exception):
    """Raised when no embedding could be produced for a text."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code not in NON_RETRYABLE_STATUS_CODES
    return isinstance(error, (httpx.HTTPError, ValueError))


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, collapse whitespace and cap the length of ``text``."""
    if not text:
        return ""
    return " ".join(text.lower().split())[:lexicon.EMBEDDING_MAX_CHARS]


def cache_key(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


class EmbeddingService:
    """Client for the embedding endpoint with retry and a bounded cache.

    Args:
        base_url: Ollama-compatible server URL.
        model: Embedding model name.
        dimension: Vector size, used for the zero vector of empty input.
        max_retries: Attempts per text before giving up.
        retry_base_delay: First backoff delay in seconds; doubles per attempt.
        timeout: Per-request timeout in seconds.
        cache_max_size: Entries kept before FIFO eviction.
        cache_ttl: Entry lifetime in seconds.
        http_client: Optional shared httpx.AsyncClient.
        clock: Time source for cache expiry (overridable in tests).
    """

    def __init__(
        self,
        base_url: str = config.OLLAMA_BASE_URL,
        model: str = config.EMBEDDING_MODEL,
        dimension: int = config.EMBEDDING_DIMENSION,
        max_retries: int = config.EMBEDDING_MAX_RETRIES,
        retry_base_delay: float = config.EMBEDDING_RETRY_BASE_DELAY,
        timeout: float = config.EMBEDDING_TIMEOUT_SECONDS,
        cache_max_size: int = lexicon.CACHE_MAX_SIZE,
        cache_ttl: float = lexicon.CACHE_TTL_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        llm_model: str = config.LLM_MODEL,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.dimension = dimension
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.timeout = timeout
        self.cache_max_size = cache_max_size
        self.cache_ttl = cache_ttl
        self.llm_model = llm_model
        self._http_client = http_client
        self._clock = clock
        self._cache: "OrderedDict[str, Tuple[List[float], float]]" = OrderedDict()

    def zero_vector(self) -> List[float]:
        return [0.0] * self.dimension

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _get_cached(self, text: str) -> Optional[List[float]]:
        key = cache_key(text)
        cached = self._cache.get(key)
        if cached is None:
            return None
        embedding, stored_at = cached
        if self._clock() - stored_at > self.cache_ttl:
            del self._cache[key]
            return None
        return embedding

    def _store_cached(self, text: str, embedding: List[float]):
        key = cache_key(text)
        if key not in self._cache and len(self._cache) >= self.cache_max_size:
            self._cache.popitem(last=False)
        self._cache[key] = (embedding, self._clock())

    def cache_stats(self) -> Dict[str, Any]:
        size = len(self._cache)
        return {
            "size": size,
            "max_size": self.cache_max_size,
            "usage": f"{size / self.cache_max_size * 100:.1f}%",
        }

    def clear_cache(self):
        size = len(self._cache)
        self._cache.clear()
        logger.info(f"[EMBEDDER] Cleared {size} cached embeddings")

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    async def _post_embedding(self, text: str) -> List[float]:
        url = f"{self.base_url}/api/embeddings"
        payload = {"model": self.model, "prompt": text}
        if self._http_client is not None:
            response = await self._http_client.post(url, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
        response.raise_for_status()
        embedding = response.json().get("embedding")
        if not embedding:
            raise ValueError("Invalid response from embedding endpoint: no 'embedding' field")
        return embedding

    async def _generate_with_retry(self, text: str) -> List[float]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_base_delay, exp_base=2),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    embedding = await self._post_embedding(text)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in NON_RETRYABLE_STATUS_CODES:
                logger.error(f"[EMBEDDER] Embedding rejected with status {status}: {e}")
                raise EmbeddingError(f"Embedding rejected (status {status})", status_code=status) from e
            raise EmbeddingError(
                f"Embedding failed after {self.max_retries} attempts: {e}", status_code=status
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise EmbeddingError(f"Embedding failed after {self.max_retries} attempts: {e}") from e

        logger.info(f"[EMBEDDER] Embedding generated (dim: {len(embedding)})")
        return embedding

    async def embed(
        self, text: str, mode: Mode = Mode.PUBLICATION, use_cache: bool = True
    ) -> Optional[List[float]]:
        """Returns the embedding of ``text``.

        Returns None for code-lookup mode (lexical search only) and a zero
        vector when the text is empty after normalization.

        Raises:
            EmbeddingError: The endpoint rejected the text or retries ran out.
        """
        if mode is Mode.CODE_LOOKUP:
            logger.info("[EMBEDDER] Skipping embedding for KBLI/KBJI (text search only)")
            return None

        processed = normalize_text(text)
        if not processed:
            logger.warning("[EMBEDDER] Empty text after preprocessing, returning zero vector")
            return self.zero_vector()

        if use_cache:
            cached = self._get_cached(processed)
            if cached is not None:
                logger.info("[EMBEDDER] Cache hit for embedding")
                return cached

        embedding = await self._generate_with_retry(processed)

        if use_cache:
            self._store_cached(processed, embedding)
        return embedding

    async def embed_batch(
        self,
        texts: List[str],
        mode: Mode = Mode.PUBLICATION,
        batch_size: int = 5,
        delay_between_batches: float = 0.5,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[Optional[List[float]]]:
        """Embeds ``texts`` in small concurrent groups with a pause between groups.

        The pause keeps the embedding server within its rate limits. A text
        whose embedding fails yields None in the result list.
        """
        if mode is Mode.CODE_LOOKUP:
            logger.info("[EMBEDDER] Skipping batch embedding for KBLI/KBJI")
            return [None] * len(texts)

        results: List[Optional[List[float]]] = []
        total_batches = (len(texts) + batch_size - 1) // batch_size

        async def _embed_one(index: int, text: str) -> Optional[List[float]]:
            try:
                return await self.embed(text, mode=mode)
            except EmbeddingError as e:
                logger.error(f"[EMBEDDER] Text #{index + 1} failed: {e}")
                return None
            finally:
                if on_progress:
                    on_progress(index + 1, len(texts))

        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            logger.info(f"[EMBEDDER] Processing batch {start // batch_size + 1}/{total_batches}")
            results.extend(await asyncio.gather(
                *(_embed_one(start + i, text) for i, text in enumerate(batch))
            ))
            if start + batch_size < len(texts):
                await asyncio.sleep(delay_between_batches)

        return results

    async def health_check(self) -> Dict[str, Any]:
        """Reports whether the server is up and which configured models it has loaded."""
        url = f"{self.base_url}/api/tags"
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, timeout=5.0)
            else:
                async with httpx.AsyncClient(timeout=5.0) as client:
                    response = await client.get(url)
            response.raise_for_status()
            models = [m.get("name", "") for m in response.json().get("models", [])]
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[EMBEDDER] Health check failed: {e}")
            return {"status": "unhealthy", "available": False, "error": str(e)}

        return {
            "status": "healthy",
            "available": True,
            "embedding_model_loaded": any(self.model in name for name in models),
            "llm_model_loaded": any(self.llm_model in name for name in models),
            "models": models,
        }
