"""
Chat completion client with provider routing.

The provider is chosen from LLM_BASE_URL:

- generativelanguage.googleapis.com: Gemini REST API through httpx, rotating
  across the configured API keys when a key is out of quota (402/403/429).
- openai.com / groq: OpenAI SDK (Groq exposes an OpenAI-compatible API).
- anything else: a local Ollama server (/api/chat), warmed up before each
  call and retried on timeouts, connection errors and HTTP 500.
"""

import logging
from typing import Dict, List, Optional

import httpx
from openai import AsyncOpenAI, OpenAIError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from . import config, lexicon

logger = logging.getLogger(__name__)

GEMINI_ROTATE_STATUS_CODES = {402, 403, 429}
OLLAMA_MAX_RETRIES = 2
OLLAMA_RETRY_DELAY_SECONDS = 1.5
WARMUP_TIMEOUT_SECONDS = 15.0


class LLMError(Exception):
    """Raised when the configured provider produced no usable completion."""


def detect_provider(base_url: str) -> str:
    if "generativelanguage.googleapis.com" in base_url:
        return "gemini"
    if "openai.com" in base_url:
        return "openai"
    if "groq" in base_url:
        return "groq"
    return "ollama"


def _is_ollama_busy(error: BaseException) -> bool:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == 500
    return isinstance(error, (httpx.TimeoutException, httpx.NetworkError))


def _openai_base_url(base_url: str) -> str:
    # The SDK appends /chat/completions itself.
    suffix = "/chat/completions"
    return base_url[: -len(suffix)] if base_url.endswith(suffix) else base_url


class LLMClient:
    """Sends a system prompt, recent history and a user prompt to the LLM."""

    def __init__(
        self,
        base_url: str = config.LLM_BASE_URL,
        model: str = config.LLM_MODEL,
        timeout: float = config.LLM_TIMEOUT_SECONDS,
        gemini_api_keys: Optional[List[str]] = None,
        openai_api_key: Optional[str] = config.OPENAI_API_KEY,
        groq_api_key: Optional[str] = config.GROQ_API_KEY,
        http_client: Optional[httpx.AsyncClient] = None,
        openai_client: Optional[AsyncOpenAI] = None,
        context_window: int = lexicon.CONTEXT_WINDOW,
    ):
        self.base_url = base_url.rstrip("/") if detect_provider(base_url) == "ollama" else base_url
        self.model = model
        self.timeout = timeout
        self.gemini_api_keys = list(config.GEMINI_API_KEYS if gemini_api_keys is None else gemini_api_keys)
        self.openai_api_key = openai_api_key
        self.groq_api_key = groq_api_key
        self.context_window = context_window
        self.provider = detect_provider(base_url)
        self._http_client = http_client
        self._openai_client = openai_client

    def build_messages(
        self, system_prompt: str, user_prompt: str, history: Optional[List[Dict[str, str]]] = None
    ) -> List[Dict[str, str]]:
        recent = (history or [])[-self.context_window:] if self.context_window > 0 else []
        return (
            [{"role": "system", "content": str(system_prompt or "")}]
            + [{"role": str(m.get("role", "user")), "content": str(m.get("content", ""))} for m in recent]
            + [{"role": "user", "content": str(user_prompt or "")}]
        )

    async def complete(
        self, system_prompt: str, user_prompt: str, history: Optional[List[Dict[str, str]]] = None
    ) -> str:
        """Returns the completion text.

        Raises:
            LLMError: The provider failed or returned an empty completion.
        """
        messages = self.build_messages(system_prompt, user_prompt, history)
        logger.info(f"[LLM] Provider: {self.provider} (model {self.model})")

        if self.provider == "gemini":
            text = await self._complete_gemini(messages)
        elif self.provider in ("openai", "groq"):
            text = await self._complete_openai(messages)
        else:
            text = await self._complete_ollama(messages)

        if not isinstance(text, str) or not text.strip():
            raise LLMError(f"Empty response from {self.provider}")
        return text.strip()

    async def _post(self, url: str, payload: dict, timeout: float) -> httpx.Response:
        if self._http_client is not None:
            response = await self._http_client.post(url, json=payload, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(url, json=payload)
        response.raise_for_status()
        return response

    # ------------------------------------------------------------------
    # Gemini
    # ------------------------------------------------------------------

    async def _complete_gemini(self, messages: List[Dict[str, str]]) -> str:
        if not self.gemini_api_keys:
            raise LLMError("No Gemini API key configured")

        payload = {"contents": [{"role": "user", "parts": [{"text": m["content"]} for m in messages]}]}
        last_error: Optional[Exception] = None

        for i, key in enumerate(self.gemini_api_keys, 1):
            logger.info(f"[LLM] Trying Gemini key {i}/{len(self.gemini_api_keys)}")
            try:
                response = await self._post(
                    f"{self.base_url}{self.model}:generateContent?key={key}", payload, self.timeout
                )
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                if status not in GEMINI_ROTATE_STATUS_CODES:
                    raise LLMError(f"Gemini request failed with status {status}") from e
                logger.warning(f"[LLM] Gemini key #{i} exhausted (status {status}), trying next key")
                last_error = e
                continue
            except httpx.HTTPError as e:
                raise LLMError(f"Gemini request failed: {e}") from e

            try:
                data = response.json()
            except ValueError as e:
                raise LLMError(f"Gemini returned a non-JSON body: {e}") from e
            try:
                return data["candidates"][0]["content"]["parts"][0]["text"]
            except (KeyError, IndexError, TypeError):
                logger.warning("[LLM] Empty response from Gemini")
                return ""

        raise LLMError(f"All Gemini API keys failed: {last_error}")

    # ------------------------------------------------------------------
    # OpenAI / Groq
    # ------------------------------------------------------------------

    def _get_openai_client(self) -> AsyncOpenAI:
        if self._openai_client is None:
            api_key = self.openai_api_key if self.provider == "openai" else self.groq_api_key
            self._openai_client = AsyncOpenAI(
                api_key=api_key, base_url=_openai_base_url(self.base_url), timeout=self.timeout
            )
        return self._openai_client

    async def _complete_openai(self, messages: List[Dict[str, str]]) -> str:
        try:
            response = await self._get_openai_client().chat.completions.create(
                model=self.model,
                messages=messages,
            )
        except OpenAIError as e:
            raise LLMError(f"{self.provider} request failed: {e}") from e
        try:
            if not response.choices:
                return ""
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError, TypeError) as e:
            raise LLMError(f"Malformed {self.provider} response: {e}") from e

    # ------------------------------------------------------------------
    # Ollama
    # ------------------------------------------------------------------

    async def _warmup(self):
        payload = {"model": self.model, "prompt": "ok", "stream": False, "options": {"num_predict": 1}}
        try:
            await self._post(f"{self.base_url}/api/generate", payload, WARMUP_TIMEOUT_SECONDS)
        except httpx.HTTPError as e:
            logger.debug(f"[LLM] Warm-up failed (ignored): {e}")

    async def _complete_ollama(self, messages: List[Dict[str, str]]) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": lexicon.LLM_TEMPERATURE,
                "top_p": lexicon.LLM_TOP_P,
                "num_predict": lexicon.LLM_MAX_TOKENS,
            },
        }
        await self._warmup()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(OLLAMA_MAX_RETRIES + 1),
            wait=wait_fixed(OLLAMA_RETRY_DELAY_SECONDS),
            retry=retry_if_exception(_is_ollama_busy),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._post(f"{self.base_url}/api/chat", payload, self.timeout)
        except httpx.TimeoutException as e:
            raise LLMError(f"Ollama timeout: {e}") from e
        except httpx.ConnectError as e:
            raise LLMError(f"Ollama connection refused: {e}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"Ollama request failed: {e}") from e

        try:
            return (response.json().get("message") or {}).get("content", "")
        except (ValueError, AttributeError) as e:
            raise LLMError(f"Malformed Ollama response: {e}") from e
