# infrastructure/providers/text_generation.py
"""
Text generation backends.

Every backend implements TextGenerator.generate() and reports the token usage
of the call. Failures are raised as typed ProviderErrors so the agent executor
can decide whether the retry policy applies.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from domain.models.errors import ProviderError, ProviderQuotaError, ProviderTimeoutError
from infrastructure.providers.mock_responses import MOCK_RESPONSES
from shared.logging import logger

JSON_INSTRUCTION = "\n\nRespond with valid JSON only."

DEFAULT_SYSTEM_MESSAGE = (
    "You are a business analysis assistant specializing in market research, "
    "financial modeling, founder fit and risk assessment."
)


@dataclass(frozen=True)
class GenerationResult:
    text: str
    tokens_used: int
    model: str
    finish_reason: str = "stop"


class TextGenerator(ABC):
    """Narrow contract consumed by the agent executor"""

    provider_name = "base"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
        format: str = "text",
    ) -> GenerationResult:
        ...

    async def close(self) -> None:
        return None


class _HttpTextGenerator(TextGenerator):
    """Shared aiohttp plumbing and status-code mapping"""

    def __init__(self, api_key: str, base_url: str, model: str,
                 request_timeout: float = 60.0,
                 session: Optional[aiohttp.ClientSession] = None):
        if not api_key:
            raise ValueError(f"API key required for {self.provider_name} provider")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _post(self, path: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        session = await self._get_session()
        try:
            async with session.post(
                f"{self.base_url}{path}",
                headers=headers,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as response:
                if response.status == 429:
                    raise ProviderQuotaError(
                        f"{self.provider_name} quota exhausted: {await response.text()}",
                        provider=self.provider_name,
                        status_code=429,
                    )
                if response.status >= 500:
                    raise ProviderError(
                        f"{self.provider_name} server error {response.status}",
                        provider=self.provider_name,
                        status_code=response.status,
                    )
                if response.status != 200:
                    raise ProviderError(
                        f"{self.provider_name} API error {response.status}: {await response.text()}",
                        provider=self.provider_name,
                        retryable=False,
                        status_code=response.status,
                    )
                return await response.json()
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"{self.provider_name} request timed out after {self.request_timeout}s",
                provider=self.provider_name,
            ) from e
        except aiohttp.ClientError as e:
            raise ProviderError(
                f"{self.provider_name} connection error: {e}",
                provider=self.provider_name,
            ) from e

    def _truncated(self, max_tokens: int) -> ProviderError:
        return ProviderError(
            f"{self.provider_name} response hit the {max_tokens} token limit",
            provider=self.provider_name,
            retryable=False,
        )

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()


class AnthropicTextGenerator(_HttpTextGenerator):
    provider_name = "anthropic"

    def __init__(self, api_key: str, model: str = "claude-3-5-sonnet-latest",
                 base_url: str = "https://api.anthropic.com/v1", **kwargs):
        super().__init__(api_key, base_url, model, **kwargs)

    async def generate(self, prompt: str, temperature: float = 0.3,
                       max_tokens: int = 4000, format: str = "text") -> GenerationResult:
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": DEFAULT_SYSTEM_MESSAGE,
            "messages": [{
                "role": "user",
                "content": prompt + JSON_INSTRUCTION if format == "json" else prompt,
            }],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }
        data = await self._post("/messages", headers, payload)

        if data.get("stop_reason") == "max_tokens":
            raise self._truncated(max_tokens)

        blocks = [block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"]
        if not blocks:
            raise ProviderError("Anthropic returned no text content", provider=self.provider_name)

        usage = data.get("usage", {})
        return GenerationResult(
            text="".join(blocks),
            tokens_used=usage.get("input_tokens", 0) + usage.get("output_tokens", 0),
            model=data.get("model", self.model),
            finish_reason=data.get("stop_reason") or "end_turn",
        )


class OpenAITextGenerator(_HttpTextGenerator):
    provider_name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini",
                 base_url: str = "https://api.openai.com/v1", **kwargs):
        super().__init__(api_key, base_url, model, **kwargs)

    async def generate(self, prompt: str, temperature: float = 0.3,
                       max_tokens: int = 4000, format: str = "text") -> GenerationResult:
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": DEFAULT_SYSTEM_MESSAGE},
                {"role": "user", "content": prompt + JSON_INSTRUCTION if format == "json" else prompt},
            ],
        }
        if format == "json":
            payload["response_format"] = {"type": "json_object"}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        data = await self._post("/chat/completions", headers, payload)

        choices = data.get("choices") or []
        if not choices or not choices[0].get("message", {}).get("content"):
            raise ProviderError("OpenAI returned an empty response", provider=self.provider_name)
        if choices[0].get("finish_reason") == "length":
            raise self._truncated(max_tokens)

        return GenerationResult(
            text=choices[0]["message"]["content"],
            tokens_used=data.get("usage", {}).get("total_tokens", 0),
            model=data.get("model", self.model),
            finish_reason=choices[0].get("finish_reason") or "stop",
        )


class MockTextGenerator(TextGenerator):
    """Deterministic generator for development and tests.

    The first response whose marker appears in the first line of the prompt
    (case-insensitive) is returned; token usage is derived from the prompt and
    response length.
    """

    provider_name = "mock"

    def __init__(self, responses: Optional[Dict[str, str]] = None, latency: float = 0.0):
        self.responses = dict(MOCK_RESPONSES)
        if responses:
            self.responses.update(responses)
        self.latency = latency
        self.call_count = 0

    async def generate(self, prompt: str, temperature: float = 0.3,
                       max_tokens: int = 4000, format: str = "text") -> GenerationResult:
        self.call_count += 1
        if self.latency:
            await asyncio.sleep(self.latency)

        text = f"Mock response for prompt: {prompt[:50]}"
        lines = prompt.strip().splitlines()
        headline = lines[0].lower() if lines else ""
        for marker, response in self.responses.items():
            if marker.lower() in headline:
                text = response
                break

        if format == "json":
            try:
                json.loads(text)
            except ValueError:
                text = json.dumps({"mockResponse": text})

        return GenerationResult(
            text=text,
            tokens_used=(len(prompt) + len(text)) // 4,
            model="mock-model-v1",
        )


def create_text_generator(kind: str, api_key: Optional[str] = None, **options: Any) -> TextGenerator:
    """Build the text generator selected by configuration"""
    if kind == "anthropic":
        return AnthropicTextGenerator(api_key, **options)
    if kind == "openai":
        return OpenAITextGenerator(api_key, **options)
    if kind == "mock":
        return MockTextGenerator(**options)

    logger.error("Unknown text generator requested", kind=kind)
    raise ValueError(f"Unknown text generator: {kind}")
