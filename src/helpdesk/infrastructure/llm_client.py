"""
OpenAI providers for the Helpdesk Knowledge Agent.

Provides answer generation, embeddings and the one-word intent fallback
on top of the async OpenAI client, plus deterministic mocks for offline use.
"""

import hashlib
import logging
from typing import AsyncIterator, List, Optional, Sequence

import openai
from openai import AsyncOpenAI

from ..config import get_config
from ..domain.repositories import IEmbeddingProvider, IGenerationProvider, IIntentFallback
from ..domain.value_objects import ChatMessage, GenerationOptions, IntentCategory
from ..exceptions import (
    ConfigurationMissingError,
    MalformedResponseError,
    ProviderFailureError,
    ProviderTimeoutError,
)

logger = logging.getLogger(__name__)

INTENT_FALLBACK_PROMPT = """Classify this IT support query into ONE category.

Categories:
- SAP: SAP transactions, roles, positions, authorizations, Fiori
- NETWORK: VPN, Zscaler, remote access, internet, Wi-Fi, connectivity
- GENERAL: anything else

Query: "{query}"

Reply with ONLY one word: SAP, NETWORK, or GENERAL"""

FALLBACK_CATEGORIES = (IntentCategory.SAP, IntentCategory.NETWORK, IntentCategory.GENERAL)


def _build_client(
    api_key: Optional[str], base_url: Optional[str], timeout: Optional[float]
) -> AsyncOpenAI:
    config = get_config()
    api_key = api_key or config.openai_api_key
    if not api_key:
        raise ConfigurationMissingError("OPENAI_API_KEY")
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url or config.openai_base_url,
        timeout=timeout or config.provider_timeout,
    )


def _translate(provider: str, error: Exception) -> Exception:
    if isinstance(error, openai.APITimeoutError):
        return ProviderTimeoutError(provider, str(error))
    return ProviderFailureError(provider, str(error))


class OpenAIGenerationProvider(IGenerationProvider):
    """
    Chat completion provider.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY.
        model: Chat model to use.
        base_url: Optional OpenAI-compatible endpoint.
        timeout: Request timeout in seconds.
    """

    provider_name = "openai-chat"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._client = _build_client(api_key, base_url, timeout)
        self.model = model or get_config().chat_model

    async def generate(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[GenerationOptions] = None,
    ) -> str:
        options = options or GenerationOptions()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[m.to_provider() for m in messages],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except openai.OpenAIError as e:
            raise _translate(self.provider_name, e) from e

        if not response.choices:
            raise ProviderFailureError(self.provider_name, "completion returned no choices")
        return response.choices[0].message.content or ""

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[GenerationOptions] = None,
    ) -> AsyncIterator[str]:
        options = options or GenerationOptions()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[m.to_provider() for m in messages],
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                stream=True,
            )
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            raise _translate(self.provider_name, e) from e


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embeddings via the OpenAI embeddings endpoint."""

    provider_name = "openai-embeddings"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._client = _build_client(api_key, base_url, timeout)
        self.model = model or get_config().embedding_model

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self._client.embeddings.create(model=self.model, input=text)
        except openai.OpenAIError as e:
            raise _translate(self.provider_name, e) from e
        if not response.data:
            raise ProviderFailureError(self.provider_name, "response contained no vectors")
        return list(response.data[0].embedding)


class OpenAIIntentFallback(IIntentFallback):
    """
    Asks a chat model for a one-word category.

    Anything other than SAP, NETWORK or GENERAL, and any provider error,
    yields GENERAL.
    """

    def __init__(self, generator: IGenerationProvider):
        self.generator = generator
        self.options = GenerationOptions(max_tokens=10, temperature=0.0)

    @staticmethod
    def parse(reply: str) -> IntentCategory:
        words = (reply or "").split()
        if not words:
            raise MalformedResponseError("Empty classification reply", raw=reply)
        category = IntentCategory.from_label(words[0])
        if category not in FALLBACK_CATEGORIES:
            raise MalformedResponseError("Unexpected classification label", raw=reply)
        return category

    async def classify(self, text: str) -> IntentCategory:
        prompt = INTENT_FALLBACK_PROMPT.format(query=text)
        try:
            reply = await self.generator.generate([ChatMessage("user", prompt)], self.options)
            category = self.parse(reply)
        except (ProviderTimeoutError, ProviderFailureError, MalformedResponseError) as e:
            logger.warning(f"Intent fallback failed, using GENERAL: {e}")
            return IntentCategory.GENERAL
        logger.debug(f"Intent fallback classified query as {category.value}")
        return category


class MockGenerationProvider(IGenerationProvider):
    """
    Generation provider for tests without API calls.

    Records every call; returns `reply` (or a summary of the prompt).
    """

    def __init__(self, reply: Optional[str] = None):
        self.reply = reply
        self.calls: List[Sequence[ChatMessage]] = []

    async def generate(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[GenerationOptions] = None,
    ) -> str:
        self.calls.append(list(messages))
        if self.reply is not None:
            return self.reply
        system_length = len(messages[0].text) if messages else 0
        return f"[Mock Response] (system prompt length: {system_length})"


class MockEmbeddingProvider(IEmbeddingProvider):
    """Deterministic hash-based embeddings."""

    def __init__(self, dimension: int = 384):
        self.dimension = dimension
        self.calls = 0

    async def embed(self, text: str) -> List[float]:
        self.calls += 1
        hash_bytes = hashlib.sha256(text.encode()).digest()
        return [
            (hash_bytes[i % len(hash_bytes)] - 128) / 128.0 for i in range(self.dimension)
        ]
