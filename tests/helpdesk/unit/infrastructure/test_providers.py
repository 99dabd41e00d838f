"""
Unit tests for the OpenAI providers, the intent fallback and logging setup.
"""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from src.helpdesk.domain.value_objects import ChatMessage, GenerationOptions, IntentCategory
from src.helpdesk.exceptions import (
    ConfigurationMissingError,
    MalformedResponseError,
    ProviderFailureError,
)
from src.helpdesk.infrastructure.llm_client import (
    MockEmbeddingProvider,
    MockGenerationProvider,
    OpenAIEmbeddingProvider,
    OpenAIGenerationProvider,
    OpenAIIntentFallback,
)
from src.helpdesk.logging_config import ROOT_LOGGER_NAME, get_logger, setup_logging


def create_completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class RaisingGenerator(MockGenerationProvider):
    async def generate(self, messages, options=None):
        raise ProviderFailureError("mock", "unavailable")


class TestOpenAIProviders:
    def test_missing_key(self):
        with pytest.raises(ConfigurationMissingError) as exc:
            OpenAIGenerationProvider()
        assert exc.value.key_name == "OPENAI_API_KEY"

    def test_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        provider = OpenAIGenerationProvider(model="gpt-test")
        assert provider.model == "gpt-test"

    @pytest.mark.asyncio
    async def test_generate_passes_messages_and_options(self):
        provider = OpenAIGenerationProvider(api_key="sk-test")
        create = AsyncMock(return_value=create_completion("Hola"))

        with patch.object(provider._client.chat.completions, "create", create):
            text = await provider.generate(
                [ChatMessage("system", "ctx"), ChatMessage("user", "hi")],
                GenerationOptions(max_tokens=100, temperature=0.1),
            )

        assert text == "Hola"
        kwargs = create.call_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "ctx"},
            {"role": "user", "content": "hi"},
        ]
        assert kwargs["max_tokens"] == 100
        assert kwargs["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_generate_without_choices(self):
        provider = OpenAIGenerationProvider(api_key="sk-test")
        create = AsyncMock(return_value=SimpleNamespace(choices=[]))

        with patch.object(provider._client.chat.completions, "create", create):
            with pytest.raises(ProviderFailureError):
                await provider.generate([ChatMessage("user", "hi")])

    @pytest.mark.asyncio
    async def test_embed(self):
        provider = OpenAIEmbeddingProvider(api_key="sk-test")
        response = SimpleNamespace(data=[SimpleNamespace(embedding=[0.1, 0.2])])

        with patch.object(provider._client.embeddings, "create", AsyncMock(return_value=response)):
            assert await provider.embed("vpn") == [0.1, 0.2]


class TestIntentFallback:
    @pytest.mark.parametrize(
        "reply,expected",
        [
            ("SAP", IntentCategory.SAP),
            ("network.", IntentCategory.NETWORK),
            ("GENERAL because reasons", IntentCategory.GENERAL),
        ],
    )
    def test_parse(self, reply, expected):
        assert OpenAIIntentFallback.parse(reply) == expected

    @pytest.mark.parametrize("reply", ["", "HOW_TO", "banana"])
    def test_parse_rejects(self, reply):
        with pytest.raises(MalformedResponseError):
            OpenAIIntentFallback.parse(reply)

    @pytest.mark.asyncio
    async def test_classify_uses_generator(self):
        generator = MockGenerationProvider(reply="Network")
        fallback = OpenAIIntentFallback(generator)

        assert await fallback.classify("no tengo internet") == IntentCategory.NETWORK
        assert 'Query: "no tengo internet"' in generator.calls[0][0].text

    @pytest.mark.asyncio
    async def test_classify_degrades_to_general(self):
        assert await OpenAIIntentFallback(MockGenerationProvider(reply="TROUBLESHOOTING")).classify("x") == IntentCategory.GENERAL
        assert await OpenAIIntentFallback(RaisingGenerator()).classify("x") == IntentCategory.GENERAL


class TestMocks:
    @pytest.mark.asyncio
    async def test_mock_embedding_is_deterministic(self):
        embedder = MockEmbeddingProvider(dimension=32)
        first = await embedder.embed("vpn")
        assert first == await embedder.embed("vpn")
        assert len(first) == 32
        assert embedder.calls == 2

    @pytest.mark.asyncio
    async def test_mock_generation_records_calls(self):
        generator = MockGenerationProvider()
        reply = await generator.generate([ChatMessage("system", "abc")])
        assert reply == "[Mock Response] (system prompt length: 3)"
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_default_stream_yields_generate(self):
        generator = MockGenerationProvider(reply="chunk")
        chunks = [c async for c in generator.stream([ChatMessage("user", "x")])]
        assert chunks == ["chunk"]


class TestLoggingConfig:
    def test_get_logger_prefixes_names(self):
        assert get_logger("custom").name == f"{ROOT_LOGGER_NAME}.custom"
        assert get_logger(f"{ROOT_LOGGER_NAME}.infrastructure").name == f"{ROOT_LOGGER_NAME}.infrastructure"

    def test_setup_logging_writes_file(self, tmp_path):
        log_file = tmp_path / "logs" / "agent.log"
        logger = setup_logging(level=logging.DEBUG, log_file=log_file, console=False)
        try:
            get_logger("test").debug("hello from test")
            for handler in logger.handlers:
                handler.flush()
            assert "hello from test" in log_file.read_text(encoding="utf-8")
        finally:
            for handler in list(logger.handlers):
                handler.close()
            logger.handlers.clear()
            logger.setLevel(logging.INFO)

