"""
Tests for the generation service, with a scripted in-memory provider.
"""

import pytest
from unittest.mock import AsyncMock, patch

from chatrelay.conversation import Message
from chatrelay.errors import ErrorKind, MalformedInput, ProviderError
from chatrelay.retry import RetryExecutor
from chatrelay.service import GenerationService
from chatrelay.styles import StyleCatalog

from fakes import ScriptedProvider


CONVO = [Message("user", "Hi"), Message("bot", "Hey"), Message("user", "Tell me more")]


@pytest.mark.asyncio
async def test_generate_formats_and_instructs():
    provider = ScriptedProvider()
    service = GenerationService(provider, temperature=0.3)

    text = await service.generate("gemini-2.5-flash", CONVO, "deterministic")

    assert text == "Hello there"
    model, contents, instruction, temperature = provider.calls[0]
    assert model == "gemini-2.5-flash"
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert instruction == StyleCatalog().system_instruction("deterministic")
    assert temperature == 0.3


@pytest.mark.asyncio
async def test_generate_unknown_style_uses_default():
    provider = ScriptedProvider()
    await GenerationService(provider).generate("m", CONVO, "unknown-style")
    assert provider.calls[0][2] == StyleCatalog().system_instruction("explain")


@pytest.mark.asyncio
async def test_generate_retries_transient_failures():
    provider = ScriptedProvider(open_failures=[ProviderError("HTTP 503", status_code=503, kind=ErrorKind.OVERLOADED)])
    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock):
        text = await GenerationService(provider).generate("m", CONVO)
    assert text == "Hello there"
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_generate_fatal_propagates():
    provider = ScriptedProvider(open_failures=[ProviderError("HTTP 403: forbidden", status_code=403)])
    with pytest.raises(ProviderError):
        await GenerationService(provider).generate("m", CONVO)
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_stream_opening_is_retried():
    provider = ScriptedProvider(open_failures=[ProviderError("HTTP 429", status_code=429)] * 2)
    service = GenerationService(provider, retry=RetryExecutor(max_attempts=3))
    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock):
        stream = await service.generate_stream("m", CONVO, "creative")
    assert [f async for f in stream] == ["Hello", " there"]
    assert len(provider.calls) == 3


@pytest.mark.asyncio
async def test_mid_stream_failure_is_not_retried():
    err = ProviderError("HTTP 503: UNAVAILABLE", kind=ErrorKind.OVERLOADED)
    provider = ScriptedProvider(fragments=["Hi"], mid_stream_error=err)
    stream = await GenerationService(provider).generate_stream("m", CONVO)

    got = []
    with pytest.raises(ProviderError) as exc_info:
        async for fragment in stream:
            got.append(fragment)
    assert got == ["Hi"]
    assert exc_info.value is err
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_empty_conversation_rejected():
    provider = ScriptedProvider()
    with pytest.raises(MalformedInput):
        await GenerationService(provider).generate("m", [])
    assert provider.calls == []


@pytest.mark.asyncio
async def test_model_required():
    with pytest.raises(MalformedInput):
        await GenerationService(ScriptedProvider()).generate_stream("", CONVO)


def test_from_config(test_config):
    service = GenerationService.from_config(test_config, ScriptedProvider())
    assert service.temperature == 0.7
    assert service.retry.max_attempts == 3
    assert service.styles.default == "explain"
