"""
Generation service: style catalog + conversation formatter + retry executor
in front of a provider binding.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from chatrelay.backends.base import BaseProvider
from chatrelay.config import DEFAULT_TEMPERATURE
from chatrelay.conversation import Message, format_conversation
from chatrelay.errors import MalformedInput
from chatrelay.retry import RetryExecutor
from chatrelay.styles import StyleCatalog

logger = logging.getLogger(__name__)


class GenerationService:
    """Single-shot and streaming generation against one provider."""

    def __init__(
        self,
        provider: BaseProvider,
        styles: StyleCatalog | None = None,
        retry: RetryExecutor | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
    ):
        self.provider = provider
        self.styles = styles or StyleCatalog()
        self.retry = retry or RetryExecutor()
        self.temperature = temperature

    @classmethod
    def from_config(cls, cfg: dict, provider: BaseProvider) -> "GenerationService":
        return cls(
            provider=provider,
            styles=StyleCatalog.from_config(cfg),
            retry=RetryExecutor.from_config(cfg),
            temperature=float((cfg.get("provider", {}) or {}).get("temperature", DEFAULT_TEMPERATURE)),
        )

    def _prepare(self, model: str, conversation: list[Message], style: str | None) -> tuple[list[dict], str]:
        if not model:
            raise MalformedInput("A model identifier is required")
        if not conversation:
            raise MalformedInput("Conversation must not be empty")
        return format_conversation(conversation), self.styles.system_instruction(style)

    async def generate(self, model: str, conversation: list[Message], style: str | None = None) -> str:
        contents, instruction = self._prepare(model, conversation, style)
        logger.debug("Generating with %s (%d messages)", model, len(contents))
        return await self.retry.execute(
            lambda: self.provider.generate(model, contents, instruction, self.temperature)
        )

    async def generate_stream(
        self,
        model: str,
        conversation: list[Message],
        style: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Open a fragment stream. Only the opening is retried; a failure after
        fragments start flowing surfaces from the iterator as-is.
        """
        contents, instruction = self._prepare(model, conversation, style)
        logger.debug("Starting stream for model: %s", model)
        return await self.retry.execute(
            lambda: self.provider.open_stream(model, contents, instruction, self.temperature)
        )
