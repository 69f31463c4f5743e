"""
Base provider abstraction.
The generation service talks to this interface, never to a vendor SDK.
"""

from __future__ import annotations

import abc
import logging
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class BaseProvider(abc.ABC):
    """
    Abstract generative-text provider.

    `contents` is the formatted conversation (role + parts), the system
    instruction travels separately.
    """

    def __init__(self, name: str, url: str, timeout: float = 120):
        self.name = name
        self.url = url.rstrip("/")
        self.timeout = timeout

    @abc.abstractmethod
    async def generate(
        self,
        model: str,
        contents: list[dict],
        system_instruction: str,
        temperature: float,
    ) -> str:
        """Return the complete generated text, or raise ProviderError."""
        ...

    @abc.abstractmethod
    async def open_stream(
        self,
        model: str,
        contents: list[dict],
        system_instruction: str,
        temperature: float,
    ) -> AsyncIterator[str]:
        """
        Open a streaming call. Returns once the upstream accepted the request;
        the returned iterator yields text fragments lazily and may raise
        ProviderError on any pull. It cannot be restarted.
        """
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
