"""
Client side of the relay.

StreamConsumer posts the windowed history to /api/chat/stream, decodes the
event stream incrementally and hands the growing text to a render callback.
ChatSession owns the full conversation and only commits a bot reply once its
stream reached `done`.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Callable

import httpx

from chatrelay.config import (
    DEFAULT_HISTORY_WINDOW,
    DEFAULT_MODEL,
    DEFAULT_STYLE,
    DEFAULT_TIMEOUT_MS,
)
from chatrelay.conversation import Message, excluded_flags, history_window

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"


class ErrorCategory(str, enum.Enum):
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    NOT_FOUND = "not_found"
    SERVER = "server"
    GENERIC = "generic"

    @property
    def message(self) -> str:
        return _CATEGORY_MESSAGES[self]


_CATEGORY_MESSAGES = {
    ErrorCategory.RATE_LIMITED: "API rate limit reached. Please wait a moment and try again.",
    ErrorCategory.TIMEOUT: "Request timed out. The server took too long to respond. Please try again.",
    ErrorCategory.TRANSPORT: "Cannot connect to server. Please check your connection and try again.",
    ErrorCategory.NOT_FOUND: "Service not found. Please contact support.",
    ErrorCategory.SERVER: "Server error. Please try again in a few moments.",
    ErrorCategory.GENERIC: "Something went wrong. Please try again.",
}


class ClientError(Exception):
    def __init__(self, category: ErrorCategory, detail: str = ""):
        super().__init__(detail or category.message)
        self.category = category
        self.detail = detail


def categorize_status(status_code: int) -> ErrorCategory:
    if status_code == 429:
        return ErrorCategory.RATE_LIMITED
    if status_code == 404:
        return ErrorCategory.NOT_FOUND
    if status_code >= 500:
        return ErrorCategory.SERVER
    return ErrorCategory.GENERIC


def categorize_event_error(text: str) -> ErrorCategory:
    """Category for the text of an `{"error": ...}` event."""
    lowered = (text or "").lower()
    if "429" in lowered or "quota" in lowered or "rate limit" in lowered:
        return ErrorCategory.RATE_LIMITED
    if "timeout" in lowered or "timed out" in lowered:
        return ErrorCategory.TIMEOUT
    return ErrorCategory.GENERIC


def categorize_exception(exc: BaseException) -> ErrorCategory:
    if isinstance(exc, ClientError):
        return exc.category
    if isinstance(exc, httpx.TimeoutException):
        return ErrorCategory.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return categorize_status(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return ErrorCategory.TRANSPORT
    return ErrorCategory.GENERIC


class SSEDecoder:
    """
    Incremental `data: <json>` line decoder.
    A line cut by a chunk boundary stays buffered until the next feed().
    """

    def __init__(self):
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, text: str) -> list[dict]:
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")

        events = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith("data:"):
                continue
            data = line[5:].strip()
            try:
                event = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Dropping malformed event line: %r", data[:200])
                continue
            if isinstance(event, dict):
                events.append(event)
        return events


@dataclass
class StreamResult:
    text: str
    completed: bool
    error: ErrorCategory | None = None


class StreamConsumer:
    """Reads one streamed reply. Always terminates: done, error, timeout or transport failure."""

    def __init__(self, timeout_ms: int = DEFAULT_TIMEOUT_MS, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout_ms = timeout_ms
        self._transport = transport

    async def consume(
        self,
        url: str,
        history: list[Message],
        model: str,
        style: str | None,
        on_token: Callable[[str], None] | None = None,
        on_error: Callable[[ErrorCategory, str], None] | None = None,
        on_done: Callable[[str], None] | None = None,
    ) -> StreamResult:
        payload = {
            "conversation": [m.to_dict() for m in history],
            "model": model,
            "responseStyle": style,
        }
        accumulated = ""
        decoder = SSEDecoder()
        logger.debug("Streaming %d messages to %s (%s, %s)", len(history), url, model, style)

        try:
            # Read timeout bounds the wait between chunks, not the whole reply
            timeout = httpx.Timeout(self.timeout_ms / 1000)
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                async with client.stream("POST", url, json=payload) as resp:
                    if resp.status_code >= 400:
                        raise ClientError(categorize_status(resp.status_code), f"Server error: {resp.status_code}")

                    async for chunk in resp.aiter_text():
                        for event in decoder.feed(chunk):
                            if "error" in event:
                                detail = str(event["error"])
                                raise ClientError(categorize_event_error(detail), detail)
                            if event.get("done"):
                                logger.info("Stream completed (%d chars)", len(accumulated))
                                if on_done:
                                    on_done(accumulated)
                                return StreamResult(text=accumulated, completed=True)
                            token = event.get("token")
                            if isinstance(token, str) and token:
                                accumulated += token
                                if on_token:
                                    on_token(accumulated)

            raise ClientError(ErrorCategory.TRANSPORT, "Stream ended before completion")
        except (ClientError, httpx.HTTPError) as e:
            category = categorize_exception(e)
            logger.error("Streaming failed (%s): %s", category.value, e)
            if on_error:
                on_error(category, category.message)
            return StreamResult(text=accumulated, completed=False, error=category)


async def fetch_reply(
    url: str,
    history: list[Message],
    model: str,
    style: str | None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Unary call to /api/chat. Raises ClientError on any failure."""
    payload = {
        "conversation": [m.to_dict() for m in history],
        "model": model,
        "responseStyle": style,
    }
    try:
        async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=transport) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPError as e:
        raise ClientError(categorize_exception(e), str(e)) from e

    if "response" not in data:
        raise ClientError(ErrorCategory.GENERIC, "No response received")
    return data["response"]


class ChatSession:
    """
    Full conversation plus the window that is actually sent.

    `busy` mirrors the disabled input of a UI: set while a reply streams and
    cleared whatever the outcome.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        style: str = DEFAULT_STYLE,
        window_size: int = DEFAULT_HISTORY_WINDOW,
        consumer: StreamConsumer | None = None,
        on_busy: Callable[[bool], None] | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.style = style
        self.window_size = window_size
        self.consumer = consumer or StreamConsumer()
        self.on_busy = on_busy
        self.history: list[Message] = []
        self._busy = False

    @classmethod
    def from_config(cls, cfg: dict, **overrides) -> "ChatSession":
        c_cfg = cfg.get("client", {}) or {}
        kwargs = {
            "base_url": c_cfg.get("url", DEFAULT_BASE_URL),
            "model": (cfg.get("models", {}) or {}).get("default", DEFAULT_MODEL),
            "style": (cfg.get("styles", {}) or {}).get("default", DEFAULT_STYLE),
            "window_size": c_cfg.get("history_window", DEFAULT_HISTORY_WINDOW),
            "consumer": StreamConsumer(timeout_ms=c_cfg.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
        }
        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def stream_url(self) -> str:
        return f"{self.base_url}/api/chat/stream"

    def _set_busy(self, value: bool):
        self._busy = value
        if self.on_busy:
            self.on_busy(value)

    def window(self) -> list[Message]:
        return history_window(self.history, self.window_size)

    def excluded_flags(self) -> list[bool]:
        return excluded_flags(self.history, self.window_size)

    def clear(self) -> int:
        count = len(self.history)
        self.history = []
        logger.info("Cleared %d messages from conversation", count)
        return count

    async def send(
        self,
        text: str,
        on_token: Callable[[str], None] | None = None,
        on_error: Callable[[ErrorCategory, str], None] | None = None,
    ) -> StreamResult:
        text = text.strip()
        if not text:
            raise ValueError("Message is empty")
        if self._busy:
            raise RuntimeError("A reply is already streaming")

        self.history.append(Message(role="user", text=text))
        self._set_busy(True)
        try:
            window = self.window()
            trimmed = len(self.history) - len(window)
            if trimmed:
                logger.info("Trimmed %d old messages from API request", trimmed)

            result = await self.consumer.consume(
                self.stream_url, window, self.model, self.style,
                on_token=on_token, on_error=on_error,
            )
            if result.completed:
                self.history.append(Message(role="bot", text=result.text))
            return result
        finally:
            self._set_busy(False)
