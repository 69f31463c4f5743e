"""
Gemini backend: Google Generative Language REST API over httpx.
Maps HTTP failures to ProviderError with a classification attached.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

import httpx

from chatrelay.backends.base import BaseProvider
from chatrelay.errors import ErrorKind, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://generativelanguage.googleapis.com/v1beta"


def _kind_for_status(status_code: int) -> ErrorKind | None:
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 503:
        return ErrorKind.OVERLOADED
    # Leave the rest to message heuristics
    return None


def extract_text(data: dict) -> str:
    """Concatenate the text parts of the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


class GeminiProvider(BaseProvider):
    """Provider binding for Gemini models."""

    def __init__(
        self,
        api_key: str,
        url: str = DEFAULT_URL,
        timeout: float = 120,
        name: str = "gemini",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        super().__init__(name=name, url=url or DEFAULT_URL, timeout=timeout)
        self.api_key = api_key
        self._transport = transport

    @classmethod
    def from_config(cls, cfg: dict) -> "GeminiProvider":
        p_cfg = cfg.get("provider", {}) or {}
        return cls(
            api_key=p_cfg.get("api_key", ""),
            url=p_cfg.get("url", DEFAULT_URL),
            timeout=p_cfg.get("timeout", 120),
        )

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    @staticmethod
    def _payload(contents: list[dict], system_instruction: str, temperature: float) -> dict:
        return {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "generationConfig": {"temperature": temperature},
        }

    @staticmethod
    def _status_error(status_code: int, body: str) -> ProviderError:
        return ProviderError(
            f"HTTP {status_code}: {body[:500]}",
            status_code=status_code,
            kind=_kind_for_status(status_code),
        )

    @staticmethod
    def _transport_error(e: httpx.HTTPError) -> ProviderError:
        if isinstance(e, httpx.TimeoutException):
            return ProviderError(f"Upstream timeout: {e}", kind=ErrorKind.FATAL, timed_out=True)
        return ProviderError(f"Upstream connection failed: {e}")

    async def generate(self, model, contents, system_instruction, temperature) -> str:
        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.url}/models/{model}:generateContent",
                    headers=self._headers(),
                    json=self._payload(contents, system_instruction, temperature),
                )
        except httpx.HTTPError as e:
            logger.warning("Gemini backend '%s' failed: %s", self.name, e)
            raise self._transport_error(e) from e

        if resp.status_code >= 400:
            raise self._status_error(resp.status_code, resp.text)

        return extract_text(resp.json())

    async def open_stream(self, model, contents, system_instruction, temperature) -> AsyncIterator[str]:
        client = self._client()
        request = client.build_request(
            "POST",
            f"{self.url}/models/{model}:streamGenerateContent",
            params={"alt": "sse"},
            headers=self._headers(),
            json=self._payload(contents, system_instruction, temperature),
        )
        # Until the iterator owns the client, every exit path must close it
        try:
            try:
                resp = await client.send(request, stream=True)
            except httpx.HTTPError as e:
                logger.warning("Gemini backend '%s' stream open failed: %s", self.name, e)
                raise self._transport_error(e) from e

            if resp.status_code >= 400:
                try:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                except httpx.HTTPError as e:
                    logger.warning("Gemini backend '%s' error body unreadable: %s", self.name, e)
                    raise self._transport_error(e) from e
                finally:
                    await resp.aclose()
                raise self._status_error(resp.status_code, body)
        except BaseException:
            await client.aclose()
            raise

        return self._iter_fragments(client, resp)

    async def _iter_fragments(self, client: httpx.AsyncClient, resp: httpx.Response) -> AsyncIterator[str]:
        try:
            async for line in resp.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data_str = line[5:].strip()
                if not data_str:
                    continue
                try:
                    chunk = json.loads(data_str)
                except json.JSONDecodeError:
                    logger.debug("Skipping unparseable stream line: %r", data_str[:200])
                    continue
                if "error" in chunk:
                    err = chunk["error"] or {}
                    code = err.get("code") if isinstance(err, dict) else None
                    message = err.get("message", "") if isinstance(err, dict) else str(err)
                    raise ProviderError(
                        f"Stream error {code}: {message}",
                        status_code=code,
                        kind=_kind_for_status(code) if isinstance(code, int) else None,
                    )
                text = extract_text(chunk)
                if text:
                    yield text
        except httpx.HTTPError as e:
            logger.warning("Gemini backend '%s' stream dropped: %s", self.name, e)
            raise self._transport_error(e) from e
        finally:
            await resp.aclose()
            await client.aclose()
