"""
Streaming relay: re-frames provider fragments as server-sent events.

    OPEN → STREAMING → DONE | ERRORED

One `{"token": ...}` event per fragment, in order, then exactly one terminal
event (`{"done": true}` or `{"error": ...}`). Nothing is sent after it.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import AsyncIterator, Awaitable, Callable

from chatrelay.errors import user_message_for

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class RelayState(str, enum.Enum):
    OPEN = "open"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"


def encode_event(event: dict) -> str:
    """One SSE frame: `data: <json>` followed by a blank line."""
    return f"data: {json.dumps(event)}\n\n"


class StreamingRelay:
    """Pulls one fragment at a time from the opened stream and frames it."""

    def __init__(self, open_stream: Callable[[], Awaitable[AsyncIterator[str]]], label: str = ""):
        self._open_stream = open_stream
        self.label = label
        self.state = RelayState.OPEN
        self.chars = 0

    async def events(self) -> AsyncIterator[dict]:
        """Yield wire events as dicts."""
        if self.state is not RelayState.OPEN:
            raise RuntimeError("A relay can only be run once")

        fragments = None
        try:
            fragments = await self._open_stream()
            self.state = RelayState.STREAMING
            async for fragment in fragments:
                self.chars += len(fragment)
                yield {"token": fragment}
        except Exception as e:
            self.state = RelayState.ERRORED
            logger.error("Streaming failed %s: %s", self.label, e)
            yield {"error": user_message_for(e)}
            return
        finally:
            aclose = getattr(fragments, "aclose", None)
            if aclose is not None:
                await aclose()

        self.state = RelayState.DONE
        logger.info("Stream completed (%d chars) %s", self.chars, self.label)
        yield {"done": True}

    async def stream(self) -> AsyncIterator[str]:
        """Yield encoded SSE frames, ready for a StreamingResponse."""
        async for event in self.events():
            yield encode_event(event)
