"""
FastAPI application, the chatrelay entry point.

Endpoints:
  POST /api/chat          single-shot generation → {"response": text}
  POST /api/chat/stream   server-sent events: token* then done | error
  GET  /api/health        liveness
  GET  /api/options       models and styles for client selectors
"""

import logging
import logging.handlers
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from chatrelay import __version__
from chatrelay.backends import create_provider
from chatrelay.config import DEFAULT_HISTORY_WINDOW, default_model, get_config
from chatrelay.conversation import Message
from chatrelay.errors import ErrorKind, MalformedInput, classify_error, user_message_for
from chatrelay.relay import SSE_HEADERS, StreamingRelay
from chatrelay.service import GenerationService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Globals, initialized at startup
# ---------------------------------------------------------------------------
service: GenerationService | None = None


def setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {}) or {}
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    log_dir = log_cfg.get("directory")
    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.TimedRotatingFileHandler(
            Path(log_dir) / "combined.log", when="midnight", backupCount=14,
        ))
        errors = logging.handlers.TimedRotatingFileHandler(
            Path(log_dir) / "error.log", when="midnight", backupCount=30,
        )
        errors.setLevel(logging.ERROR)
        handlers.append(errors)

    for h in handlers:
        h.setFormatter(fmt)

    logging.basicConfig(level=level, handlers=handlers, force=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    global service

    cfg = get_config()
    setup_logging(cfg)

    service = GenerationService.from_config(cfg, create_provider(cfg))

    logger.info(
        "chatrelay %s started, listening on %s:%s, provider %s",
        __version__,
        cfg.get("server", {}).get("host", "0.0.0.0"),
        cfg.get("server", {}).get("port", 3000),
        service.provider.name,
    )
    logger.info("Default model: %s, styles: %s", default_model(cfg), service.styles.keys())
    logger.info(
        "Retry: %d attempts, base %dms, cap %dms",
        service.retry.max_attempts, service.retry.base_delay_ms, service.retry.max_delay_ms,
    )

    yield

    logger.info("chatrelay shutting down")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="chatrelay",
    description="Relay between a chat client and a hosted LLM.",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.debug("%s %s", request.method, request.url.path)
    return await call_next(request)


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": "Bad Request", "message": message}, status_code=400)


async def _parse_request(request: Request) -> tuple[list[Message], str, str | None]:
    """Pull (conversation, model, style) out of the body or raise MalformedInput."""
    try:
        body = await request.json()
    except ValueError:
        raise MalformedInput("Body must be valid JSON")
    if not isinstance(body, dict):
        raise MalformedInput("Body must be a JSON object")

    conversation = body.get("conversation")
    if not isinstance(conversation, list):
        raise MalformedInput("Conversation must be an array")
    if not all(isinstance(m, dict) for m in conversation):
        raise MalformedInput("Conversation must be an array of messages")
    if not conversation:
        raise MalformedInput("Conversation must not be empty")

    model = body.get("model") or default_model(get_config())
    style = body.get("responseStyle")
    if not isinstance(style, str) or not style:
        style = None
    return [Message.from_dict(m) for m in conversation], model, style


# ---------------------------------------------------------------------------
# Chat endpoints
# ---------------------------------------------------------------------------

@app.post("/api/chat")
async def chat(request: Request):
    try:
        conversation, model, style = await _parse_request(request)
    except MalformedInput as e:
        return _bad_request(str(e))

    try:
        text = await service.generate(model, conversation, style)
    except Exception as e:
        logger.error("Chat API Error: %s", e)
        if classify_error(e) is ErrorKind.RATE_LIMITED:
            return JSONResponse(
                {"error": "Rate limit exceeded", "details": user_message_for(e)},
                status_code=429,
            )
        return JSONResponse(
            {"error": "Internal Server Error", "details": user_message_for(e)},
            status_code=500,
        )

    return JSONResponse({"response": text})


@app.post("/api/chat/stream")
async def chat_stream(request: Request):
    try:
        conversation, model, style = await _parse_request(request)
    except MalformedInput as e:
        return _bad_request(str(e))

    logger.info("Streaming request: %d messages, model: %s", len(conversation), model)

    relay = StreamingRelay(
        lambda: service.generate_stream(model, conversation, style),
        label=f"[{model}]",
    )
    return StreamingResponse(
        relay.stream(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Info endpoints
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health():
    return JSONResponse({"status": "ok", "version": __version__})


@app.get("/api/options")
async def options():
    """What the client can choose from."""
    cfg = get_config()
    models_cfg = cfg.get("models", {}) or {}
    default = default_model(cfg)
    return JSONResponse({
        "models": models_cfg.get("available") or [default],
        "default_model": default,
        "styles": service.styles.keys() if service else [],
        "default_style": service.styles.default if service else None,
        "history_window": (cfg.get("client", {}) or {}).get("history_window", DEFAULT_HISTORY_WINDOW),
    })
