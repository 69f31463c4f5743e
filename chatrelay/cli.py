#!/usr/bin/env python3
"""
chatrelay CLI.

    COMMAND         ALIASES         WHAT IT DOES
    -------         -------         ----------------------------------
    serve           start, dial     Start the relay server
    chat            talk            Interactive streaming chat against a running relay
    ring            health, ping    Ping a running instance
    styles                          List response styles
"""

import argparse
import asyncio
import logging
import sys

from chatrelay import __version__


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_serve(args):
    """Start the relay server."""
    import uvicorn
    from chatrelay.config import default_model, get_config

    cfg = get_config()
    server = cfg.get("server", {}) or {}
    host = args.host or server.get("host", "0.0.0.0")
    port = args.port or server.get("port", 3000)

    print(f"  chatrelay {__version__} on {host}:{port}")
    print(f"  Default model: {default_model(cfg)}")
    print()

    uvicorn.run(
        "chatrelay.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


class _TerminalRenderer:
    """Renders the growing reply; only the unseen tail is written."""

    def __init__(self, out=sys.stdout):
        self.out = out
        self.shown = 0

    def __call__(self, text: str):
        self.out.write(text[self.shown:])
        self.out.flush()
        self.shown = len(text)


async def _chat_turn(session, text: str):
    from chatrelay.client import ErrorCategory

    render = _TerminalRenderer()

    def on_error(category: ErrorCategory, message: str):
        if render.shown:
            print()
        print(f"  ✗  {message}")

    print("  ◀ ", end="", flush=True)
    result = await session.send(text, on_token=render, on_error=on_error)
    if result.completed:
        print()
    return result


def cmd_chat(args):
    """Interactive streaming chat."""
    from chatrelay.client import ChatSession
    from chatrelay.config import get_config

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    cfg = get_config()
    session = ChatSession.from_config(
        cfg,
        base_url=args.url,
        model=args.model,
        style=args.style,
        window_size=args.window,
    )

    if args.once:
        result = asyncio.run(_chat_turn(session, " ".join(args.once)))
        sys.exit(0 if result.completed else 1)

    print(f"  Connected to {session.base_url} ({session.model}, {session.style})")
    print("  /clear resets the conversation, /quit leaves")
    print()
    try:
        while True:
            try:
                text = input("  ▶ ").strip()
            except EOFError:
                break
            if not text:
                continue
            if text in ("/quit", "/exit", "/q"):
                break
            if text == "/clear":
                count = session.clear()
                print(f"  Cleared {count} messages")
                continue
            asyncio.run(_chat_turn(session, text))
            excluded = sum(session.excluded_flags())
            if excluded:
                print(f"  ({excluded} older messages are no longer in model memory)")
    except KeyboardInterrupt:
        print()


def cmd_ring(args):
    """Ping a running relay."""
    import httpx
    from chatrelay.config import get_config

    url = args.url or (get_config().get("client", {}) or {}).get("url", "http://localhost:3000")
    url = url.rstrip("/")
    try:
        resp = httpx.get(f"{url}/api/health", timeout=5)
        resp.raise_for_status()
        data = resp.json()
        print(f"  ✓  {url} is up (v{data.get('version', '?')})")
    except Exception as e:
        print(f"  ✗  No answer from {url}: {e}")
        sys.exit(1)


def cmd_styles(args):
    """List response styles."""
    from chatrelay.config import get_config
    from chatrelay.styles import StyleCatalog

    catalog = StyleCatalog.from_config(get_config())
    for key in catalog.keys():
        marker = "*" if key == catalog.default else " "
        print(f"  {marker} {key:<14} {catalog.instruction_for(key)}")


# ---------------------------------------------------------------------------
# Parser with aliases
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatrelay",
        description="chatrelay: relay between a chat client and a hosted LLM.",
        epilog="Run 'chatrelay <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"chatrelay {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_serve(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["serve", "start", "dial"],
                 "Start the relay server", cmd_serve, setup_serve)

    def setup_chat(p):
        p.add_argument("--url", "-u", default=None, help="Relay URL (default: from config)")
        p.add_argument("--model", "-m", default=None, help="Model identifier")
        p.add_argument("--style", "-s", default=None, help="Response style (explain, deterministic, creative)")
        p.add_argument("--window", "-w", type=int, default=None, help="Messages kept in model memory")
        p.add_argument("--once", nargs="+", default=None, metavar="TEXT",
                       help="Send one message, print the reply and exit")

    _add_command(sub, ["chat", "talk"],
                 "Interactive streaming chat", cmd_chat, setup_chat)

    def setup_ring(p):
        p.add_argument("--url", "-u", default=None, help="Relay URL (default: from config)")

    _add_command(sub, ["ring", "health", "ping"],
                 "Ping a running relay", cmd_ring, setup_ring)

    _add_command(sub, ["styles"], "List response styles", cmd_styles)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
