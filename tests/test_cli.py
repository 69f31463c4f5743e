"""
Tests for the CLI parser and terminal rendering.
"""

import io

import pytest

from chatrelay import cli


@pytest.mark.parametrize("name", ["serve", "start", "dial"])
def test_serve_aliases(name):
    args = cli.build_parser().parse_args([name, "--port", "8080"])
    assert args.func is cli.cmd_serve
    assert args.port == 8080


def test_chat_options():
    args = cli.build_parser().parse_args(["talk", "-m", "gemini-3-flash-preview", "-s", "creative", "--once", "hi", "there"])
    assert args.func is cli.cmd_chat
    assert args.model == "gemini-3-flash-preview"
    assert args.style == "creative"
    assert args.once == ["hi", "there"]


def test_ring_aliases():
    args = cli.build_parser().parse_args(["ping", "-u", "http://x"])
    assert args.func is cli.cmd_ring
    assert args.url == "http://x"


def test_renderer_writes_only_new_text():
    out = io.StringIO()
    render = cli._TerminalRenderer(out)
    for text in ["He", "Hell", "Hello"]:
        render(text)
    assert out.getvalue() == "Hello"


def test_styles_command(test_config, capsys):
    cli.cmd_styles(None)
    output = capsys.readouterr().out
    assert "* explain" in output
    assert "creative" in output
