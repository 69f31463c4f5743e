"""
Style catalog: maps a response style key to its instruction fragment.

Unknown or missing keys fall back to the default style, so picking a style
can never fail a request.
"""

from __future__ import annotations

import logging

from chatrelay.config import DEFAULT_STYLE

logger = logging.getLogger(__name__)

BASE_INSTRUCTION = "You are a helpful assistant."

DEFAULT_STYLES: dict[str, str] = {
    "explain": (
        "Provide clear, step-by-step explanations with examples. "
        "Break down complex topics into digestible parts. Use analogies when helpful."
    ),
    "deterministic": (
        "Give concise, direct, and consistent answers. "
        "Be precise and to the point. Avoid unnecessary elaboration."
    ),
    "creative": (
        "Be imaginative and flexible. Use creative language and explore multiple "
        "perspectives. Feel free to use metaphors and storytelling."
    ),
}


class StyleCatalog:
    """Lookup table of style key → instruction fragment."""

    def __init__(self, styles: dict[str, str] | None = None, default: str = DEFAULT_STYLE):
        self.styles = dict(styles) if styles else dict(DEFAULT_STYLES)
        if default not in self.styles:
            raise ValueError(f"Default style '{default}' is not in the catalog")
        self.default = default

    @classmethod
    def from_config(cls, cfg: dict) -> "StyleCatalog":
        s_cfg = cfg.get("styles", {}) or {}
        return cls(
            styles=s_cfg.get("instructions") or None,
            default=s_cfg.get("default", DEFAULT_STYLE),
        )

    def keys(self) -> list[str]:
        return list(self.styles)

    def instruction_for(self, style: str | None) -> str:
        if not isinstance(style, str):
            style = None
        if style and style in self.styles:
            return self.styles[style]
        if style:
            logger.debug("Unknown style '%s', using '%s'", style, self.default)
        return self.styles[self.default]

    def system_instruction(self, style: str | None) -> str:
        """Full system instruction sent to the provider."""
        return f"{BASE_INSTRUCTION} {self.instruction_for(style)}"
