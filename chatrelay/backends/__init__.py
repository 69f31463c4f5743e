"""
Provider bindings for chatrelay.
"""
from chatrelay.backends.base import BaseProvider
from chatrelay.backends.gemini import GeminiProvider

PROVIDERS: dict[str, type[BaseProvider]] = {
    "gemini": GeminiProvider,
}

__all__ = [
    "BaseProvider",
    "GeminiProvider",
    "PROVIDERS",
    "create_provider",
]


def create_provider(cfg: dict) -> BaseProvider:
    """Instantiate the configured provider (only Gemini ships today)."""
    name = (cfg.get("provider", {}) or {}).get("name", "gemini")
    cls = PROVIDERS.get(name)
    if cls is None:
        raise ValueError(f"Unknown provider '{name}'")
    return cls.from_config(cfg)
