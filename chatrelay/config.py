"""
Config loader for chatrelay.
Reads config.yaml once at startup. All other modules import from here.
Set CHATRELAY_CONFIG to point at a different file.
"""

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

_config: dict | None = None

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_STYLE = "explain"
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 2000
DEFAULT_MAX_DELAY_MS = 30000
DEFAULT_TIMEOUT_MS = 60000
DEFAULT_HISTORY_WINDOW = 20
DEFAULT_TEMPERATURE = 0.7


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def _default_path() -> Path:
    override = os.environ.get("CHATRELAY_CONFIG")
    return Path(override) if override else _CONFIG_PATH


def load_config(path: Path | None = None) -> dict:
    """Load and cache config from YAML file."""
    global _config
    if _config is not None and path is None:
        return _config

    config_path = path or _default_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    _config = _walk_and_resolve(raw)
    return _config


def get_config() -> dict:
    """Return cached config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the file."""
    global _config
    _config = None


def retry_settings(cfg: dict) -> tuple[int, int, int]:
    """(max_retries, base_delay_ms, max_delay_ms) with defaults filled in."""
    r = cfg.get("retry", {}) or {}
    return (
        int(r.get("max_retries", DEFAULT_MAX_RETRIES)),
        int(r.get("base_delay_ms", DEFAULT_BASE_DELAY_MS)),
        int(r.get("max_delay_ms", DEFAULT_MAX_DELAY_MS)),
    )


def default_model(cfg: dict) -> str:
    return (cfg.get("models", {}) or {}).get("default") or DEFAULT_MODEL
