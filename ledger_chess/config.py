"""
Configuration loading.

- Reads settings.yml from the repo root when present; keys there take precedence.
- Falls back to LEDGER_CHESS_* environment variables (a .env file is honoured).
- Exposes SETTINGS, built once at import time.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import yaml
from dotenv import load_dotenv

load_dotenv()

ENV_PREFIX = "LEDGER_CHESS_"
REPO_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_SETTINGS_PATH = REPO_ROOT / "settings.yml"


@dataclass(frozen=True)
class Settings:
    # Sync loop
    poll_interval_s: float = 10.0

    # Clock rules mirrored from the ledger (1 block ~ 1 second)
    initial_time_blocks: int = 172_800
    opening_increment_blocks: int = 600
    late_increment_blocks: int = 60
    increment_phase_moves: int = 20

    log_level: str = "INFO"


def _load_yaml(path: Path) -> dict:
    if not path.is_file():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def load_settings(path: Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Build Settings from a YAML file and the environment."""
    cfg = _load_yaml(path or DEFAULT_SETTINGS_PATH)
    env = os.environ if environ is None else environ
    defaults = Settings()

    def _get(name: str, cast: Callable[[Any], Any]) -> Any:
        if name in cfg:
            return cast(cfg[name])
        value = env.get(ENV_PREFIX + name.upper())
        if value is not None:
            return cast(value)
        return getattr(defaults, name)

    return Settings(
        poll_interval_s=_get("poll_interval_s", float),
        initial_time_blocks=_get("initial_time_blocks", int),
        opening_increment_blocks=_get("opening_increment_blocks", int),
        late_increment_blocks=_get("late_increment_blocks", int),
        increment_phase_moves=_get("increment_phase_moves", int),
        log_level=_get("log_level", lambda v: str(v).upper()),
    )


SETTINGS = load_settings()
