"""Loading the API key from the environment and `.env` files.

We use `.env` files (python-dotenv) plus the process environment.

Precedence for load_api_key:
1) Process environment (`os.environ`)
2) User config `.env` (`~/.voice_transcribe/.env`)
3) Local `.env` (current working directory)
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger("voice_transcribe")


def read_env_value(path: Path, key: str) -> str | None:
    """Returns a single value from a `.env` file, or None.

    python-dotenv strips surrounding single or double quotes.
    """
    from dotenv import dotenv_values

    if not path.is_file():
        return None
    try:
        value = dotenv_values(path).get(key)
    except OSError as e:
        logger.warning(f"Cannot read {path}: {e}")
        return None
    if value is None:
        return None
    value = value.strip()
    return value or None


def default_env_files() -> list[Path]:
    from config import USER_ENV_FILE

    return [USER_ENV_FILE, Path(".env")]


def load_api_key(env_files: list[Path] | None = None) -> str | None:
    """Finds OPENAI_API_KEY. Only the start path calls this."""
    from config import API_KEY_NAME

    from_env = os.getenv(API_KEY_NAME, "").strip()
    if from_env:
        return from_env

    for path in env_files if env_files is not None else default_env_files():
        value = read_env_value(path, API_KEY_NAME)
        if value:
            logger.debug(f"{API_KEY_NAME} loaded from {path}")
            return value
    return None


__all__ = [
    "default_env_files",
    "load_api_key",
    "read_env_value",
]
