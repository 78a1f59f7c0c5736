"""Configuration helpers for the debate arena."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"
DEFAULT_CONNECT_TIMEOUT = 15.0
DEFAULT_WS_HOST = "localhost"
DEFAULT_WS_PORT = 8765
# Audio frames are forwarded to browsers as base64 JSON, so allow large messages.
DEFAULT_MAX_MESSAGE_SIZE = 10 * 1024 * 1024


@dataclass
class ArenaConfig:
    """
    Resolved configuration for one arena process.

    Loaded from environment variables at startup so the same build can point at
    different models or ports without code changes. See from_env() for the
    complete list of env vars.
    """

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    ws_host: str = DEFAULT_WS_HOST
    ws_port: int = DEFAULT_WS_PORT
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE

    @classmethod
    def from_env(cls) -> "ArenaConfig":
        """Construct a configuration object based on environment variables."""

        return cls(
            api_key=_read_api_key_from_env(),
            model=os.getenv("ARENA_MODEL", DEFAULT_MODEL).strip(),
            connect_timeout=float(
                os.getenv("ARENA_CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT))
            ),
            ws_host=os.getenv("ARENA_WS_HOST", DEFAULT_WS_HOST),
            ws_port=int(os.getenv("ARENA_WS_PORT", str(DEFAULT_WS_PORT))),
            max_message_size=int(
                os.getenv("ARENA_MAX_MESSAGE_SIZE", str(DEFAULT_MAX_MESSAGE_SIZE))
            ),
        )


def _read_api_key_from_env() -> Optional[str]:
    """The Gemini key from `GEMINI_API_KEY`, else the contents of the file at `GEMINI_API_KEY_PATH`."""

    direct = os.getenv("GEMINI_API_KEY", "").strip()
    if direct:
        return direct
    path_value = os.getenv("GEMINI_API_KEY_PATH")
    if not path_value:
        return None
    try:
        key = Path(path_value).expanduser().read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.warning(f"Could not read GEMINI_API_KEY_PATH {path_value}: {exc}")
        return None
    return key or None


__all__ = ["ArenaConfig"]
