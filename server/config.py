"""
Server configuration module.

Settings come from the environment (``PORT``, ``HOST``, ``LOG_LEVEL``) and can be
overridden on the command line by ``server.main``.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from common.messages import Session, iso_now

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"
INDEX_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "static", "index.html")

PUBLIC_ROOM_ID = "public-chat"
PUBLIC_ROOM_AVATAR = "https://img.icons8.com/fluency/96/000000/chat.png"


class ConfigError(ValueError):
    """Raised when a setting has an unusable value."""
    pass


def parse_port(value: Optional[str]) -> int:
    ''' Empty or missing means the default port '''
    if value is None or value.strip() == "":
        return DEFAULT_PORT
    try:
        port = int(value)
    except ValueError:
        raise ConfigError(f"port must be a number, got {value!r}") from None
    if not 0 <= port <= 65535:
        raise ConfigError(f"port out of range: {port}")
    return port


def default_sessions() -> List[Session]:
    """The directory starts with the public room only."""
    return [
        Session(
            id=PUBLIC_ROOM_ID,
            name="Public Chat Room",
            avatar=PUBLIC_ROOM_AVATAR,
            is_group=True,
            last_msg="Welcome to the public chat room",
            last_time=iso_now(),
        )
    ]


@dataclass
class ServerConfig:
    """Server configuration class."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL
    index_path: str = INDEX_PATH
    sessions: List[Session] = field(default_factory=default_sessions)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("HOST") or DEFAULT_HOST,
            port=parse_port(env.get("PORT")),
            log_level=(env.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )
