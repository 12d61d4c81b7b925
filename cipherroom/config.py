"""
Runtime configuration for CipherRoom.

Values come from environment variables, with a `.env` file in the working
directory loaded first (python-dotenv).

Environment Variables (.env):
    CHAT_HOST: Host to bind to (default: 0.0.0.0)
    PORT: Port to listen on (default: 3500)
    NODE_ENV: "production" blocks cross-origin clients (default: development)
    KEY_MODE: "client" or "server" key holding (default: client)
    REQUIRE_LOGIN: Require `login` before `enterRoom` (default: false)
    CIPHERTEXT_ENCODING: "json-array" or "base64" (default: json-array)
    ECHO_TO_SENDER: Send encrypted lines back to their sender (default: true)
    CHAT_CREDENTIALS: "name:password,..." login table (default: user1..user4)
    STATIC_DIR: Static folder served at / (default: public)
    LOG_LEVEL: Logging level name (default: INFO)
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

from cipherroom.common.protocol import CiphertextEncoding
from cipherroom.server.auth import DEFAULT_CREDENTIALS, parse_credentials
from cipherroom.server.keys import KeyMode


DEFAULT_PORT = 3500
DEV_ORIGINS = ["http://localhost:5500", "http://127.0.0.1:5500"]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class Settings:
    """Resolved server settings."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    environment: str = "development"
    key_mode: KeyMode = KeyMode.CLIENT_HELD
    require_login: bool = False
    encoding: CiphertextEncoding = CiphertextEncoding.JSON_ARRAY
    echo_to_sender: bool = True
    credentials: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CREDENTIALS))
    static_dir: str = "public"
    log_level: str = "INFO"

    @property
    def cors_origins(self) -> Optional[List[str]]:
        """
        Origins accepted by the Socket.IO handshake.

        None means same-origin only (production). An explicit list replaces the
        same-origin default, so in development the server's own origins are
        listed next to the local static server's.
        """
        if self.environment == "production":
            return None
        own = [f"http://localhost:{self.port}", f"http://127.0.0.1:{self.port}"]
        return list(DEV_ORIGINS) + own


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _get_enum(name: str, enum_cls, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        choices = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"{name} must be one of: {choices}; got {raw!r}")


def load_settings(env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ValueError: If a variable holds an invalid value
    """
    load_dotenv(env_file)

    port_raw = os.getenv("PORT", str(DEFAULT_PORT))
    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer, got {port_raw!r}")
    if not 0 < port < 65536:
        raise ValueError(f"PORT out of range: {port}")

    credentials_raw = os.getenv("CHAT_CREDENTIALS")
    credentials = parse_credentials(credentials_raw) if credentials_raw else dict(DEFAULT_CREDENTIALS)

    return Settings(
        host=os.getenv("CHAT_HOST", "0.0.0.0"),
        port=port,
        environment=os.getenv("NODE_ENV", "development").strip().lower(),
        key_mode=_get_enum("KEY_MODE", KeyMode, KeyMode.CLIENT_HELD),
        require_login=_get_bool("REQUIRE_LOGIN", False),
        encoding=_get_enum("CIPHERTEXT_ENCODING", CiphertextEncoding, CiphertextEncoding.JSON_ARRAY),
        echo_to_sender=_get_bool("ECHO_TO_SENDER", True),
        credentials=credentials,
        static_dir=os.getenv("STATIC_DIR", "public"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
