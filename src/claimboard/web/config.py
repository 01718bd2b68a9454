"""Web server configuration."""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class WebConfig:
    """Configuration for the web server and the workflow core."""

    host: str = "0.0.0.0"
    port: int = 8000
    db_path: str = ".claimboard/claimboard.db"
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24
    cors_origins: list[str] | None = None
    debug: bool = False
    log_level: str = "INFO"
    seed_demo: bool = False
    # Work-session liveness
    stale_session_seconds: int = 300
    sweep_interval_seconds: int = 60
    heartbeat_interval_seconds: int = 60

    @classmethod
    def load(cls) -> WebConfig:
        config = cls()
        config.host = os.environ.get("CLAIMBOARD_HOST", config.host)
        config.port = int(os.environ.get("CLAIMBOARD_PORT", config.port))
        config.db_path = os.environ.get("CLAIMBOARD_DB_PATH", config.db_path)
        config.jwt_secret = os.environ.get("CLAIMBOARD_JWT_SECRET", "")
        config.debug = os.environ.get("CLAIMBOARD_DEBUG", "").lower() in ("1", "true")
        config.log_level = os.environ.get(
            "CLAIMBOARD_LOG_LEVEL", "DEBUG" if config.debug else config.log_level
        ).upper()
        config.seed_demo = os.environ.get("CLAIMBOARD_SEED_DEMO", "").lower() in ("1", "true")
        origins = os.environ.get("CLAIMBOARD_CORS_ORIGINS")
        if origins:
            config.cors_origins = [o.strip() for o in origins.split(",")]
        config.stale_session_seconds = int(
            os.environ.get("CLAIMBOARD_STALE_SESSION_SECONDS", config.stale_session_seconds)
        )
        config.sweep_interval_seconds = int(
            os.environ.get("CLAIMBOARD_SWEEP_INTERVAL_SECONDS", config.sweep_interval_seconds)
        )
        config.heartbeat_interval_seconds = int(
            os.environ.get(
                "CLAIMBOARD_HEARTBEAT_INTERVAL_SECONDS", config.heartbeat_interval_seconds
            )
        )

        if config.stale_session_seconds <= config.heartbeat_interval_seconds:
            raise RuntimeError(
                "CLAIMBOARD_STALE_SESSION_SECONDS must be larger than the heartbeat interval, "
                "otherwise live sessions get closed between heartbeats."
            )

        if not config.jwt_secret:
            # Tokens won't survive restarts, which is fine for local development.
            config.jwt_secret = secrets.token_hex(32)
            logger.warning(
                "CLAIMBOARD_JWT_SECRET not set -- using random ephemeral secret. "
                "Set CLAIMBOARD_JWT_SECRET for persistent sessions."
            )

        return config
