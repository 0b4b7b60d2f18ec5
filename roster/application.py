"""Application factory that wires configuration, storage and the API together."""
from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI

from .api import create_app
from .config import load_naming_policy, resolve_config_path
from .database import Database, resolve_database_path
from .security import TokenAuth, load_tokens_from_env

logger = logging.getLogger("roster.application")


def create_application(
    *,
    database_path: Optional[str] = None,
    config_path: Optional[str] = None,
) -> FastAPI:
    """Create the ASGI application from environment-driven settings."""

    policy = load_naming_policy(resolve_config_path(config_path or os.getenv("ROSTER_CONFIG")))

    db_path = resolve_database_path(database_path or os.getenv("ROSTER_DB_PATH"))
    database = Database(db_path, policy=policy)
    database.initialize()

    tokens = load_tokens_from_env()
    auth: Optional[TokenAuth] = None
    if tokens:
        auth = TokenAuth(tokens)
        logger.info("API token authentication enabled for %s client(s)", len(auth.labels))
    else:
        logger.warning("ROSTER_API_TOKENS is not set; the API is served without authentication")

    return create_app(database=database, auth=auth)


__all__ = ["create_application"]
