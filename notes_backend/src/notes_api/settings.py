from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}
_BACKENDS = ("memory", "sqlite")


@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration, read from the environment by get_settings().

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'; anything else means memory
    - SQLITE_DB_PATH: database file for the sqlite backend (default './data/notes.db')
    - CORS_ALLOW_ORIGINS: '*' (default) or a comma-separated origin list
    - ENABLE_BASIC_AUTH: 'true' to verify HTTP Basic credentials on every call
    - BASIC_AUTH_USERNAME / BASIC_AUTH_PASSWORD: expected credentials
    - LOG_LEVEL: level name for the package logger (default INFO)
    - LOG_FILE: optional path; logs are written there as well as to stderr
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    enable_basic_auth: bool
    basic_auth_username: Optional[str]
    basic_auth_password: Optional[str]
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def uses_sqlite(self) -> bool:
        return self.persistence_backend == "sqlite"


def _env(environ: Mapping[str, str], name: str, default: str) -> str:
    # Set-but-empty counts as unset
    return (environ.get(name) or default).strip()


def _flag(value: str) -> bool:
    return value.lower() in _TRUE


def _origins(value: str) -> List[str]:
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


def _level(value: str) -> str:
    name = value.upper()
    return name if isinstance(logging.getLevelName(name), int) else "INFO"


# PUBLIC_INTERFACE
def get_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from os.environ (or the given mapping)."""
    env = os.environ if environ is None else environ

    backend = _env(env, "PERSISTENCE_BACKEND", "memory").lower()
    basic_auth = _flag(_env(env, "ENABLE_BASIC_AUTH", "false"))

    return Settings(
        persistence_backend=backend if backend in _BACKENDS else "memory",
        sqlite_db_path=_env(env, "SQLITE_DB_PATH", "./data/notes.db"),
        cors_allow_origins=_origins(_env(env, "CORS_ALLOW_ORIGINS", "*")),
        enable_basic_auth=basic_auth,
        basic_auth_username=env.get("BASIC_AUTH_USERNAME") if basic_auth else None,
        basic_auth_password=env.get("BASIC_AUTH_PASSWORD") if basic_auth else None,
        log_level=_level(_env(env, "LOG_LEVEL", "INFO")),
        log_file=env.get("LOG_FILE") or None,
    )
