# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

DEFAULT_USERS_PATH = Path("data") / "users.db"

ANONYMOUS_LIFESPAN = 3600 * 12
AUTHENTICATED_LIFESPAN = 3600 * 24 * 7  # 1 week

_TRUE = {"1", "true", "yes", "y"}

# Settings field -> environment variable
ENV_VARS = {
    "users_path": "SHIM_USERS_PATH",
    "anonymous_lifespan": "SHIM_ANON_LIFESPAN",
    "authenticated_lifespan": "SHIM_AUTH_LIFESPAN",
    "sweep_interval": "SHIM_SWEEP_INTERVAL",
    "cookie_secure": "SHIM_COOKIE_SECURE",
    "secret_key": "SHIM_SECRET_KEY",
    "trust_proxy": "SHIM_TRUST_PROXY",
    "debug": "SHIM_DEBUG",
    "login_path": "SHIM_LOGIN_PATH",
    "default_redirect": "SHIM_DEFAULT_REDIRECT",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE


@dataclass(frozen=True)
class Settings:
    users_path: Path = DEFAULT_USERS_PATH
    anonymous_lifespan: int = ANONYMOUS_LIFESPAN
    authenticated_lifespan: int = AUTHENTICATED_LIFESPAN
    sweep_interval: int = 60
    cookie_secure: bool = False
    # Sessions live in memory only, so a per-process key loses nothing on restart.
    secret_key: str = field(default_factory=lambda: secrets.token_urlsafe(32), repr=False)
    trust_proxy: bool = False
    debug: bool = False
    login_path: str = "/login/"
    default_redirect: str = "/admin/"

    def __post_init__(self) -> None:
        object.__setattr__(self, "users_path", Path(self.users_path))
        for name in ("anonymous_lifespan", "authenticated_lifespan", "sweep_interval"):
            value = int(getattr(self, name))
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
            object.__setattr__(self, name, value)
        for name in ("cookie_secure", "trust_proxy", "debug"):
            object.__setattr__(self, name, _as_bool(getattr(self, name)))
        if not self.secret_key:
            raise ValueError("secret_key must not be empty")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(unknown)}")
        return cls(**dict(data))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from an optional YAML file (SHIM_CONFIG) plus SHIM_* variables.

        Environment variables win over the file.
        """
        env = os.environ if environ is None else environ
        data: Dict[str, Any] = {}

        config_path = env.get("SHIM_CONFIG")
        if config_path:
            path = Path(config_path)
            raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if not isinstance(raw, dict):
                raise ValueError(f"{path}: expected a mapping at top level")
            data.update(raw)

        for name, var in ENV_VARS.items():
            value = env.get(var)
            if value is not None and value.strip() != "":
                data[name] = value.strip()

        return cls.from_mapping(data)
