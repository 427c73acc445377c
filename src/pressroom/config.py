"""Unified configuration loaded from .pressroom.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".pressroom.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
    Path.home() / ".config" / "pressroom",
]

PUBLICATION_COLLECTION = "site.standard.publication"
DOCUMENT_COLLECTION = "site.standard.document"


class SiteConfig(BaseModel):
    """[site] section."""

    title: str = "Pressroom"
    description: str = "A small blog"
    author: str = ""
    base_url: str = "http://localhost:8000"
    posts_dir: str = "content/posts"
    public_dir: str = "public"
    language: str = "en-us"
    feed_limit: int = 20


class BuildConfig(BaseModel):
    """[build] section."""

    output_dir: str = "_site"
    strict: bool = False
    max_workers: int = 8
    route_timeout: float = 30.0
    clean: bool = True


class AtProtoConfig(BaseModel):
    """[atproto] section: identity and mirror settings."""

    did: str = ""
    handle: str = ""
    app_password: str = ""
    service: str = "https://bsky.social"
    mapping_file: str = ".pressroom-mappings.json"
    deadline: float | None = None
    request_timeout: float = 20.0

    @property
    def is_configured(self) -> bool:
        return bool(self.did and self.handle and self.app_password)

    @property
    def publication_uri(self) -> str:
        """AT-URI of the site-level publication record, or "" without a DID."""
        if not self.did:
            return ""
        return f"at://{self.did}/{PUBLICATION_COLLECTION}/self"

    def document_uri(self, rkey: str) -> str:
        return f"at://{self.did}/{DOCUMENT_COLLECTION}/{rkey}"


class PressroomConfig(BaseModel):
    """Top-level configuration model."""

    site: SiteConfig = Field(default_factory=SiteConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    atproto: AtProtoConfig = Field(default_factory=AtProtoConfig)


def _find_config_file() -> Path | None:
    for directory in CONFIG_SEARCH_PATHS:
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except (tomllib.TOMLDecodeError, OSError):
        logger.warning("Could not read config at %s, using defaults", path)
        return {}


def _apply_env_vars(config: PressroomConfig) -> PressroomConfig:
    """Overlay environment variables onto a loaded config."""
    env = os.environ
    if env.get("PUBLIC_URL"):
        config.site.base_url = env["PUBLIC_URL"]
    if env.get("POSTS_DIR"):
        config.site.posts_dir = env["POSTS_DIR"]
    if env.get("PRESSROOM_OUTPUT_DIR"):
        config.build.output_dir = env["PRESSROOM_OUTPUT_DIR"]
    if env.get("PRESSROOM_STRICT"):
        config.build.strict = env["PRESSROOM_STRICT"].lower() in ("1", "true", "yes")
    if env.get("ATPROTO_DID"):
        config.atproto.did = env["ATPROTO_DID"]
    if env.get("ATPROTO_HANDLE"):
        config.atproto.handle = env["ATPROTO_HANDLE"]
    if env.get("ATPROTO_APP_PASSWORD"):
        config.atproto.app_password = env["ATPROTO_APP_PASSWORD"]
    if env.get("ATPROTO_SERVICE"):
        config.atproto.service = env["ATPROTO_SERVICE"]
    return config


def load_config(path: Path | None = None) -> PressroomConfig:
    """Load configuration from TOML (explicit path or search paths) and env vars.

    A missing or unreadable file yields defaults; environment variables
    are applied on top either way.
    """
    config_path = path if path is not None else _find_config_file()
    data: dict[str, Any] = {}
    if config_path is not None and config_path.is_file():
        data = _read_toml(config_path)
        logger.debug("Loaded config from %s", config_path)

    try:
        config = PressroomConfig.model_validate(data)
    except ValueError:
        logger.warning("Invalid config values in %s, using defaults", config_path)
        config = PressroomConfig()
    return _apply_env_vars(config)


_CLI_FIELDS = {
    "output_dir": ("build", "output_dir"),
    "base_url": ("site", "base_url"),
    "strict": ("build", "strict"),
    "posts_dir": ("site", "posts_dir"),
    "public_dir": ("site", "public_dir"),
    "max_workers": ("build", "max_workers"),
    "route_timeout": ("build", "route_timeout"),
}


def merge_cli_overrides(config: PressroomConfig, **overrides: Any) -> PressroomConfig:
    """Return a copy of *config* with non-None CLI values applied."""
    merged = config.model_copy(deep=True)
    for name, value in overrides.items():
        if value is None:
            continue
        if name not in _CLI_FIELDS:
            raise ValueError(f"Unknown CLI override: {name!r}")
        section, field = _CLI_FIELDS[name]
        setattr(getattr(merged, section), field, value)
    return merged
