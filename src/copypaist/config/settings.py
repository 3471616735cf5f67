"""
config/settings.py — copy-paist Runtime Settings

Merges config.yaml (defaults/structure) with environment variables and .env.
Pydantic-powered — all fields are validated and typed.

  - ServerConfig points the socket.io channel at API_URL when no explicit
    socket_url is configured
  - SessionConfig bounds the readiness wait, the per-round wait and the
    number of rounds a single session may take
  - validate_all() performs cross-field startup validation and raises
    ConfigError listing every problem found
  - load_settings() respects COPYPAIST_CONFIG as a fallback when no
    explicit config_path argument is given
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_HTTP_SCHEMES = {"http", "https"}
_WS_SCHEMES = {"ws", "wss"}

_DEFAULT_IGNORED_PATHS = [
    "**/node_modules/**",
    "**/dist/**",
    "**/.git/**",
    "**/bin/**",
    "**/obj/**",
    "**/build/**",
    "**/.idea/**",
    "**/.vscode/**",
    "**/vendor/**",
    "**/__pycache__/**",
    "**/.venv/**",
    "**/.DS_Store",
    "**/*.bak",
]


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class ServerConfig(BaseModel):
    api_url: str = "http://localhost:3001"
    socket_url: str = ""
    request_timeout_seconds: float = 30.0

    @field_validator("api_url")
    @classmethod
    def _valid_api_url(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in _HTTP_SCHEMES or not parts.netloc:
            raise ValueError(
                f"server.api_url must be an http(s) URL, got '{v}'"
            )
        return v.rstrip("/")

    @field_validator("socket_url")
    @classmethod
    def _valid_socket_url(cls, v: str) -> str:
        if v and urlsplit(v).scheme not in _HTTP_SCHEMES | _WS_SCHEMES:
            raise ValueError(f"server.socket_url must be an http(s) or ws(s) URL, got '{v}'")
        return v.rstrip("/")

    @field_validator("request_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("server.request_timeout_seconds must be > 0")
        return v

    @property
    def channel_url(self) -> str:
        """socket.io server URL of the streaming channel; the API host unless set."""
        return self.socket_url or self.api_url


class SessionConfig(BaseModel):
    model: str = "deepseek-chat"
    ready_timeout_seconds: float = 15.0
    round_timeout_seconds: float = 300.0
    max_rounds: int = 25

    @field_validator("ready_timeout_seconds", "round_timeout_seconds")
    @classmethod
    def _positive_wait(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("session timeouts must be > 0")
        return v

    @field_validator("max_rounds")
    @classmethod
    def _positive_rounds(cls, v: int) -> int:
        if v < 1:
            raise ValueError("session.max_rounds must be >= 1")
        return v


class ApplyConfig(BaseModel):
    backup_suffix: str = ".bak"
    staged: bool = False

    @field_validator("backup_suffix")
    @classmethod
    def _valid_suffix(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v:
            raise ValueError(
                "apply.backup_suffix must be a non-empty file suffix such as '.bak'"
            )
        return v


class ProjectConfig(BaseModel):
    ignored_paths: list[str] = Field(default_factory=lambda: list(_DEFAULT_IGNORED_PATHS))


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "~/.copypaist/logs"
    max_file_size_mb: int = 10
    backup_count: int = 3
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    copy-paist runtime settings.

    Priority (highest to lowest):
      1. Environment variables (SESSION__MAX_ROUNDS=7, API_URL=...)
      2. .env file
      3. config.yaml sections, passed in by load_settings()
      4. Field defaults

    Sections merge key by key, so SESSION__MODEL overrides session.model
    and leaves the rest of the session section from config.yaml intact.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # config.yaml arrives as init kwargs; the environment must beat it.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    # -- Flat overrides from the environment ---------------------------------
    api_url: Optional[str] = Field(default=None, alias="API_URL")

    # -- Structured config (from config.yaml) --------------------------------
    server: ServerConfig = Field(default_factory=ServerConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    apply: ApplyConfig = Field(default_factory=ApplyConfig)
    project: ProjectConfig = Field(default_factory=ProjectConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("server", mode="before")
    @classmethod
    def _coerce_server(cls, v: Any) -> Any:
        return ServerConfig(**v) if isinstance(v, dict) else v

    @field_validator("session", mode="before")
    @classmethod
    def _coerce_session(cls, v: Any) -> Any:
        return SessionConfig(**v) if isinstance(v, dict) else v

    @field_validator("apply", mode="before")
    @classmethod
    def _coerce_apply(cls, v: Any) -> Any:
        return ApplyConfig(**v) if isinstance(v, dict) else v

    @field_validator("project", mode="before")
    @classmethod
    def _coerce_project(cls, v: Any) -> Any:
        return ProjectConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def base_url(self) -> str:
        """HTTP base URL; API_URL from the environment wins over config.yaml."""
        return (self.api_url or self.server.api_url).rstrip("/")

    @property
    def channel_url(self) -> str:
        if self.api_url and not self.server.socket_url:
            return self.base_url
        return self.server.channel_url

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir).expanduser()

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        catches what they can't see, such as an invalid API_URL coming from
        the environment or timeouts that can never be satisfied.
        """
        errors: list[str] = []

        if self.api_url is not None:
            parts = urlsplit(self.api_url)
            if parts.scheme not in _HTTP_SCHEMES or not parts.netloc:
                errors.append(
                    f"API_URL '{self.api_url}' must be an http(s) URL such as "
                    f"http://localhost:3001."
                )

        if self.session.round_timeout_seconds < self.server.request_timeout_seconds:
            errors.append(
                "session.round_timeout_seconds must be at least "
                "server.request_timeout_seconds, otherwise every round can "
                "time out while its request is still in flight."
            )

        for pattern in self.project.ignored_paths:
            if not pattern.strip():
                errors.append("project.ignored_paths contains an empty pattern.")
                break

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\ncopy-paist startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader
# ─────────────────────────────────────────────────────────────────────────────

_KNOWN_SECTIONS = {"server", "session", "apply", "project", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. COPYPAIST_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("COPYPAIST_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    resolved_path = _resolve_config_path(config_path)
    yaml_data = _load_yaml(resolved_path)
    if not isinstance(yaml_data, dict):
        raise ValueError(f"{resolved_path} must contain a mapping at the top level")

    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
    return Settings(**init_kwargs)
