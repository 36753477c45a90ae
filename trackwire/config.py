from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from trackwire.errors import ConfigurationError

_API_KEY_FORMAT = re.compile(r"^[A-Za-z0-9_-]{16,128}$")

TrackMode = Literal["request", "batch"]


class TrackSettings(BaseSettings):
    tracking_url: str = "http://localhost:3000"
    api_key: str = ""
    allowed_api_keys: list[str] | None = None
    """Optional allow-list. When set, ``api_key`` must be one of these."""
    mode: TrackMode = "request"
    send_interval_ms: int = Field(default=2000, gt=0)
    """Batch flush period; only used when ``mode == "batch"``."""
    policy_cache_ttl_s: float = Field(default=0.0, ge=0)
    """Staleness window for per-path policies. 0 fetches fresh on every request."""
    context_max_age_s: float = Field(default=300.0, gt=0)
    sweep_interval_s: float = Field(default=30.0, gt=0)
    max_body_bytes: int = Field(default=65_536, ge=0)
    capture_own_logs: bool = False
    request_timeout_s: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="TRACKWIRE_",
        env_nested_delimiter="__",
        validate_default=True,
        extra="ignore",
    )

    @field_validator("tracking_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned.startswith(("http://", "https://")):
            raise ValueError("tracking_url must be an http(s) URL")
        return cleaned

    @field_validator("api_key")
    @classmethod
    def _validate_api_key_format(cls, value: str) -> str:
        if not value:
            raise ValueError("API key required")
        if not _API_KEY_FORMAT.match(value):
            raise ValueError("Invalid API key format")
        return value

    @model_validator(mode="after")
    def _validate_allow_list(self) -> TrackSettings:
        if self.allowed_api_keys is not None and self.api_key not in self.allowed_api_keys:
            raise ValueError("Invalid API key")
        return self

    @property
    def track_endpoint(self) -> str:
        return f"{self.tracking_url}/api/track"

    @property
    def send_interval_s(self) -> float:
        return self.send_interval_ms / 1000

    def redacted(self) -> dict[str, Any]:
        data = self.model_dump()
        data["api_key"] = f"{self.api_key[:4]}****" if self.api_key else ""
        data.pop("allowed_api_keys", None)
        return data


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    prefix = "TRACKWIRE_"
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_settings(**options: Any) -> TrackSettings:
    """Build settings from keyword options, turning validation failures into
    :class:`ConfigurationError` so callers see a single fatal error type."""
    try:
        return TrackSettings(**options)
    except ValidationError as exc:
        raise ConfigurationError(_summarize(exc)) from exc


def load_config(path: str | Path = "config/trackwire.yaml") -> TrackSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ConfigurationError("config file must contain a top-level mapping")

    raw = loaded.get("trackwire", loaded)
    if not isinstance(raw, dict):
        raise ConfigurationError("trackwire config section must be a mapping")

    return load_settings(**_apply_env_overrides(raw))


def _summarize(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error["loc"]) or "settings"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


__all__ = ["TrackMode", "TrackSettings", "load_config", "load_settings"]
