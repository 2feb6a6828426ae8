import json
import re
from typing import Annotated, Any

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate a plain comma/space separated list.
    if raw.startswith(("[", '"', "'")):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()
            if not raw or raw == "[]":
                return []
            if raw == "*":
                return ["*"]

    parts = [p for p in re.split(r"[,\s]+", raw) if p]
    origins: list[str] = []
    for part in parts:
        if part == "*":
            return ["*"]
        if "://" in part:
            origins.append(part)
            continue
        # Bare host: browsers send the scheme in Origin, so allow both.
        origins.append(f"http://{part}")
        origins.append(f"https://{part}")

    seen: set[str] = set()
    result: list[str] = []
    for origin in origins:
        if origin in seen:
            continue
        seen.add(origin)
        result.append(origin)
    return result


class Settings(BaseSettings):
    """Relay settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - exposes exception messages in 500 responses
    debug: bool = False

    # Proxy endpoint path (an alias is always mounted at /proxy)
    proxy_path: str = "/api/proxy"

    # Admission control (fixed window, per client and per client+domain)
    rate_limit_window_ms: int = 60000
    rate_limit_client_max: int = 30
    rate_limit_domain_max: int = 10
    rate_limit_sweep_probability: float = 0.01
    # Use the first X-Forwarded-For hop as client identity (behind a proxy)
    trust_forwarded_for: bool = False

    # Response cache
    cache_ttl_seconds: float = 30.0
    cache_max_entries: int = 100

    # Upstream fetch
    upstream_timeout: float = 15.0  # Total bound on one upstream exchange
    upstream_max_redirects: int = 5
    upstream_default_retry_after: int = 60  # Used when Retry-After is missing

    # HTTP client connection pool settings
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator(
        "rate_limit_window_ms",
        "rate_limit_client_max",
        "rate_limit_domain_max",
        "cache_max_entries",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate counters and windows are positive."""
        if v < 1:
            raise ValueError("Rate limit and cache size values must be at least 1")
        return v

    @field_validator("rate_limit_window_ms")
    @classmethod
    def validate_whole_seconds(cls, v: int) -> int:
        """Retry-After is reported in whole seconds."""
        if v % 1000 != 0:
            raise ValueError("rate_limit_window_ms must be a multiple of 1000")
        return v

    @field_validator("cache_ttl_seconds", "upstream_timeout")
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("Durations must be positive")
        return v

    @field_validator("rate_limit_sweep_probability")
    @classmethod
    def validate_probability(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("rate_limit_sweep_probability must be within [0, 1]")
        return v

    @field_validator("upstream_max_redirects", "upstream_default_retry_after")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @model_validator(mode="after")
    def validate_domain_below_client(self) -> "Settings":
        """A single origin must not be able to take a client's whole budget."""
        if self.rate_limit_domain_max >= self.rate_limit_client_max:
            raise ValueError(
                "rate_limit_domain_max must be lower than rate_limit_client_max"
            )
        return self

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
