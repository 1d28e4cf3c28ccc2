"""Configuration: Frozen Config with an auto-resolved API token."""

from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv

from hfserverless._http import DEFAULT_API_URL, DEFAULT_MODELS_URL
from hfserverless.errors import ConfigurationError

load_dotenv()

# Checked in order when no token is passed explicitly.
_TOKEN_ENV_VARS: tuple[str, ...] = ("HF_TOKEN", "HUGGINGFACE_API_TOKEN")


@dataclass(frozen=True)
class Config:
    """Immutable configuration for an InferenceClient.

    The API token is auto-resolved from standard environment variables.

    Example:
        config = Config()  # token read from HF_TOKEN
        config = Config(api_token="hf_...", pool_size=8)
    """

    #: Auto-resolved from ``HF_TOKEN`` or ``HUGGINGFACE_API_TOKEN`` when *None*.
    api_token: str | None = None
    #: Model ids are appended to this prefix.
    api_url: str = DEFAULT_API_URL
    models_url: str = DEFAULT_MODELS_URL
    #: Maximum number of pooled operations running at once.
    pool_size: int = 4
    #: Passed to the default transport; the core never enforces timeouts itself.
    timeout_s: float = 120.0

    def __post_init__(self) -> None:
        """Auto-resolve the token and validate configuration."""
        if self.pool_size < 1:
            raise ConfigurationError(
                f"pool_size must be ≥ 1, got {self.pool_size}",
                hint="This controls how many pooled calls run in parallel.",
            )
        if self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="Pass timeout_s=120.0 or another positive number of seconds.",
            )
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"api_url must be an http(s) URL, got {self.api_url!r}",
            )
        if not self.api_url.endswith("/"):
            object.__setattr__(self, "api_url", self.api_url + "/")

        if self.api_token is None:
            for env_var in _TOKEN_ENV_VARS:
                resolved = os.environ.get(env_var)
                if resolved:
                    object.__setattr__(self, "api_token", resolved)
                    break

        if not self.api_token:
            raise ConfigurationError(
                "API token required",
                hint=f"Set {_TOKEN_ENV_VARS[0]} environment variable or pass api_token=...",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(api_url={self.api_url!r}, "
            f"api_token={'[REDACTED]' if self.api_token else None}, "
            f"pool_size={self.pool_size}, timeout_s={self.timeout_s})"
        )

    __repr__ = __str__
