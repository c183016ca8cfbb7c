"""
Configuration for the shopfloor service.

Settings are read once from the environment (after loading a local .env file)
and passed explicitly to the components that need them.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .errors import UpstreamConfigMissing

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class Settings(BaseModel):
    """Immutable runtime configuration."""

    model_config = ConfigDict(frozen=True)

    openai_api_key: Optional[str] = Field(default=None, description="Generation service credential")
    openai_model: str = Field(default=DEFAULT_OPENAI_MODEL)
    openai_base_url: Optional[str] = None
    llm_timeout_seconds: Optional[float] = Field(
        default=None, description="None means the model call is never timed out"
    )
    rest_url: Optional[str] = Field(default=None, description="Base URL of the inventory REST backend")
    rest_anon_key: Optional[str] = None
    rest_timeout_seconds: float = 10.0
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def uses_rest_backend(self) -> bool:
        return bool(self.rest_url)

    def require_openai_api_key(self) -> str:
        """
        Return the generation service key.

        Raises:
            UpstreamConfigMissing: if the key is missing or blank.
        """
        key = (self.openai_api_key or "").strip()
        if not key:
            raise UpstreamConfigMissing(
                "OpenAI API key is not configured. Please set OPENAI_API_KEY."
            )
        return key


def _optional_float(name: str) -> Optional[float]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    return float(raw)


def load_settings() -> Settings:
    """Build Settings from the process environment."""
    load_dotenv()

    origins_env = os.environ.get("BACKEND_CORS_ORIGINS", "")
    origins = [o.strip() for o in origins_env.split(",") if o.strip()] or ["*"]

    rest_timeout = _optional_float("SHOP_REST_TIMEOUT_SECONDS")

    return Settings(
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        openai_model=os.environ.get("OPENAI_MODEL", "").strip() or DEFAULT_OPENAI_MODEL,
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        llm_timeout_seconds=_optional_float("LLM_TIMEOUT_SECONDS"),
        rest_url=os.environ.get("SHOP_REST_URL") or None,
        rest_anon_key=os.environ.get("SHOP_REST_ANON_KEY") or None,
        rest_timeout_seconds=rest_timeout if rest_timeout is not None else 10.0,
        cors_origins=origins,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
