from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    EnvSettingsSource,
    JsonConfigSettingsSource,
)

DEFAULT_BATON_DIR = Path(".baton")
DEFAULT_CONFIG_PATH = DEFAULT_BATON_DIR / "config.json"


class Config(BaseSettings):
    """
    Runtime configuration loaded from environment variables, .env, and JSON.
    """

    openai_api_key: Optional[SecretStr] = Field(
        default=None, description="OpenAI API key used for LLM access."
    )
    model_name: str = Field(
        default="gpt-4o", description="Default model when neither agent nor run sets one."
    )
    litellm_use_proxy: bool = Field(
        default=False, description="Route LLM traffic through the LiteLLM proxy."
    )
    litellm_proxy_url: Optional[str] = Field(
        default=None, description="LiteLLM proxy base URL."
    )
    litellm_proxy_api_key: Optional[SecretStr] = Field(
        default=None, description="LiteLLM proxy API key."
    )
    baton_dir: Path = Field(
        default=DEFAULT_BATON_DIR, description="Root directory for runtime artifacts."
    )
    session_dir: Optional[Path] = Field(
        default=None, description="Directory for file-backed session journals."
    )
    max_turns: int = Field(
        default=50, ge=1, description="Default model invocation limit per run."
    )
    guardrail_max_retries: int = Field(
        default=2, ge=0, description="Output guardrail retries before tripping."
    )
    toon_encode_results: bool = Field(
        default=False, description="Render large structured tool results as TOON."
    )
    toon_min_chars: int = Field(
        default=256, ge=0, description="JSON length at which TOON rendering kicks in."
    )
    run_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Wall-clock limit for a whole run."
    )
    model_max_attempts: int = Field(
        default=1, ge=1, description="Attempts per model call for transient failures."
    )
    api_max_retries: int = Field(
        default=2, ge=0, description="Retries performed by the OpenAI client itself."
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="forbid"
    )

    @model_validator(mode="after")
    def _apply_defaults(self) -> "Config":
        """
        Derives default paths and checks proxy settings.

        Returns:
            The validated configuration instance.
        """
        if self.session_dir is None:
            self.session_dir = self.baton_dir / "sessions"
        elif not self.session_dir.is_absolute():
            self.session_dir = self.baton_dir / self.session_dir
        if self.litellm_use_proxy and not self.litellm_proxy_url:
            raise ValueError(
                "LiteLLM proxy URL is required when proxy mode is enabled."
            )
        return self

    @staticmethod
    def _secret_to_str(secret: Optional[SecretStr]) -> Optional[str]:
        if secret is None:
            return None
        return secret.get_secret_value()

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Loads configuration from a JSON file when present.

        Environment variables override .env values, which override JSON.

        Args:
            path: Optional override path for the JSON config file.

        Returns:
            A validated configuration object.
        """
        config_path = path or DEFAULT_CONFIG_PATH
        if not config_path.exists():
            return cls()

        json_source = JsonConfigSettingsSource(cls, json_file=config_path)
        dotenv_source = DotEnvSettingsSource(cls)
        env_source = EnvSettingsSource(cls)
        merged: dict[str, object] = {}
        merged.update(json_source())
        merged.update(dotenv_source())
        merged.update(env_source())
        return cls.model_validate(merged)

    def get_openai_api_key(self) -> Optional[str]:
        """
        Returns the OpenAI API key for runtime usage.

        Returns:
            The OpenAI API key or None if unset.
        """
        return self._secret_to_str(self.openai_api_key)

    def use_litellm_proxy(self) -> bool:
        return self.litellm_use_proxy

    def get_litellm_proxy_url(self) -> Optional[str]:
        return self.litellm_proxy_url

    def get_litellm_proxy_api_key(self) -> Optional[str]:
        return self._secret_to_str(self.litellm_proxy_api_key)

    def get_model_name(self) -> str:
        return self.model_name

    def get_session_path(self, session_id: str) -> Path:
        """
        Returns the journal path for a file-backed session.

        Args:
            session_id: Identifier of the conversation.

        Returns:
            The JSONL file path under the session directory.
        """
        if self.session_dir is None:
            raise ValueError("Session directory is not configured.")
        return self.session_dir / f"{session_id}.jsonl"
