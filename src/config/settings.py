"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration.

    Credentials for the realtime endpoint and the knowledge index are
    required; constructing Settings without them raises a ValidationError.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5050, description="Listening port for the HTTP/WebSocket server.")

    # Azure OpenAI realtime session
    azure_openai_endpoint: str = Field(description="e.g. https://<resource>.openai.azure.com")
    azure_openai_deployment: str
    azure_openai_api_key: str
    azure_openai_api_version: str = Field(default="2024-10-01-preview")

    voice: str = Field(default="alloy")
    temperature: float = Field(default=0.8, ge=0.6, le=1.2)
    system_prompt_file: str = Field(default="barista.txt")
    handshake_delay_seconds: float = Field(
        default=0.25,
        ge=0.0,
        description="Pause between the session socket opening and the session.update send.",
    )

    # Azure AI Search knowledge index
    azure_search_endpoint: str = Field(description="e.g. https://<service>.search.windows.net")
    azure_search_index: str
    azure_search_api_key: str
    azure_search_api_version: str = Field(default="2023-11-01")
    search_top: int = Field(default=5, ge=1)
    search_timeout_seconds: float = Field(default=30.0, gt=0.0)
    search_identifier_field: str = Field(default="chunk_id")
    search_title_field: str = Field(default="title")
    search_content_field: str = Field(default="chunk")

    @field_validator(
        "azure_openai_endpoint",
        "azure_openai_deployment",
        "azure_openai_api_key",
        "azure_search_endpoint",
        "azure_search_index",
        "azure_search_api_key",
    )
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @property
    def realtime_url(self) -> str:
        base = _to_ws_url(self.azure_openai_endpoint.rstrip("/"))
        return (
            f"{base}/openai/realtime"
            f"?api-version={self.azure_openai_api_version}"
            f"&deployment={self.azure_openai_deployment}"
        )


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
