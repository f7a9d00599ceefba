"""Configuration for restgate components."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class RestgateConfig(BaseSettings):
    logging: bool = False
    retries: int = 0
    retry_delay_seconds: float = 5.0
    docs_path: str = "/docs"

    request_timeout_seconds: float = 30.0
    response_timeout_seconds: float = 30.0

    host: str = "127.0.0.1"
    port: int = 8080

    model_config = SettingsConfigDict(env_prefix="restgate_")

    def event_key(self, api_name: str, endpoint: str) -> str:
        return f"{api_name}.{endpoint}"
