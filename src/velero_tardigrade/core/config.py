"""Configuration management for velero-tardigrade."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_service_name: str = "velero-tardigrade"

    # Bytes read from a source stream per upload write
    upload_chunk_size: int = 1024 * 1024

    model_config = {
        "env_prefix": "VELERO_TARDIGRADE_",
        "case_sensitive": False,
    }


settings = Settings()
