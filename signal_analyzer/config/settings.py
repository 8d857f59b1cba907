from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class InsightBackend(str, Enum):
    RULE = "rule"
    OPENAI = "openai"


class WebhookConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    secret: SecretStr | None = None
    dedup_size: int = 10000


class FeedConfig(BaseModel):
    """REST endpoints that serve raw signals and historical bars."""

    base_url: str = "http://localhost:5000"
    tradingview_path: str = "/api/webhooks/tradingview"
    internal_path: str = "/api/webhooks/signals"
    historical_path: str = "/api/signals-analyzer/historical-data"
    timeout_seconds: float = 10.0


class SheetSource(BaseModel):
    """One Google Sheets gviz export feeding signals for a provider."""

    url: str
    market_type: str = "crypto"
    provider: str = "Unknown"


class SheetsConfig(BaseModel):
    sources: list[SheetSource] = Field(default_factory=list)
    # Write-back of analysis results through the Sheets values API
    api_base: str = "https://sheets.googleapis.com/v4"
    access_token: SecretStr | None = None
    timeout_seconds: float = 15.0


class StorageConfig(BaseModel):
    db_path: str = "data/signals.db"
    historical_dir: str = "data/historical"


class AnalysisConfig(BaseModel):
    expiry_hours: float | None = None  # None disables the Expired outcome for live signals
    default_market_type: str = "crypto"
    default_provider: str = "Unknown"


class InsightsConfig(BaseModel):
    backend: InsightBackend = InsightBackend.RULE
    model: str = "gpt-4o-mini"
    api_base: str = "https://api.openai.com/v1"
    timeout_seconds: float = 30.0
    max_tokens: int = 400
    cache_size: int = 256


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ANALYZER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Secrets - loaded from env vars only, never from YAML
    openai_api_key: SecretStr | None = None

    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    feeds: FeedConfig = Field(default_factory=FeedConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    insights: InsightsConfig = Field(default_factory=InsightsConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from YAML file, with env vars taking precedence."""
        yaml_config: dict[str, Any] = {}
        if path.exists():
            with open(path) as f:
                yaml_config = yaml.safe_load(f) or {}
        yaml_config.pop("openai_api_key", None)
        if isinstance(yaml_config.get("sheets"), dict):
            yaml_config["sheets"].pop("access_token", None)
        return cls(**yaml_config)


@lru_cache
def get_settings(config_path: str | None = None) -> Settings:
    """Get cached settings instance."""
    if config_path:
        return Settings.from_yaml(Path(config_path))

    # Try default locations
    for default_path in [Path("config/config.yaml"), Path("config.yaml")]:
        if default_path.exists():
            return Settings.from_yaml(default_path)

    return Settings()
