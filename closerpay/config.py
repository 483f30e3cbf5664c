from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    env: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./closerpay.db"

    # admin endpoints (X-API-KEY header)
    service_api_key: str = "change-me"

    # inbound Whop webhooks; the app_settings row takes precedence over these
    whop_webhook_secret: Optional[str] = None
    webhook_secret_headers: List[str] = ["x-webhook-secret", "x-whop-webhook-secret"]
    webhook_tolerance_seconds: int = 300

    # outbound automation webhook (Zapier)
    zapier_webhook_url: Optional[str] = None
    zapier_timeout_seconds: float = 8.0
    zapier_max_attempts: int = 2

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

settings = Settings()
