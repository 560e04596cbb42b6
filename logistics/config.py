from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # fields read from the environment or .env
    secret_key: str = "dev_secret"
    access_token_expire_minutes: int = 120

    database_url: str = "sqlite:///./logistics.db"

    log_level: str = "INFO"
    log_json: bool = True

    # callers always get the low_stock flag; this only controls the alert to officers
    low_stock_notifications: bool = True
    completion_remark: str = "Completed by Logistics Officer"
    notification_page_size: int = 50

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
