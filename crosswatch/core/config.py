from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional


def parse_comma_list(v):
    """Parse comma-separated string into list. 'none' means empty."""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.strip().lower() == 'none':
            return []
        return [x.strip() for x in v.split(',') if x.strip() and x.strip().lower() != 'none']
    return []


class Settings(BaseSettings):
    # Cron trigger shared secret (Authorization: Bearer <secret> or ?key=<secret>)
    CRON_SECRET: Optional[str] = None

    # Key-value store (REST, bearer token)
    KV_REST_API_URL: Optional[str] = None
    KV_REST_API_TOKEN: Optional[str] = None
    DEVICE_INDEX_KEY: str = "device_index"

    # Price providers
    ALPHA_VANTAGE_KEY: Optional[str] = None
    FMP_KEY: Optional[str] = None

    # Push gateway
    PUSH_API_URL: str = "https://exp.host/--/api/v2/push/send"

    # App Settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    API_PORT: int = 10002
    HTTP_TIMEOUT: float = 15.0

    # Signal pipeline
    FETCH_BATCH_SIZE: int = 5
    SIGNAL_LOOKBACK_DAYS: int = 3
    SIGNAL_HISTORY_RANGE: str = "1mo"
    HISTORY_DEFAULT_RANGE: str = "3mo"
    QUOTE_FALLBACK_LIMIT: int = 5

    @field_validator('FETCH_BATCH_SIZE', 'QUOTE_FALLBACK_LIMIT', 'API_PORT', mode='before')
    @classmethod
    def parse_optional_int(cls, v, info):
        if v is None or v == '':
            defaults = {'FETCH_BATCH_SIZE': 5, 'QUOTE_FALLBACK_LIMIT': 5, 'API_PORT': 10002}
            return defaults.get(info.field_name)
        return int(v)

    @property
    def kv_configured(self) -> bool:
        return bool(self.KV_REST_API_URL and self.KV_REST_API_TOKEN)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
