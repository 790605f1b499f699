from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "Protocol Queue Backend"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/v1"

    # Database
    SQLITE_PATH: str = "database.sqlite"
    SQLITE_BUSY_TIMEOUT_MS: int = 30000
    SQLITE_CACHE_SIZE: int = 10000
    SLOW_QUERY_THRESHOLD_MS: int = 2000

    # Retry policy for locked/busy errors
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 1.0

    LOG_LEVEL: str = "INFO"

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env")

settings = Settings()
