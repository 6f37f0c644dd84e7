from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    APP_NAME: str = "SurveyClean API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    MAX_UPLOAD_MB: int = 50
    WEIGHT_TOTAL_TOLERANCE: float = 0.1
    WEIGHT_HISTORY_SIZE: int = 10
    RANDOM_SEED: int = 42
    SESSION_LIMIT: int = 100

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
