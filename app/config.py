from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    APP_NAME: str = "Relate15 API"
    CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Matchmaking settings
    MATCH_MAX_RETRIES: int = 3
    # history: never re-match a prior partner
    # cooldown: only skip partners matched within MATCH_COOLDOWN_DAYS
    # none: prior partners are eligible again
    MATCH_EXCLUSION_POLICY: str = "history"
    MATCH_COOLDOWN_DAYS: int = 30
    MATCH_HISTORY_LIMIT: int = 10

    # Calendar: video call links are VIDEO_BASE_URL/<random id>
    VIDEO_BASE_URL: str = "https://meet.relate15.app"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
