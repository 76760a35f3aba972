from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./bracketeer.db"

    # Persistence calls: attempts, backoff base (seconds) and per-call timeout (seconds)
    PERSISTENCE_RETRY_ATTEMPTS: int = 3
    PERSISTENCE_RETRY_BASE_DELAY: float = 0.5
    PERSISTENCE_TIMEOUT: float = 15.0

    # Upper bound on bye-resolution passes; raise it for very deep brackets
    BYE_RESOLUTION_MAX_PASSES: int = 6

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
