from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SUBMIT_DELAY_MS: int = 1000  # stand-in for the backend round trip
    REDIRECT_DELAY_MS: int = 3000  # success screen shown before going home
    HOME_ROUTE: str = "/"
    SESSION_TTL_SECONDS: int = 1800  # idle sessions are dropped after this
    MAX_SESSIONS: int = 1000
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
