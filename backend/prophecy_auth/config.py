from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"
    RP_ID: str = "localhost"
    RP_NAME: str = "Prophezeiung"
    WEBAUTHN_ORIGIN: str = "http://localhost:3001"
    ALLOWED_ORIGINS: str = "http://localhost:3001"
    JWT_SECRET: str
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # "memory" (single process) or "redis"
    CHALLENGE_BACKEND: str = "memory"
    CHALLENGE_TTL_SECONDS: int = 300
    CHALLENGE_SWEEP_SECONDS: int = 60

    SESSION_MAX_AGE: int = 60 * 60 * 24 * 7
    PENDING_COOKIE_MAX_AGE: int = 60 * 60
    BCRYPT_ROUNDS: int = 12
    ADMIN_PW: Optional[str] = None

    @property
    def allowed_origins_list(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def webauthn_origins_list(self) -> List[str]:
        return [o.strip() for o in self.WEBAUTHN_ORIGIN.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

settings = Settings()
