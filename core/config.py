from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ACCESS_SECRET = "change-me-access-secret"
DEFAULT_REFRESH_SECRET = "change-me-refresh-secret"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENV: str = "development"

    DATABASE_URL: str = "sqlite+aiosqlite:///./auth.db"

    # Access and refresh tokens are signed with different keys
    JWT_ACCESS_SECRET: str = DEFAULT_ACCESS_SECRET
    JWT_REFRESH_SECRET: str = DEFAULT_REFRESH_SECRET
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    REFRESH_TOKEN_PERSISTENT_EXPIRE_DAYS: int = 30
    REFRESH_COOKIE_NAME: str = "refresh_token"
    TOKEN_CLEANUP_INTERVAL_MINUTES: int = 60

    # Used to build verification links
    FRONTEND_URL: str = "http://localhost:5173"

    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: str = "noreply@example.com"
    MAIL_SERVER: str = "localhost"
    MAIL_PORT: int = 587

    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    def validate_jwt_config(self) -> None:
        """Raise if production runs with default or shared signing secrets."""
        if not self.is_production:
            return
        if self.JWT_ACCESS_SECRET in ("", DEFAULT_ACCESS_SECRET):
            raise RuntimeError("JWT_ACCESS_SECRET must be set in production")
        if self.JWT_REFRESH_SECRET in ("", DEFAULT_REFRESH_SECRET):
            raise RuntimeError("JWT_REFRESH_SECRET must be set in production")
        if self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")


settings = Settings()
