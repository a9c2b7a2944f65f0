"""Runtime settings loaded from the environment (``LMS_`` prefix) or ``.env``."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = "sqlite:///./school_lms.db"
    # echo=False to avoid noisy logs; toggle for debugging
    sql_echo: bool = False
    secret_key: str = "CHANGE_ME_TO_A_RANDOM_SECRET"
    log_level: str = "INFO"

    items_per_page: int = 10

    # Development server (python -m school_lms)
    host: str = "127.0.0.1"
    port: int = 8000
    reload: bool = False

    # Seed a default admin account on startup if none exists
    seed_admin: bool = True
    admin_email: str = "admin@example.com"
    admin_password: str = "admin123"


settings = Settings()
