import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    database_url: str = os.getenv(
        "DATABASE_URL",
        "sqlite+aiosqlite:///./logitrack.db"
    )
    database_echo: bool = os.getenv("DATABASE_ECHO", "False").lower() == "true"

    # JWT Settings
    jwt_secret: str = os.getenv("JWT_SECRET", "YourVerySecretKeyThatIsAtLeast32CharactersLong")
    jwt_lifetime_seconds: int = int(os.getenv("JWT_LIFETIME_SECONDS", str(24 * 60 * 60)))

    # Cache Settings (seconds)
    cache_list_ttl: int = int(os.getenv("CACHE_LIST_TTL_SECONDS", "60"))
    cache_detail_ttl: int = int(os.getenv("CACHE_DETAIL_TTL_SECONDS", "300"))

    app_env: str = os.getenv("APP_ENV", "Development")
    app_version: str = "1.0.0"

    log_level: str = os.getenv("LOG_LEVEL", "info")
    log_json: bool = os.getenv("LOG_JSON", "False").lower() == "true"


settings = Settings()
