import os
from typing import List


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv("APP_ENV", "local")
        self.db_url = os.getenv("DATABASE_URL", "postgresql://localhost/dukapos")
        # Comma-separated list of allowed CORS origins for the cashier UI.
        self.cors_origins = self._split_csv(
            os.getenv("CORS_ORIGINS", "").strip(),
            default=["http://localhost:5173", "http://127.0.0.1:5173"],
        )
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"
        # "Today" on the dashboard is computed in the store's local time.
        self.store_timezone = os.getenv("STORE_TIMEZONE", "Africa/Nairobi").strip() or "Africa/Nairobi"
        self.session_days = max(1, _env_int("SESSION_DAYS", 7))
        self.receipt_prefix = os.getenv("RECEIPT_PREFIX", "RCP").strip() or "RCP"

    @property
    def is_dev(self) -> bool:
        return self.env in {"local", "dev"}


settings = Settings()
