from __future__ import annotations

import os
from functools import lru_cache


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Settings:
    """Application configuration exposed via lazy singleton."""

    def __init__(self) -> None:
        default_db = "sqlite:///./dev.db"
        self.database_url = os.getenv("DATABASE_URL", default_db)
        self.app_name = os.getenv("RELAY_APP_NAME", "Anonymous Counsel Relay")
        self.log_level = os.getenv("RELAY_LOG_LEVEL", "INFO")
        self.cors_origins = [
            origin.strip() for origin in os.getenv("RELAY_CORS_ORIGINS", "*").split(",") if origin.strip()
        ]

        self.typing_timeout_seconds = _env_float("RELAY_TYPING_TIMEOUT_SECONDS", 8.0)
        self.attachment_timeout_seconds = _env_float("RELAY_ATTACHMENT_TIMEOUT_SECONDS", 15.0)
        self.outbound_queue_size = int(os.getenv("RELAY_OUTBOUND_QUEUE_SIZE", "256"))

        self.cloudinary_cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
        self.cloudinary_api_key = os.getenv("CLOUDINARY_API_KEY")
        self.cloudinary_api_secret = os.getenv("CLOUDINARY_API_SECRET")
        self.cloudinary_folder = os.getenv("CLOUDINARY_FOLDER", "chat_images")

        self.smtp_host = os.getenv("SMTP_HOST")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.email_user = os.getenv("EMAIL_USER")
        self.email_pass = os.getenv("EMAIL_PASS")
        self.notification_email = os.getenv("NOTIFICATION_EMAIL")

    @property
    def cloudinary_configured(self) -> bool:
        return bool(self.cloudinary_cloud_name and self.cloudinary_api_key and self.cloudinary_api_secret)

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host and self.notification_email)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
