"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    SQL_ECHO: bool
    LOG_LEVEL: str
    MAX_UPLOAD_BYTES: int
    MAX_TEXT_ANSWER_LENGTH: int
    IMPORT_MAX_ATTEMPTS: int
    RETRY_BACKOFF_SECONDS: float
    ALLOW_DEV_CORS: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'quizcore.db'}")
        self.SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(1024 * 1024)))  # 1 MB default
        self.MAX_TEXT_ANSWER_LENGTH = int(os.getenv("MAX_TEXT_ANSWER_LENGTH", "500"))
        self.IMPORT_MAX_ATTEMPTS = int(os.getenv("IMPORT_MAX_ATTEMPTS", "3"))
        self.RETRY_BACKOFF_SECONDS = float(os.getenv("RETRY_BACKOFF_SECONDS", "0.1"))
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self._validate()

    def _validate(self):
        if self.IMPORT_MAX_ATTEMPTS < 1:
            raise RuntimeError("IMPORT_MAX_ATTEMPTS must be at least 1")
        if self.MAX_TEXT_ANSWER_LENGTH < 1:
            raise RuntimeError("MAX_TEXT_ANSWER_LENGTH must be positive")
        if self.RETRY_BACKOFF_SECONDS < 0:
            raise RuntimeError("RETRY_BACKOFF_SECONDS cannot be negative")
        if self.ENV != "dev" and self.DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
            raise RuntimeError("an in-memory DATABASE_URL is only allowed in the dev environment")


settings = Settings()
