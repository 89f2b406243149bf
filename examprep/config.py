"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str
    EXAM_DURATION_SECONDS: int
    PRACTICE_DURATION_SECONDS: int
    DEFAULT_EXAM_LIMIT: int
    DEFAULT_PRACTICE_LIMIT: int
    MAX_QUESTION_LIMIT: int
    MAX_UPLOAD_BYTES: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'examprep.db'}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "168"))  # 7 days
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        # Timed sessions: 2 hours for exams, 1 hour for practice
        self.EXAM_DURATION_SECONDS = int(os.getenv("EXAM_DURATION_SECONDS", "7200"))
        self.PRACTICE_DURATION_SECONDS = int(os.getenv("PRACTICE_DURATION_SECONDS", "3600"))
        self.DEFAULT_EXAM_LIMIT = int(os.getenv("DEFAULT_EXAM_LIMIT", "40"))
        self.DEFAULT_PRACTICE_LIMIT = int(os.getenv("DEFAULT_PRACTICE_LIMIT", "20"))
        self.MAX_QUESTION_LIMIT = int(os.getenv("MAX_QUESTION_LIMIT", "200"))
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.EXAM_DURATION_SECONDS <= 0 or self.PRACTICE_DURATION_SECONDS <= 0:
            raise RuntimeError("session durations must be positive")
        if self.DEFAULT_EXAM_LIMIT > self.MAX_QUESTION_LIMIT or self.DEFAULT_PRACTICE_LIMIT > self.MAX_QUESTION_LIMIT:
            raise RuntimeError("default question limits must not exceed MAX_QUESTION_LIMIT")

    def duration_for(self, mode: str) -> int:
        """Session length in seconds for `mode` (`exam` or `practice`)."""
        if mode == "practice":
            return self.PRACTICE_DURATION_SECONDS
        return self.EXAM_DURATION_SECONDS

    def default_limit_for(self, mode: str) -> int:
        if mode == "practice":
            return self.DEFAULT_PRACTICE_LIMIT
        return self.DEFAULT_EXAM_LIMIT


settings = Settings()
