import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "review")

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    # Name-match thresholds (percent) shared by bank and KYC cross-validation
    NAME_MATCH_BLOCK_THRESHOLD: int = int(os.getenv("NAME_MATCH_BLOCK_THRESHOLD", "70"))
    NAME_MATCH_FLAG_THRESHOLD: int = int(os.getenv("NAME_MATCH_FLAG_THRESHOLD", "80"))

    MIN_REFERENCES: int = int(os.getenv("MIN_REFERENCES", "2"))
    MAX_REFERENCES: int = int(os.getenv("MAX_REFERENCES", "5"))
    MIN_PARTNERS: int = int(os.getenv("MIN_PARTNERS", "2"))
    MAX_PARTNERS: int = int(os.getenv("MAX_PARTNERS", "10"))

    # Aadhaar OTP reference ids are single use and expire with the provider OTP
    OTP_REFERENCE_TTL_SEC: int = int(os.getenv("OTP_REFERENCE_TTL_SEC", "600"))

    # Verification provider (Sandbox)
    SANDBOX_BASE_URL: str = os.getenv("SANDBOX_BASE_URL", "https://api.sandbox.co.in").rstrip("/")
    SANDBOX_API_KEY: str = os.getenv("SANDBOX_API_KEY", "")
    SANDBOX_API_SECRET: str = os.getenv("SANDBOX_API_SECRET", "")
    SANDBOX_TIMEOUT_SEC: float = float(os.getenv("SANDBOX_TIMEOUT_SEC", "30"))
    # Provider tokens live 24h; treat them as valid for 23h, minus the refresh margin
    SANDBOX_TOKEN_TTL_SEC: int = int(os.getenv("SANDBOX_TOKEN_TTL_SEC", str(23 * 60 * 60)))
    SANDBOX_TOKEN_REFRESH_MARGIN_SEC: int = int(os.getenv("SANDBOX_TOKEN_REFRESH_MARGIN_SEC", "300"))

    # Manual-review notifications for flagged decisions. Empty URL disables delivery.
    REVIEW_WEBHOOK_URL: str = os.getenv("REVIEW_WEBHOOK_URL", "")
    REVIEW_WEBHOOK_TIMEOUT_SEC: int = int(os.getenv("REVIEW_WEBHOOK_TIMEOUT_SEC", "5"))
    REVIEW_MAX_RETRIES: int = int(os.getenv("REVIEW_MAX_RETRIES", "5"))

    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
