# config.py
# ============================================================================
# LN IMAGEGEN - CONFIGURATION
# ============================================================================
# All settings come from the environment. Components take an optional
# Settings instance so a caller (or a test) can override single values.
# ============================================================================

import os

from ln_imagegen.schemas.models import Wallet


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Service configuration from environment"""

    # Pricing (satoshis)
    GENERATE_PRICE_SAT: int = int(os.getenv("GENERATE_PRICE_SAT", "1000"))
    GENERATE_MEMO_PREFIX: str = os.getenv("GENERATE_MEMO_PREFIX", "DALLE2")
    REFUND_MEMO: str = os.getenv("REFUND_MEMO", "Refund for /generate")

    # Generation provider
    GENERATE_API_URL: str = os.getenv("GENERATE_API_URL", "https://labs.openai.com/api/labs")
    GENERATE_API_KEY: str = os.getenv("GENERATE_API_KEY", "")
    GENERATE_BATCH_SIZE: int = int(os.getenv("GENERATE_BATCH_SIZE", "4"))
    GENERATE_HTTP_TIMEOUT: float = float(os.getenv("GENERATE_HTTP_TIMEOUT", "30.0"))

    # Job budget and polling
    JOB_DEADLINE_SECONDS: float = float(os.getenv("JOB_DEADLINE_SECONDS", "300"))  # 5 minutes
    POLL_BASE_INTERVAL_SECONDS: float = float(os.getenv("POLL_BASE_INTERVAL_SECONDS", "3.0"))
    POLL_MULTIPLIER: float = float(os.getenv("POLL_MULTIPLIER", "2.0"))
    POLL_MAX_INTERVAL_SECONDS: float = float(os.getenv("POLL_MAX_INTERVAL_SECONDS", "30.0"))
    POLL_JITTER_SECONDS: float = float(os.getenv("POLL_JITTER_SECONDS", "1.0"))
    POLL_MAX_ATTEMPTS: int = int(os.getenv("POLL_MAX_ATTEMPTS", "40"))

    # LNbits
    LNBITS_URL: str = os.getenv("LNBITS_URL", "http://localhost:5000")
    LNBITS_HTTP_TIMEOUT: float = float(os.getenv("LNBITS_HTTP_TIMEOUT", "15.0"))
    SERVICE_WALLET_ID: str = os.getenv("SERVICE_WALLET_ID", "")
    SERVICE_WALLET_ADMIN_KEY: str = os.getenv("SERVICE_WALLET_ADMIN_KEY", "")
    SERVICE_WALLET_INVOICE_KEY: str = os.getenv("SERVICE_WALLET_INVOICE_KEY", "")
    WEBHOOK_BASE_URL: str = os.getenv("WEBHOOK_BASE_URL", "http://localhost:8000")

    # Telegram
    TELEGRAM_API_URL: str = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    # Sent by Telegram as X-Telegram-Bot-Api-Secret-Token (setWebhook secret_token).
    # Updates are refused while unset.
    TELEGRAM_WEBHOOK_SECRET: str = os.getenv("TELEGRAM_WEBHOOK_SECRET", "")

    # Prompt capture
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", "300"))

    # Artifact cache
    ARTIFACT_DIR: str = os.getenv("ARTIFACT_DIR", "data/dalle")
    ARTIFACT_DELETE_AFTER_SEND: bool = _env_bool("ARTIFACT_DELETE_AFTER_SEND", "true")
    ARTIFACT_MAX_AGE_SECONDS: int = int(os.getenv("ARTIFACT_MAX_AGE_SECONDS", "3600"))
    JANITOR_INTERVAL_SECONDS: int = int(os.getenv("JANITOR_INTERVAL_SECONDS", "600"))
    JANITOR_ENABLED: bool = _env_bool("JANITOR_ENABLED", "true")

    # Storage
    REDIS_URL: str = os.getenv("REDIS_URL", "")
    USER_DIRECTORY_FILE: str = os.getenv("USER_DIRECTORY_FILE", "")  # JSON list of users, used without Redis

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def service_wallet(self) -> Wallet:
        return Wallet(
            wallet_id=self.SERVICE_WALLET_ID,
            admin_key=self.SERVICE_WALLET_ADMIN_KEY,
            invoice_key=self.SERVICE_WALLET_INVOICE_KEY,
        )

    @property
    def webhook_url(self) -> str:
        return f"{self.WEBHOOK_BASE_URL.rstrip('/')}/api/v1/webhook/lnbits"


settings = Settings()
