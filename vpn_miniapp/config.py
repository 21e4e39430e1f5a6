import logging
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from vpn_miniapp.schemas.miniapp import PaymentProvider


logger = logging.getLogger(__name__)


_DEFAULT_PAYMENT_PROVIDERS = [
    PaymentProvider.PLATEGA,
    PaymentProvider.CRYPTOCLOUD,
    PaymentProvider.TELEGRAM_STARS,
]


class Settings(BaseSettings):

    MINIAPP_API_URL: str = "http://localhost:3000/api"
    MINIAPP_API_TIMEOUT_SECONDS: int = 30

    # Ожидание initData от Telegram WebApp: 5 попыток по 200 мс
    MINIAPP_CREDENTIAL_POLL_ATTEMPTS: int = 5
    MINIAPP_CREDENTIAL_POLL_INTERVAL_MS: int = 200

    MINIAPP_SUCCESS_TOAST_SECONDS: float = 4.0
    MINIAPP_CONFIG_COPIED_SECONDS: float = 2.0
    MINIAPP_SCREEN_FADE_MS: int = 30

    MINIAPP_BROWSER_LOGIN_ENABLED: bool = False
    MINIAPP_BROWSER_LOGIN_POLL_SECONDS: float = 1.5

    MINIAPP_PAYMENT_PROVIDERS: str = "PLATEGA,CRYPTOCLOUD,TELEGRAM_STARS"
    MINIAPP_CARD_CURRENCY: str = "RUB"
    MINIAPP_STARS_CURRENCY: str = "XTR"

    # Параметры консольного адаптера (запуск вне Telegram)
    MINIAPP_INIT_DATA: Optional[str] = None
    MINIAPP_PAGE_URL: Optional[str] = None
    MINIAPP_LANGUAGE_CODE: Optional[str] = None

    DEFAULT_LANGUAGE: str = "ru"

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/miniapp.log"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

    @field_validator("MINIAPP_CREDENTIAL_POLL_ATTEMPTS")
    @classmethod
    def ensure_positive_poll_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MINIAPP_CREDENTIAL_POLL_ATTEMPTS должен быть >= 1")
        return value

    @field_validator("MINIAPP_CARD_CURRENCY", "MINIAPP_STARS_CURRENCY")
    @classmethod
    def normalize_currency(cls, value: str) -> str:
        return (value or "").strip().upper()

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return (value or "INFO").strip().upper()

    @field_validator('LOG_FILE', mode='before')
    @classmethod
    def ensure_log_dir(cls, v):
        log_path = Path(v)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return str(log_path)

    def get_api_base_url(self) -> str:
        return self.MINIAPP_API_URL.rstrip("/")

    def get_credential_poll_interval_seconds(self) -> float:
        return max(0, self.MINIAPP_CREDENTIAL_POLL_INTERVAL_MS) / 1000

    def get_screen_fade_seconds(self) -> float:
        return max(0, self.MINIAPP_SCREEN_FADE_MS) / 1000

    def get_payment_providers(self) -> List[PaymentProvider]:
        raw = self.MINIAPP_PAYMENT_PROVIDERS
        if not raw or not raw.strip():
            return list(_DEFAULT_PAYMENT_PROVIDERS)

        providers: List[PaymentProvider] = []
        for chunk in raw.split(","):
            code = chunk.strip().upper()
            if not code:
                continue
            try:
                provider = PaymentProvider(code)
            except ValueError:
                logger.warning("Неизвестный провайдер оплаты в MINIAPP_PAYMENT_PROVIDERS: %s", code)
                continue
            if provider not in providers:
                providers.append(provider)

        return providers


settings = Settings()
