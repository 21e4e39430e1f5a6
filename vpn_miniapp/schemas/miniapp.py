from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


logger = logging.getLogger(__name__)


class PaymentProvider(str, Enum):
    TELEGRAM_STARS = "TELEGRAM_STARS"
    PLATEGA = "PLATEGA"
    CRYPTOCLOUD = "CRYPTOCLOUD"


class SubscriptionState(str, Enum):
    NEW = "NEW"
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"
    EXPIRED = "EXPIRED"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class MiniAssignedServer(_WireModel):
    id: str
    name: str = ""


class MiniStatus(_WireModel):
    """Снимок состояния подписки, полностью заменяется при каждом запросе."""

    state: SubscriptionState = Field(
        default=SubscriptionState.NEW,
        validation_alias=AliasChoices("status", "state"),
    )
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")
    days_left: Optional[int] = Field(default=None, alias="daysLeft")
    progress_pct: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("progressLeftPct", "progressPct"),
    )
    servers: List[MiniAssignedServer] = Field(default_factory=list)
    display_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("displayName", "name", "botName"),
    )

    @field_validator("state", mode="before")
    @classmethod
    def normalize_state(cls, value):
        raw = str(value or "").strip().upper()
        try:
            return SubscriptionState(raw)
        except ValueError:
            logger.warning("Неизвестный статус подписки: %s, используем NEW", value)
            return SubscriptionState.NEW

    @field_validator("progress_pct", mode="before")
    @classmethod
    def clamp_progress(cls, value):
        if value is None:
            return None
        return max(0.0, min(100.0, float(value)))

    @field_validator("servers", mode="before")
    @classmethod
    def ensure_servers_list(cls, value):
        return value or []

    @property
    def active_server_id(self) -> Optional[str]:
        return self.servers[0].id if self.servers else None

    @property
    def has_active_server(self) -> bool:
        return bool(self.servers)


class MiniServer(_WireModel):
    id: str
    name: str
    free_slots: Optional[int] = Field(default=None, alias="freeSlots")
    is_recommended: bool = Field(default=False, alias="isRecommended")

    @field_validator("is_recommended", mode="before")
    @classmethod
    def none_is_false(cls, value):
        return bool(value)


class MiniPlan(_WireModel):
    """Один ценовой вариант тарифа (валюта + цена + способ оплаты)."""

    id: str
    name: str
    price: float = Field(ge=0)
    currency: str
    period_days: int = Field(alias="periodDays")
    provider: Optional[PaymentProvider] = Field(
        default=None,
        validation_alias=AliasChoices("provider", "providerCode"),
    )
    is_top: bool = Field(default=False, alias="isTop")
    description: Optional[str] = None

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, value):
        return str(value or "").strip().upper()

    @field_validator("provider", mode="before")
    @classmethod
    def ignore_unknown_provider(cls, value):
        if value in (None, ""):
            return None
        try:
            return PaymentProvider(str(value).strip().upper())
        except ValueError:
            logger.warning("Неизвестный провайдер оплаты у варианта тарифа: %s", value)
            return None

    @field_validator("is_top", mode="before")
    @classmethod
    def none_is_false(cls, value):
        return bool(value)


class MiniConfigItem(_WireModel):
    url: Optional[str] = None
    server_name: Optional[str] = Field(default=None, alias="serverName")


class MiniConfigResponse(_WireModel):
    configs: List[MiniConfigItem] = Field(default_factory=list)

    @field_validator("configs", mode="before")
    @classmethod
    def ensure_configs_list(cls, value):
        return value or []

    @property
    def primary_url(self) -> Optional[str]:
        for item in self.configs:
            if item.url:
                return item.url
        return None


class MiniPayResponse(_WireModel):
    provider: Optional[str] = None
    invoice_link: Optional[str] = Field(default=None, alias="invoiceLink")
    payment_url: Optional[str] = Field(default=None, alias="paymentUrl")
    payment_id: Optional[str] = Field(default=None, alias="paymentId")
    status: Optional[str] = None


class BrowserLoginState(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    EXPIRED = "EXPIRED"


class BrowserLoginSession(_WireModel):
    login_id: str = Field(alias="loginId")
    expires_at: datetime = Field(alias="expiresAt")
    deep_link: Optional[str] = Field(default=None, alias="deepLink")


class BrowserLoginStatus(_WireModel):
    status: BrowserLoginState
    init_data: Optional[str] = Field(default=None, alias="initData")


class PublicMeta(_WireModel):
    bot_name: Optional[str] = Field(default=None, alias="botName")
    bot_username: Optional[str] = Field(default=None, alias="botUsername")
    company_name: Optional[str] = Field(default=None, alias="companyName")
    support_email: Optional[str] = Field(default=None, alias="supportEmail")
    support_telegram: Optional[str] = Field(default=None, alias="supportTelegram")
    site_url: Optional[str] = Field(default=None, alias="siteUrl")
