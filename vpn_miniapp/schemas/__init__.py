"""Схемы ответов API мини-приложения."""
from .miniapp import (
    BrowserLoginSession,
    BrowserLoginState,
    BrowserLoginStatus,
    MiniAssignedServer,
    MiniConfigItem,
    MiniConfigResponse,
    MiniPayResponse,
    MiniPlan,
    MiniServer,
    MiniStatus,
    PaymentProvider,
    PublicMeta,
    SubscriptionState,
)

__all__ = [
    "BrowserLoginSession",
    "BrowserLoginState",
    "BrowserLoginStatus",
    "MiniAssignedServer",
    "MiniConfigItem",
    "MiniConfigResponse",
    "MiniPayResponse",
    "MiniPlan",
    "MiniServer",
    "MiniStatus",
    "PaymentProvider",
    "PublicMeta",
    "SubscriptionState",
]
