"""Контракт хост-окружения мини-приложения (Telegram WebApp или консоль)."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol, runtime_checkable


class InvoiceStatus(str, Enum):
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"
    PENDING = "pending"


class HapticKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class HostCapabilityError(Exception):
    """Хост не смог выполнить запрошенное действие (буфер обмена, инвойс)."""


@runtime_checkable
class SessionSource(Protocol):
    def get_init_data(self) -> str:
        ...


@runtime_checkable
class HostBridge(SessionSource, Protocol):
    def get_page_url(self) -> Optional[str]:
        ...

    def get_language_code(self) -> Optional[str]:
        ...

    def ready(self) -> None:
        ...

    def supports_invoices(self) -> bool:
        ...

    async def open_invoice(self, invoice_link: str) -> InvoiceStatus:
        ...

    def open_link(self, url: str) -> None:
        ...

    async def copy_to_clipboard(self, text: str) -> None:
        ...

    def notify_haptic(self, kind: HapticKind) -> None:
        ...

    def set_back_button_visible(self, visible: bool) -> None:
        ...
