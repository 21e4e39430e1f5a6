from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from vpn_miniapp.config import settings

logger = logging.getLogger(__name__)


class ToastKind(str, Enum):
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class ToastNotice:
    kind: ToastKind
    message: str


class ToastService:
    """Одно уведомление за раз: новое вытесняет старое.

    Уведомление об успехе скрывается само, ошибка висит до закрытия
    пользователем или до следующего уведомления.
    """

    def __init__(
        self,
        success_timeout_seconds: Optional[float] = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        if success_timeout_seconds is None:
            success_timeout_seconds = settings.MINIAPP_SUCCESS_TOAST_SECONDS
        self.success_timeout_seconds = success_timeout_seconds
        self._on_change = on_change
        self._current: Optional[ToastNotice] = None
        self._timer: Optional[asyncio.TimerHandle] = None

    @property
    def current(self) -> Optional[ToastNotice]:
        return self._current

    def show_error(self, message: str) -> None:
        logger.info(f"Показ ошибки пользователю: {message}")
        self._show(ToastNotice(ToastKind.ERROR, message))

    def show_success(self, message: str) -> None:
        self._show(ToastNotice(ToastKind.SUCCESS, message))
        loop = asyncio.get_running_loop()
        notice = self._current
        self._timer = loop.call_later(
            self.success_timeout_seconds,
            self._expire,
            notice,
        )

    def clear(self) -> None:
        self._cancel_timer()
        if self._current is None:
            return
        self._current = None
        self._changed()

    def _show(self, notice: ToastNotice) -> None:
        self._cancel_timer()
        self._current = notice
        self._changed()

    def _expire(self, notice: ToastNotice) -> None:
        self._timer = None
        if self._current is notice:
            self._current = None
            self._changed()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()
