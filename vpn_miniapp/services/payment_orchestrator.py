"""Запуск оплаты тарифа и передача её хосту (инвойс Telegram или внешняя страница)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, FrozenSet, Optional, Set

from vpn_miniapp.external.miniapp_api import MiniAppAPI
from vpn_miniapp.localization import get_texts
from vpn_miniapp.schemas.miniapp import MiniPayResponse, MiniPlan, PaymentProvider
from vpn_miniapp.services.host_bridge import HostBridge, InvoiceStatus
from vpn_miniapp.utils.plan_grouping import PlanGroup
from vpn_miniapp.utils.variant_picking import pick_variant

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class MissingCredentialError(PaymentError):
    pass


class PaymentInProgressError(PaymentError):
    pass


class PaymentMethodUnavailableError(PaymentError):
    pass


class PaymentHostUnsupportedError(PaymentError):
    pass


class PaymentContinuation(str, Enum):
    INVOICE = "invoice"
    REDIRECT = "redirect"
    COMPLETED = "completed"


@dataclass(frozen=True)
class PaymentOutcome:
    provider: PaymentProvider
    variant: MiniPlan
    continuation: PaymentContinuation
    invoice_link: Optional[str] = None
    payment_url: Optional[str] = None
    invoice_status: Optional[InvoiceStatus] = None


class PaymentOrchestrator:
    """Создаёт платёж по варианту тарифа и доводит его до хоста.

    На одну группу тарифа одновременно идёт не больше одной оплаты. После
    каждого созданного платежа один раз запускается ``reconcile`` (обычно
    перечитывание статуса подписки) в фоне.
    """

    def __init__(
        self,
        api: MiniAppAPI,
        host: HostBridge,
        reconcile: Callable[[], Awaitable[object]],
    ):
        self.api = api
        self.host = host
        self._reconcile = reconcile
        self._busy: Set[str] = set()
        self._pending: Set[asyncio.Task] = set()

    @property
    def busy_group_keys(self) -> FrozenSet[str]:
        return frozenset(self._busy)

    def is_busy(self, group_key: str) -> bool:
        return group_key in self._busy

    @staticmethod
    def resolve_variant(
        group: PlanGroup,
        provider: PaymentProvider,
        language: Optional[str] = None,
    ) -> Optional[MiniPlan]:
        return pick_variant(group.variants, provider, language)

    async def initiate(
        self,
        credential: Optional[str],
        group: PlanGroup,
        provider: PaymentProvider,
        language: Optional[str] = None,
    ) -> PaymentOutcome:
        texts = get_texts(language)

        if not credential:
            raise MissingCredentialError(texts.SESSION_EXPIRED)

        if self.is_busy(group.key):
            raise PaymentInProgressError(texts.PAYMENT_IN_PROGRESS)

        variant = self.resolve_variant(group, provider, language)
        if variant is None:
            logger.info(f"Для тарифа {group.key} нет варианта под {provider.value}")
            raise PaymentMethodUnavailableError(texts.PAYMENT_METHOD_UNAVAILABLE)

        self._busy.add(group.key)
        try:
            response = await self.api.create_payment(credential, variant.id, provider)
            try:
                return await self._hand_off(response, provider, variant, language)
            finally:
                self._schedule_reconcile()
        finally:
            self._busy.discard(group.key)

    async def _hand_off(
        self,
        response: MiniPayResponse,
        provider: PaymentProvider,
        variant: MiniPlan,
        language: Optional[str],
    ) -> PaymentOutcome:
        if response.invoice_link:
            if not self.host.supports_invoices():
                raise PaymentHostUnsupportedError(get_texts(language).PAYMENT_TELEGRAM_ONLY)

            status = await self.host.open_invoice(response.invoice_link)
            logger.info(f"Инвойс по варианту {variant.id} закрыт со статусом {status.value}")
            return PaymentOutcome(
                provider=provider,
                variant=variant,
                continuation=PaymentContinuation.INVOICE,
                invoice_link=response.invoice_link,
                invoice_status=status,
            )

        if response.payment_url:
            self.host.open_link(response.payment_url)
            return PaymentOutcome(
                provider=provider,
                variant=variant,
                continuation=PaymentContinuation.REDIRECT,
                payment_url=response.payment_url,
            )

        return PaymentOutcome(
            provider=provider,
            variant=variant,
            continuation=PaymentContinuation.COMPLETED,
        )

    def _schedule_reconcile(self) -> None:
        task = asyncio.create_task(self._run_reconcile())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_reconcile(self) -> None:
        try:
            await self._reconcile()
        except Exception as error:
            logger.exception(f"Ошибка фоновой сверки статуса после оплаты: {error}")

    async def drain(self) -> None:
        """Дождаться всех запущенных сверок статуса."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        for task in list(self._pending):
            task.cancel()
