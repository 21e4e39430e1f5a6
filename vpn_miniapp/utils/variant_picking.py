"""Выбор ценового варианта тарифа для конкретного способа оплаты.

Варианты тарифа различаются валютой, а способ оплаты на практике выводится
из валюты: звёзды Telegram платятся в XTR, карта/СБП в локальной валюте, крипта
по списку приоритетов, зависящему от языка пользователя. Если у варианта явно
указан провайдер, это правило проверяется первым.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from vpn_miniapp.config import settings
from vpn_miniapp.schemas.miniapp import MiniPlan, PaymentProvider
from vpn_miniapp.utils.language import resolve_miniapp_language


CRYPTO_PRIORITY_UK: Tuple[str, ...] = ("UAH", "USD", "EUR")
CRYPTO_PRIORITY_DEFAULT: Tuple[str, ...] = ("USD", "EUR", "UAH")


@dataclass(frozen=True)
class ExplicitProvider:
    provider: PaymentProvider


@dataclass(frozen=True)
class InferredFromCurrency:
    priority: Tuple[str, ...]
    excluded: FrozenSet[str] = frozenset()
    # после списка приоритетов взять первый вариант в любой неисключённой валюте
    fallback_any: bool = False


VariantRule = Union[ExplicitProvider, InferredFromCurrency]


def crypto_currency_priority(language: Optional[str]) -> Tuple[str, ...]:
    if resolve_miniapp_language(language) == "uk":
        return CRYPTO_PRIORITY_UK
    return CRYPTO_PRIORITY_DEFAULT


def rules_for_provider(
    provider: PaymentProvider,
    language: Optional[str] = None,
    *,
    card_currency: Optional[str] = None,
    stars_currency: Optional[str] = None,
) -> List[VariantRule]:
    card = (card_currency or settings.MINIAPP_CARD_CURRENCY).upper()
    stars = (stars_currency or settings.MINIAPP_STARS_CURRENCY).upper()

    if provider == PaymentProvider.TELEGRAM_STARS:
        inferred = InferredFromCurrency(priority=(stars,))
    elif provider == PaymentProvider.PLATEGA:
        inferred = InferredFromCurrency(priority=(card,))
    else:
        inferred = InferredFromCurrency(
            priority=crypto_currency_priority(language),
            excluded=frozenset({card, stars}),
            fallback_any=True,
        )

    return [ExplicitProvider(provider), inferred]


def apply_rule(variants: Sequence[MiniPlan], rule: VariantRule) -> Optional[MiniPlan]:
    if isinstance(rule, ExplicitProvider):
        return next((v for v in variants if v.provider == rule.provider), None)

    # валюта решает только для вариантов без явно указанного провайдера
    untagged = [v for v in variants if v.provider is None]

    for code in rule.priority:
        if code in rule.excluded:
            continue
        found = next((v for v in untagged if v.currency == code), None)
        if found is not None:
            return found

    if rule.fallback_any:
        return next((v for v in untagged if v.currency not in rule.excluded), None)

    return None


def pick_variant(
    variants: Optional[Iterable[MiniPlan]],
    provider: PaymentProvider,
    language: Optional[str] = None,
    *,
    card_currency: Optional[str] = None,
    stars_currency: Optional[str] = None,
) -> Optional[MiniPlan]:
    items = list(variants or [])
    if not items:
        return None

    rules = rules_for_provider(
        provider,
        language,
        card_currency=card_currency,
        stars_currency=stars_currency,
    )
    for rule in rules:
        found = apply_rule(items, rule)
        if found is not None:
            return found
    return None


def pick_stars_variant(variants: Optional[Iterable[MiniPlan]]) -> Optional[MiniPlan]:
    return pick_variant(variants, PaymentProvider.TELEGRAM_STARS)


def pick_card_variant(variants: Optional[Iterable[MiniPlan]]) -> Optional[MiniPlan]:
    return pick_variant(variants, PaymentProvider.PLATEGA)


def pick_crypto_variant(
    variants: Optional[Iterable[MiniPlan]],
    language: Optional[str] = None,
) -> Optional[MiniPlan]:
    return pick_variant(variants, PaymentProvider.CRYPTOCLOUD, language)
