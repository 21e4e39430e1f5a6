"""Группировка ценовых вариантов в тарифы для показа пользователю."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from vpn_miniapp.config import settings
from vpn_miniapp.localization import get_texts
from vpn_miniapp.schemas.miniapp import MiniPlan, PaymentProvider
from vpn_miniapp.utils.formatters import format_price
from vpn_miniapp.utils.variant_picking import pick_variant


# Порядок способов оплаты в цене и в списке методов
PROVIDER_DISPLAY_ORDER = (
    PaymentProvider.PLATEGA,
    PaymentProvider.CRYPTOCLOUD,
    PaymentProvider.TELEGRAM_STARS,
)

PRICE_SEPARATOR = " | "

_PROVIDER_TEXT_KEYS = {
    PaymentProvider.PLATEGA: ("PAYMENT_CARD_TITLE", "PAYMENT_CARD_SUBTITLE"),
    PaymentProvider.CRYPTOCLOUD: ("PAYMENT_CRYPTO_TITLE", "PAYMENT_CRYPTO_SUBTITLE"),
    PaymentProvider.TELEGRAM_STARS: ("PAYMENT_STARS_TITLE", "PAYMENT_STARS_SUBTITLE"),
}


@dataclass(frozen=True)
class PlanGroup:
    key: str
    name: str
    period_days: int
    description: Optional[str] = None
    is_top: bool = False
    variants: Tuple[MiniPlan, ...] = ()


@dataclass(frozen=True)
class PaymentMethodOption:
    provider: PaymentProvider
    title: str
    subtitle: str
    variant: MiniPlan
    price_label: str


def normalize_plan_name(name: str) -> str:
    return (name or "").strip().lower()


def plan_group_key(plan: MiniPlan) -> str:
    return f"{normalize_plan_name(plan.name)}::{plan.period_days}"


def group_plans(plans: Iterable[MiniPlan]) -> List[PlanGroup]:
    variants_by_key: Dict[str, List[MiniPlan]] = {}

    for plan in plans:
        variants_by_key.setdefault(plan_group_key(plan), []).append(plan)

    groups = []
    for key, variants in variants_by_key.items():
        first = variants[0]
        groups.append(
            PlanGroup(
                key=key,
                name=first.name,
                period_days=first.period_days,
                description=next((v.description for v in variants if v.description), None),
                is_top=any(v.is_top for v in variants),
                variants=tuple(variants),
            )
        )

    # sorted() стабилен: при равных (is_top, period_days) сохраняется порядок входа
    return sorted(groups, key=lambda g: (not g.is_top, g.period_days))


def find_plan_group(groups: Sequence[PlanGroup], key: Optional[str]) -> Optional[PlanGroup]:
    if not key:
        return None
    return next((g for g in groups if g.key == key), None)


def _ordered_providers(providers: Optional[Iterable[PaymentProvider]]) -> List[PaymentProvider]:
    enabled = set(settings.get_payment_providers() if providers is None else providers)
    return [p for p in PROVIDER_DISPLAY_ORDER if p in enabled]


def format_plan_group_price(
    group: PlanGroup,
    providers: Optional[Iterable[PaymentProvider]] = None,
    language: Optional[str] = None,
) -> str:
    """Цена тарифа по всем включённым способам оплаты, например ``199 ₽ | 150 ⭐``.

    Пустая строка означает, что ни один способ оплаты не нашёл вариант.
    """

    parts: List[str] = []
    for provider in _ordered_providers(providers):
        variant = pick_variant(group.variants, provider, language)
        if variant is None:
            continue
        label = format_price(variant.price, variant.currency)
        if label not in parts:
            parts.append(label)

    return PRICE_SEPARATOR.join(parts)


def payment_method_options(
    group: PlanGroup,
    providers: Optional[Iterable[PaymentProvider]] = None,
    language: Optional[str] = None,
) -> List[PaymentMethodOption]:
    texts = get_texts(language)
    options: List[PaymentMethodOption] = []

    for provider in _ordered_providers(providers):
        variant = pick_variant(group.variants, provider, language)
        if variant is None:
            continue
        title_key, subtitle_key = _PROVIDER_TEXT_KEYS[provider]
        options.append(
            PaymentMethodOption(
                provider=provider,
                title=texts.get(title_key, provider.value),
                subtitle=texts.get(subtitle_key, ""),
                variant=variant,
                price_label=format_price(variant.price, variant.currency),
            )
        )

    return options
