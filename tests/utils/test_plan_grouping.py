"""Тесты группировки вариантов тарифов и расчёта отображаемой цены."""

from dataclasses import FrozenInstanceError

import pytest

from tests.fixtures.miniapp_fixtures import make_plan
from vpn_miniapp.schemas.miniapp import PaymentProvider
from vpn_miniapp.utils.plan_grouping import (
    find_plan_group,
    format_plan_group_price,
    group_plans,
    payment_method_options,
    plan_group_key,
)


VARIANTS = [
    make_plan("m3-rub", "RUB", 499, name="3 месяца", period_days=90),
    make_plan("m1-rub", "RUB", 199, name="1 месяц", period_days=30),
    make_plan("m1-xtr", "XTR", 150, name=" 1 Месяц ", period_days=30, description="Базовый"),
    make_plan("y1-usd", "USD", 40, name="Год", period_days=365, is_top=True),
    make_plan("m1-usd", "USD", 2.5, name="1 месяц", period_days=30, is_top=True),
]


def test_group_key_normalizes_name() -> None:
    assert plan_group_key(make_plan("a", "RUB", 1, name="  Pro ", period_days=30)) == "pro::30"


def test_grouping_is_idempotent() -> None:
    assert group_plans(VARIANTS) == group_plans(VARIANTS)


def test_variants_with_same_name_and_period_are_merged() -> None:
    groups = group_plans(VARIANTS)
    month = find_plan_group(groups, "1 месяц::30")

    assert [variant.id for variant in month.variants] == ["m1-rub", "m1-xtr", "m1-usd"]
    assert month.name == "1 месяц"
    assert month.is_top is True
    assert month.description == "Базовый"


def test_groups_are_read_only() -> None:
    month = find_plan_group(group_plans(VARIANTS), "1 месяц::30")

    assert isinstance(month.variants, tuple)
    with pytest.raises(FrozenInstanceError):
        month.is_top = False
    with pytest.raises(AttributeError):
        month.variants.append(VARIANTS[0])


def test_top_groups_first_then_by_period() -> None:
    groups = group_plans(VARIANTS)

    assert [group.key for group in groups] == ["1 месяц::30", "год::365", "3 месяца::90"]


def test_same_name_different_period_stays_separate() -> None:
    groups = group_plans(
        [
            make_plan("a", "RUB", 100, name="Pro", period_days=30),
            make_plan("b", "RUB", 250, name="Pro", period_days=90),
        ]
    )

    assert [group.key for group in groups] == ["pro::30", "pro::90"]


def test_find_plan_group_handles_missing_key() -> None:
    groups = group_plans(VARIANTS)

    assert find_plan_group(groups, None) is None
    assert find_plan_group(groups, "нет::1") is None


def test_price_joins_providers_in_display_order() -> None:
    group = find_plan_group(group_plans(VARIANTS), "1 месяц::30")

    assert format_plan_group_price(group, language="ru") == "199 ₽ | 2.5 $ | 150 ⭐"


def test_price_respects_enabled_providers() -> None:
    group = find_plan_group(group_plans(VARIANTS), "1 месяц::30")

    price = format_plan_group_price(group, providers=[PaymentProvider.TELEGRAM_STARS])

    assert price == "150 ⭐"


def test_price_deduplicates_identical_labels() -> None:
    group = group_plans(
        [
            make_plan("a", "RUB", 199),
            make_plan("b", "RUB", 199, provider="CRYPTOCLOUD"),
        ]
    )[0]

    assert format_plan_group_price(group) == "199 ₽"


def test_price_is_empty_when_nothing_resolves() -> None:
    group = group_plans([make_plan("a", "GBP", 5)])[0]

    assert format_plan_group_price(group, providers=[PaymentProvider.PLATEGA]) == ""


def test_payment_method_options_use_localized_titles() -> None:
    group = find_plan_group(group_plans(VARIANTS), "1 месяц::30")

    options = payment_method_options(group, language="en")

    assert [option.provider for option in options] == [
        PaymentProvider.PLATEGA,
        PaymentProvider.CRYPTOCLOUD,
        PaymentProvider.TELEGRAM_STARS,
    ]
    assert options[0].title == "Card / Instant"
    assert options[1].variant.id == "m1-usd"
    assert options[2].price_label == "150 ⭐"
