from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Union


CURRENCY_SYMBOLS = {
    "RUB": "₽",
    "UAH": "₴",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "XTR": "⭐",
}


def format_amount(value: Union[int, float, Decimal, str]) -> str:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return str(value)

    if amount == amount.to_integral_value():
        return str(int(amount))

    return format(amount.normalize(), "f")


def format_price(price: Union[int, float, Decimal], currency: Optional[str]) -> str:
    code = str(currency or "").strip().upper()
    symbol = CURRENCY_SYMBOLS.get(code, code)
    amount = format_amount(price)
    return f"{amount} {symbol}".rstrip()


def format_datetime(dt: Union[datetime, str, None], format_str: str = "%d.%m.%Y %H:%M") -> str:
    if dt is None:
        return ""

    if isinstance(dt, str):
        try:
            dt = datetime.fromisoformat(dt.replace('Z', '+00:00'))
        except (ValueError, AttributeError):
            return dt

    return dt.strftime(format_str)
