from .formatters import (
    format_amount,
    format_datetime,
    format_price,
)

__all__ = [
    'format_amount',
    'format_datetime',
    'format_price',
]
