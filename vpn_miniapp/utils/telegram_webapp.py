"""Utilities for reading Telegram WebApp init data outside the WebApp API."""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)

INIT_DATA_PARAM = "tgWebAppData"


def extract_init_data_from_url(url: str | None) -> str:
    """Return the init data Telegram relays through the page URL.

    Telegram may pass ``tgWebAppData`` either in the query string or in the
    fragment. The query string wins when both are present.

    Args:
        url: Full page URL as seen by the mini-app.

    Returns:
        Raw init data string, or an empty string when the URL carries none.
    """

    if not url:
        return ""

    try:
        parts = urlsplit(url)
    except ValueError:
        logger.debug("Не удалось разобрать URL страницы мини-приложения")
        return ""

    for raw in (parts.query, parts.fragment):
        if not raw:
            continue
        values = parse_qs(raw, keep_blank_values=False).get(INIT_DATA_PARAM)
        if values and values[0]:
            return values[0]

    return ""
