from __future__ import annotations

import logging
from typing import Optional

from aiogram.utils.web_app import parse_webapp_init_data

from vpn_miniapp.config import settings

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("ru", "en", "uk")

# Для СНГ-локалей показываем русский интерфейс
_RUSSIAN_PREFIXES = ("ru", "be", "kk")


def _normalize_language_code(value: Optional[str]) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def resolve_miniapp_language(language_code: Optional[str]) -> str:
    code = _normalize_language_code(language_code)

    if not code:
        default = _normalize_language_code(settings.DEFAULT_LANGUAGE)
        return default if default in SUPPORTED_LANGUAGES else "en"

    if code.startswith(_RUSSIAN_PREFIXES):
        return "ru"
    if code.startswith("uk"):
        return "uk"
    return "en"


def extract_language_code(
    init_data: Optional[str],
    host_language_code: Optional[str] = None,
) -> Optional[str]:
    """Код языка пользователя: сначала из WebApp API, затем из поля user в initData."""

    if host_language_code:
        return str(host_language_code)

    if not init_data:
        return None

    try:
        webapp_data = parse_webapp_init_data(init_data)
    except ValueError as error:
        logger.debug("initData не разобран при определении языка: %s", error)
        return None

    user = webapp_data.user
    if user is None or not user.language_code:
        return None
    return str(user.language_code)
