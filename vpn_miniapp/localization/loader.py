from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from vpn_miniapp.config import settings
from vpn_miniapp.utils.language import SUPPORTED_LANGUAGES

_logger = logging.getLogger(__name__)

_FALLBACK_LANGUAGE = "ru"

_BASE_DIR = Path(__file__).resolve().parent
_DEFAULT_LOCALES_DIR = _BASE_DIR / "locales"


def _normalize_language_code(value: Any) -> str:
    if isinstance(value, str):
        return value.strip().lower()
    if value is None:
        return ""
    return str(value).strip().lower()


def _determine_default_language() -> str:
    configured = _normalize_language_code(settings.DEFAULT_LANGUAGE)
    if configured in SUPPORTED_LANGUAGES:
        return configured

    if configured:
        _logger.warning(
            "Configured default language '%s' is not available. Falling back to '%s'.",
            configured,
            _FALLBACK_LANGUAGE,
        )
    return _FALLBACK_LANGUAGE


DEFAULT_LANGUAGE = _determine_default_language()


def _read_locale_file(language: str) -> Dict[str, Any]:
    path = _DEFAULT_LOCALES_DIR / f"{language}.json"
    if not path.exists():
        return {}

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as error:
        _logger.error("Failed to load locale %s: %s", path, error)
        return {}

    if not isinstance(data, dict):
        _logger.error("Locale %s must contain a JSON object", path)
        return {}

    return {str(key).strip().upper(): value for key, value in data.items()}


@lru_cache(maxsize=None)
def load_locale(language: str) -> Dict[str, Any]:
    language = _normalize_language_code(language) or DEFAULT_LANGUAGE
    data = _read_locale_file(language)

    if not data and language != DEFAULT_LANGUAGE:
        _logger.warning(
            "Locale %s not found. Falling back to default language %s.",
            language,
            DEFAULT_LANGUAGE,
        )
        return load_locale(DEFAULT_LANGUAGE)
    return data


def clear_locale_cache() -> None:
    load_locale.cache_clear()
