from __future__ import annotations

import logging
from typing import Any

from vpn_miniapp.localization.loader import DEFAULT_LANGUAGE, load_locale
from vpn_miniapp.utils.language import resolve_miniapp_language

_logger = logging.getLogger(__name__)


class Texts:
    def __init__(self, language: str = DEFAULT_LANGUAGE):
        self.language = resolve_miniapp_language(language) if language else DEFAULT_LANGUAGE
        self._values = dict(load_locale(self.language))

        if self.language != DEFAULT_LANGUAGE:
            fallback_data = load_locale(DEFAULT_LANGUAGE)
        else:
            fallback_data = self._values

        self._fallback_values = {
            key: value for key, value in fallback_data.items() if key not in self._values
        }

    def __getattr__(self, item: str) -> Any:
        if item.startswith("_") or item == "language":
            raise AttributeError(item)
        try:
            return self._get_value(item)
        except KeyError as error:
            raise AttributeError(item) from error

    def __getitem__(self, item: str) -> Any:
        return self._get_value(item)

    def get(self, item: str, default: Any = None) -> Any:
        try:
            return self._get_value(item)
        except KeyError:
            return default

    def _get_value(self, item: str) -> Any:
        if item in self._values:
            return self._values[item]

        if item in self._fallback_values:
            return self._fallback_values[item]

        _logger.warning(
            "Missing localization key '%s' for language '%s'",
            item,
            self.language,
        )
        raise KeyError(item)


def get_texts(language: str = DEFAULT_LANGUAGE) -> Texts:
    return Texts(language)
