"""Глобальные фикстуры и настройки окружения для тестов."""

import os
from datetime import datetime, timezone

import pytest

# Настройки читаются из окружения при импорте, поэтому задаём их заранее.
os.environ.setdefault("MINIAPP_API_URL", "http://miniapp.test/api")
os.environ.setdefault("DEFAULT_LANGUAGE", "ru")
os.environ.setdefault("LOG_FILE", "logs/miniapp-tests.log")


@pytest.fixture
def fixed_datetime() -> datetime:
    """Возвращает фиксированную отметку времени для воспроизводимых проверок."""
    return datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
