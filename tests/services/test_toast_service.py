"""Тесты сервиса уведомлений."""

import asyncio

import pytest

from vpn_miniapp.services.toast_service import ToastKind, ToastService


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.mark.anyio("asyncio")
async def test_success_notice_clears_itself() -> None:
    changes: list = []
    service = ToastService(success_timeout_seconds=0.01, on_change=lambda: changes.append(service.current))

    service.show_success("Готово")
    assert service.current.kind == ToastKind.SUCCESS

    await asyncio.sleep(0.05)

    assert service.current is None
    assert len(changes) == 2


@pytest.mark.anyio("asyncio")
async def test_error_notice_persists() -> None:
    service = ToastService(success_timeout_seconds=0.01)

    service.show_error("Ошибка")
    await asyncio.sleep(0.05)

    assert service.current.kind == ToastKind.ERROR
    assert service.current.message == "Ошибка"


@pytest.mark.anyio("asyncio")
async def test_new_notice_supersedes_pending_success() -> None:
    """Таймер старого уведомления не должен скрыть новое."""
    service = ToastService(success_timeout_seconds=0.01)

    service.show_success("Готово")
    service.show_error("Ошибка")
    await asyncio.sleep(0.05)

    assert service.current.message == "Ошибка"


@pytest.mark.anyio("asyncio")
async def test_repeated_success_restarts_timer() -> None:
    service = ToastService(success_timeout_seconds=0.05)

    service.show_success("Первое")
    await asyncio.sleep(0.03)
    service.show_success("Второе")
    await asyncio.sleep(0.03)

    assert service.current.message == "Второе"

    await asyncio.sleep(0.06)
    assert service.current is None


def test_clear_without_notice_is_silent() -> None:
    changes: list = []
    service = ToastService(on_change=lambda: changes.append(True))

    service.clear()

    assert changes == []
