import asyncio
import logging
import sys
from typing import Optional

from vpn_miniapp.config import settings
from vpn_miniapp.external.miniapp_api import MiniAppAPI
from vpn_miniapp.localization import get_texts
from vpn_miniapp.services.host_bridge import HapticKind, HostCapabilityError, InvoiceStatus
from vpn_miniapp.services.screens import ScreenKind
from vpn_miniapp.services.session_controller import MiniAppSessionController, SessionSnapshot
from vpn_miniapp.utils.formatters import format_datetime
from vpn_miniapp.utils.plan_grouping import format_plan_group_price


logger = logging.getLogger(__name__)


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(settings.LOG_FILE, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )


class EnvironmentHost:
    """Хост без Telegram: initData, URL и язык берутся из настроек."""

    def get_init_data(self) -> str:
        return settings.MINIAPP_INIT_DATA or ""

    def get_page_url(self) -> Optional[str]:
        return settings.MINIAPP_PAGE_URL

    def get_language_code(self) -> Optional[str]:
        return settings.MINIAPP_LANGUAGE_CODE

    def ready(self) -> None:
        logger.debug("Консольный хост готов")

    def supports_invoices(self) -> bool:
        return False

    async def open_invoice(self, invoice_link: str) -> InvoiceStatus:
        raise HostCapabilityError("Инвойсы Telegram недоступны вне Telegram")

    def open_link(self, url: str) -> None:
        logger.info(f"Откройте страницу оплаты: {url}")

    async def copy_to_clipboard(self, text: str) -> None:
        raise HostCapabilityError("Буфер обмена недоступен в консоли")

    def notify_haptic(self, kind: HapticKind) -> None:
        pass

    def set_back_button_visible(self, visible: bool) -> None:
        pass


def log_snapshot(snapshot: SessionSnapshot) -> None:
    screen = snapshot.screen
    logger.info(f"Экран: {screen.kind.value}")

    if screen.kind == ScreenKind.FATAL_ERROR:
        logger.error(f"Ошибка загрузки: {screen.error_message}")
        return

    if screen.kind == ScreenKind.BROWSER_LOGIN_GATE and screen.browser_login:
        logger.info(f"Подтвердите вход в Telegram: {screen.browser_login.deep_link}")
        return

    status = snapshot.status
    if status is not None:
        logger.info(
            f"Подписка: {status.state.value}, до {format_datetime(status.expires_at) or '-'}, "
            f"осталось дней: {status.days_left if status.days_left is not None else '-'}"
        )
        for server in status.servers:
            logger.info(f"Активная локация: {server.name} ({server.id})")

    texts = get_texts(snapshot.language)
    for group in snapshot.plan_groups:
        price = format_plan_group_price(group, language=snapshot.language) or texts.PRICE_UNAVAILABLE
        logger.info(f"Тариф {group.name} ({group.period_days} дн.): {price}")

    if snapshot.toast is not None:
        logger.info(f"Уведомление ({snapshot.toast.kind.value}): {snapshot.toast.message}")


async def main():
    setup_logging()

    async with MiniAppAPI(
        settings.get_api_base_url(),
        timeout_seconds=settings.MINIAPP_API_TIMEOUT_SECONDS,
    ) as api:
        controller = MiniAppSessionController(api, EnvironmentHost())
        try:
            await controller.start()
            if controller.screen.kind == ScreenKind.HOME:
                await controller.open_plans()
            await controller.wait_for_background()
            log_snapshot(controller.snapshot())
        finally:
            await controller.aclose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n🛑 Остановлено пользователем")
    except Exception as e:
        print(f"❌ Критическая ошибка: {e}")
        sys.exit(1)
