from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from vpn_miniapp.config import settings
from vpn_miniapp.services.host_bridge import SessionSource
from vpn_miniapp.utils.telegram_webapp import extract_init_data_from_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    interval_seconds: float = 0.2

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.MINIAPP_CREDENTIAL_POLL_ATTEMPTS,
            interval_seconds=settings.get_credential_poll_interval_seconds(),
        )


class CredentialResolver:
    """Получает initData: сначала опрашивает хост, затем смотрит URL страницы.

    Хост Telegram иногда отдаёт initData не сразу после загрузки страницы,
    поэтому пустое значение перечитывается несколько раз с паузой.
    """

    def __init__(
        self,
        source: SessionSource,
        page_url: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.page_url = page_url
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep
        self.attempts = 0

    def _read_source(self) -> str:
        value = self.source.get_init_data()
        return str(value or "").strip()

    async def resolve(self) -> Optional[str]:
        self.attempts = 0

        for _ in range(self.policy.max_attempts):
            self.attempts += 1
            value = self._read_source()
            if value:
                logger.debug(f"initData получен от хоста с попытки {self.attempts}")
                return value
            await self._sleep(self.policy.interval_seconds)

        from_url = extract_init_data_from_url(self.page_url)
        if from_url:
            logger.info("initData взят из URL страницы")
            return from_url

        logger.warning(
            f"initData не найден ни у хоста ({self.attempts} попыток), ни в URL страницы"
        )
        return None
