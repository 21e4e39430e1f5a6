import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import aiohttp
from pydantic import ValidationError

from vpn_miniapp.schemas.miniapp import (
    BrowserLoginSession,
    BrowserLoginStatus,
    MiniConfigResponse,
    MiniPayResponse,
    MiniPlan,
    MiniServer,
    MiniStatus,
    PaymentProvider,
    PublicMeta,
)

logger = logging.getLogger(__name__)


class MiniAppAPIError(Exception):
    def __init__(self, message: str, status_code: int = None, response_data: Any = None):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data
        super().__init__(self.message)


def _extract_server_message(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None

    message = data.get('message')
    if isinstance(message, str) and message:
        return message
    if isinstance(message, list) and message:
        return "\n".join(str(item) for item in message)

    error = data.get('error')
    if isinstance(error, str) and error:
        return error

    return None


def get_api_error_message(error: BaseException, fallback: str) -> str:
    """Человекочитаемое сообщение об ошибке для показа пользователю.

    Сначала берётся текст, присланный сервером (``message`` строкой или
    списком, затем ``error``), потом текст самого исключения, иначе ``fallback``.
    """

    if isinstance(error, MiniAppAPIError):
        server_message = _extract_server_message(error.response_data)
        if server_message:
            return server_message
        if error.message:
            return error.message
        return fallback

    text = str(error) if error is not None else ""
    return text or fallback


class MiniAppAPI:
    """Клиент API мини-приложения. initData передаётся в теле каждого запроса."""

    def __init__(self, base_url: str, timeout_seconds: int = 30):
        self.base_url = base_url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        logger.debug(f"Подключение к API мини-приложения: {self.base_url}")
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            headers={
                'Content-Type': 'application/json',
                'Accept': 'application/json',
            },
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None

    @staticmethod
    async def _read_payload(response: aiohttp.ClientResponse) -> Tuple[Any, bool]:
        """Тело ответа и признак того, что оно разобрано как JSON.

        Пустое тело считается корректным ответом без данных.
        """

        try:
            response_text = await response.text()
        except UnicodeDecodeError:
            return None, False

        if not response_text:
            return None, True

        try:
            return json.loads(response_text), True
        except json.JSONDecodeError:
            return {'raw_response': response_text}, False

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
    ) -> Union[Dict, List, None]:
        if not self.session:
            raise MiniAppAPIError("Session not initialized. Use async context manager.")

        url = f"{self.base_url}{endpoint}"

        try:
            kwargs: Dict[str, Any] = {'url': url}
            if data is not None:
                kwargs['json'] = data

            async with self.session.request(method, **kwargs) as response:
                response_data, is_json = await self._read_payload(response)

                if response.status >= 400:
                    error_message = _extract_server_message(response_data) or f'HTTP {response.status}'
                    logger.error(f"Ошибка API мини-приложения {response.status} ({endpoint}): {error_message}")
                    raise MiniAppAPIError(error_message, response.status, response_data)

                if not is_json:
                    logger.error(f"Некорректный ответ {endpoint}: тело ответа не является JSON")
                    raise MiniAppAPIError("Invalid response payload", response.status, response_data)

                return response_data

        except aiohttp.ClientError as e:
            logger.error(f"Запрос {endpoint} не выполнен: {e}")
            raise MiniAppAPIError(f"Request failed: {str(e)}") from e
        except asyncio.TimeoutError as e:
            logger.error(f"Таймаут запроса {endpoint}")
            raise MiniAppAPIError("Request timed out") from e

    async def _post_authorized(self, endpoint: str, init_data: str, **payload: Any) -> Any:
        body = {'initData': init_data}
        body.update(payload)
        return await self._make_request('POST', endpoint, body)

    @staticmethod
    def _parse(model, data: Any, endpoint: str):
        if not isinstance(data, dict):
            logger.error(f"Ожидался объект в ответе {endpoint}, получено: {type(data).__name__}")
            raise MiniAppAPIError("Invalid response payload", response_data=data)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Некорректный ответ {endpoint}: {e}")
            raise MiniAppAPIError("Invalid response payload", response_data=data) from e

    def _parse_list(self, model, data: Any, endpoint: str) -> list:
        if data is None:
            return []
        if not isinstance(data, list):
            logger.error(f"Ожидался список в ответе {endpoint}, получено: {type(data).__name__}")
            raise MiniAppAPIError("Invalid response payload", response_data=data)
        return [self._parse(model, item, endpoint) for item in data]

    async def fetch_status(self, init_data: str) -> MiniStatus:
        response = await self._post_authorized('/mini/status', init_data)
        return self._parse(MiniStatus, response, '/mini/status')

    async def fetch_servers(self, init_data: str) -> List[MiniServer]:
        response = await self._post_authorized('/mini/servers', init_data)
        return self._parse_list(MiniServer, response, '/mini/servers')

    async def fetch_plans(self, init_data: str) -> List[MiniPlan]:
        response = await self._post_authorized('/mini/plans', init_data)
        return self._parse_list(MiniPlan, response, '/mini/plans')

    async def fetch_config(self, init_data: str) -> MiniConfigResponse:
        response = await self._post_authorized('/mini/config', init_data)
        return self._parse(MiniConfigResponse, response or {}, '/mini/config')

    async def activate_server(self, init_data: str, server_id: str) -> MiniStatus:
        response = await self._post_authorized('/mini/activate', init_data, serverId=server_id)
        logger.info(f"Активирована локация {server_id}")
        return self._parse(MiniStatus, response, '/mini/activate')

    async def create_payment(
        self,
        init_data: str,
        plan_id: str,
        provider: PaymentProvider,
    ) -> MiniPayResponse:
        response = await self._post_authorized(
            '/mini/pay',
            init_data,
            planId=plan_id,
            provider=provider.value,
        )
        logger.info(f"Создан платёж по варианту {plan_id} через {provider.value}")
        return self._parse(MiniPayResponse, response, '/mini/pay')

    async def start_browser_login(self) -> BrowserLoginSession:
        response = await self._make_request('POST', '/mini/browser/start', {})
        return self._parse(BrowserLoginSession, response, '/mini/browser/start')

    async def get_browser_login_status(self, login_id: str) -> BrowserLoginStatus:
        response = await self._make_request('POST', '/mini/browser/status', {'loginId': login_id})
        return self._parse(BrowserLoginStatus, response, '/mini/browser/status')

    async def get_public_meta(self) -> PublicMeta:
        response = await self._make_request('GET', '/public/meta')
        return self._parse(PublicMeta, response or {}, '/public/meta')
