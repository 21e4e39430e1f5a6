"""Контроллер сессии мини-приложения.

Владеет экраном, уведомлением, снимками статуса/локаций/тарифов и флагами
занятости. Слой отображения читает ``snapshot()`` и вызывает именованные
действия; ни одно действие не бросает исключений наружу, ошибки уходят
в уведомление или на экран фатальной ошибки (только при первой загрузке).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import (
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    List,
    Optional,
    Set,
    Tuple,
)

from vpn_miniapp.config import settings
from vpn_miniapp.external.miniapp_api import MiniAppAPI, MiniAppAPIError, get_api_error_message
from vpn_miniapp.localization import Texts, get_texts
from vpn_miniapp.schemas.miniapp import (
    BrowserLoginSession,
    BrowserLoginState,
    MiniPlan,
    MiniServer,
    MiniStatus,
    PaymentProvider,
    PublicMeta,
)
from vpn_miniapp.services.credential_resolver import CredentialResolver, RetryPolicy
from vpn_miniapp.services.host_bridge import (
    HapticKind,
    HostBridge,
    HostCapabilityError,
    InvoiceStatus,
)
from vpn_miniapp.services.payment_orchestrator import (
    PaymentContinuation,
    PaymentError,
    PaymentOrchestrator,
    PaymentOutcome,
)
from vpn_miniapp.services.screens import (
    LOADING,
    BrowserLoginView,
    ScreenEvent,
    ScreenKind,
    ScreenState,
    transition,
)
from vpn_miniapp.services.toast_service import ToastNotice, ToastService
from vpn_miniapp.utils.language import extract_language_code, resolve_miniapp_language
from vpn_miniapp.utils.plan_grouping import (
    PaymentMethodOption,
    PlanGroup,
    find_plan_group,
    group_plans,
    payment_method_options,
)

logger = logging.getLogger(__name__)


_GATE_SCREENS = (ScreenKind.STANDALONE_GATE, ScreenKind.BROWSER_LOGIN_GATE)


@dataclass(frozen=True)
class SessionSnapshot:
    screen: ScreenState
    screen_entered: bool
    toast: Optional[ToastNotice]
    language: str
    status: Optional[MiniStatus]
    servers: Tuple[MiniServer, ...]
    plan_groups: Tuple[PlanGroup, ...]
    config_url: Optional[str]
    config_copied: bool
    activating_server_ids: FrozenSet[str]
    refreshing_servers: bool
    refreshing_plans: bool
    paying_group_keys: FrozenSet[str]
    payment_sheet_open: bool
    selected_plan_group: Optional[PlanGroup]
    payment_options: Tuple[PaymentMethodOption, ...]
    public_meta: Optional[PublicMeta]

    @property
    def active_server_id(self) -> Optional[str]:
        return self.status.active_server_id if self.status else None

    @property
    def has_active_server(self) -> bool:
        return bool(self.status and self.status.has_active_server)


class MiniAppSessionController:

    def __init__(
        self,
        api: MiniAppAPI,
        host: HostBridge,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        browser_login_enabled: Optional[bool] = None,
        on_change: Optional[Callable[[SessionSnapshot], None]] = None,
    ):
        self.api = api
        self.host = host
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep
        if browser_login_enabled is None:
            browser_login_enabled = settings.MINIAPP_BROWSER_LOGIN_ENABLED
        self.browser_login_enabled = browser_login_enabled
        self._on_change = on_change

        self._screen: ScreenState = LOADING
        self._screen_entered = True
        self._toasts = ToastService(on_change=self._changed)
        self._language = resolve_miniapp_language(host.get_language_code())
        self._init_data: Optional[str] = None

        self._status: Optional[MiniStatus] = None
        self._servers: List[MiniServer] = []
        self._plans: List[MiniPlan] = []
        self._plan_groups: List[PlanGroup] = []
        self._public_meta: Optional[PublicMeta] = None

        self._config_url: Optional[str] = None
        self._config_copied = False
        self._activating: Set[str] = set()
        self._refreshing_servers = False
        self._refreshing_plans = False
        self._payment_sheet_open = False
        self._selected_group_key: Optional[str] = None

        self._inflight: Dict[str, asyncio.Future] = {}
        self._background: Set[asyncio.Task] = set()
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._browser_poll_task: Optional[asyncio.Task] = None

        self._payments = PaymentOrchestrator(api, host, reconcile=self.refresh_status)

    # ------------------------------------------------------------------
    # Снимок состояния

    @property
    def screen(self) -> ScreenState:
        return self._screen

    @property
    def init_data(self) -> Optional[str]:
        return self._init_data

    @property
    def _texts(self) -> Texts:
        return get_texts(self._language)

    @property
    def selected_plan_group(self) -> Optional[PlanGroup]:
        return find_plan_group(self._plan_groups, self._selected_group_key)

    def snapshot(self) -> SessionSnapshot:
        selected = self.selected_plan_group
        options: Tuple[PaymentMethodOption, ...] = ()
        if selected is not None:
            options = tuple(payment_method_options(selected, language=self._language))

        return SessionSnapshot(
            screen=self._screen,
            screen_entered=self._screen_entered,
            toast=self._toasts.current,
            language=self._language,
            status=self._status,
            servers=tuple(self._servers),
            plan_groups=tuple(self._plan_groups),
            config_url=self._config_url,
            config_copied=self._config_copied,
            activating_server_ids=frozenset(self._activating),
            refreshing_servers=self._refreshing_servers,
            refreshing_plans=self._refreshing_plans,
            paying_group_keys=self._payments.busy_group_keys,
            payment_sheet_open=self._payment_sheet_open,
            selected_plan_group=selected,
            payment_options=options,
            public_meta=self._public_meta,
        )

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.snapshot())

    # ------------------------------------------------------------------
    # Загрузка сессии

    async def start(self) -> None:
        self.host.ready()
        self.host.set_back_button_visible(False)
        self._spawn(self._load_public_meta())
        await self._bootstrap()

    async def retry(self) -> None:
        next_screen = transition(self._screen, ScreenEvent.RETRY)
        if next_screen == self._screen:
            return

        logger.info("Повторная загрузка мини-приложения")
        self._stop_browser_login_polling()
        self._reset_session()
        self._set_screen(next_screen)
        await self._bootstrap()

    def _reset_session(self) -> None:
        self._init_data = None
        self._status = None
        self._servers = []
        self._plans = []
        self._plan_groups = []
        self._config_url = None
        self._config_copied = False
        self._payment_sheet_open = False
        self._selected_group_key = None
        self._toasts.clear()

    async def _bootstrap(self) -> None:
        resolver = CredentialResolver(
            self.host,
            page_url=self.host.get_page_url(),
            policy=self.retry_policy,
            sleep=self._sleep,
        )
        credential = await resolver.resolve()

        if not credential:
            await self._enter_degraded_mode()
            return

        await self._bootstrap_with_credential(credential)

    async def _bootstrap_with_credential(self, credential: str) -> None:
        language_code = extract_language_code(credential, self.host.get_language_code())
        self._language = resolve_miniapp_language(language_code)
        self._init_data = credential

        try:
            status = await self.api.fetch_status(credential)
        except MiniAppAPIError as error:
            logger.error(f"Первичная загрузка статуса не удалась: {error.message}")
            message = get_api_error_message(error, self._texts.STATUS_LOAD_FAILED)
            self._set_screen(
                transition(self._screen, ScreenEvent.BOOTSTRAP_FAILED, message=message)
            )
            return
        except Exception as error:
            logger.exception(f"Непредвиденная ошибка при загрузке статуса: {error}")
            self._set_screen(
                transition(
                    self._screen,
                    ScreenEvent.BOOTSTRAP_FAILED,
                    message=self._texts.STATUS_LOAD_FAILED,
                )
            )
            return

        self._status = status
        logger.info(f"Мини-приложение загружено, статус подписки {status.state.value}")
        self._set_screen(transition(self._screen, ScreenEvent.BOOTSTRAP_SUCCEEDED))
        self._spawn(self._refresh_servers_in_background())

    async def _enter_degraded_mode(self) -> None:
        texts = self._texts

        if not self.browser_login_enabled:
            self._set_screen(
                transition(
                    self._screen,
                    ScreenEvent.CREDENTIAL_MISSING,
                    message=texts.OPEN_FROM_TELEGRAM,
                )
            )
            return

        try:
            session = await self.api.start_browser_login()
        except MiniAppAPIError as error:
            logger.warning(f"Не удалось начать вход через браузер: {error.message}")
            self._set_screen(
                transition(
                    self._screen,
                    ScreenEvent.STANDALONE_MODE,
                    message=get_api_error_message(error, texts.CODE_FAILED),
                )
            )
            return

        self._enter_browser_login(session)

    async def _load_public_meta(self) -> None:
        try:
            self._public_meta = await self.api.get_public_meta()
        except MiniAppAPIError as error:
            logger.info(f"Публичные данные бота не загружены: {error.message}")
            return
        self._changed()

    # ------------------------------------------------------------------
    # Вход через браузер

    def _enter_browser_login(self, session: BrowserLoginSession) -> None:
        view = BrowserLoginView.from_session(session)
        self._set_screen(
            transition(self._screen, ScreenEvent.BROWSER_LOGIN_STARTED, browser_login=view)
        )
        self._stop_browser_login_polling()
        self._browser_poll_task = asyncio.create_task(self._poll_browser_login(view.login_id))

    def _is_waiting_for(self, login_id: str) -> bool:
        login = self._screen.browser_login
        return (
            self._screen.kind == ScreenKind.BROWSER_LOGIN_GATE
            and login is not None
            and login.login_id == login_id
            and login.status == BrowserLoginState.PENDING
        )

    async def _poll_browser_login(self, login_id: str) -> None:
        interval = settings.MINIAPP_BROWSER_LOGIN_POLL_SECONDS

        while True:
            await self._sleep(interval)
            if not self._is_waiting_for(login_id):
                return

            try:
                result = await self.api.get_browser_login_status(login_id)
            except MiniAppAPIError as error:
                logger.debug(f"Статус входа {login_id} не получен, повторим: {error.message}")
                continue

            if result.status == BrowserLoginState.EXPIRED:
                logger.info(f"Код входа {login_id} истёк")
                self._set_screen(transition(self._screen, ScreenEvent.BROWSER_LOGIN_EXPIRED))
                return

            if result.status == BrowserLoginState.APPROVED and result.init_data:
                logger.info(f"Вход {login_id} подтверждён в Telegram")
                await self.submit_standalone_init_data(result.init_data)
                return

    def _stop_browser_login_polling(self) -> None:
        task = self._browser_poll_task
        self._browser_poll_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()

    async def restart_browser_login(self) -> None:
        if self._screen.kind not in _GATE_SCREENS:
            return

        try:
            session = await self.api.start_browser_login()
        except MiniAppAPIError as error:
            self._toasts.show_error(get_api_error_message(error, self._texts.CODE_FAILED))
            return

        self._toasts.clear()
        self._enter_browser_login(session)

    async def submit_standalone_init_data(self, init_data: str) -> None:
        value = (init_data or "").strip()
        if not value:
            return

        next_screen = transition(self._screen, ScreenEvent.CREDENTIAL_SUBMITTED)
        if next_screen == self._screen:
            return

        self._stop_browser_login_polling()
        self._toasts.clear()
        self._set_screen(next_screen)
        await self._bootstrap_with_credential(value)

    # ------------------------------------------------------------------
    # Навигация

    async def go_home(self) -> None:
        next_screen = transition(self._screen, ScreenEvent.GO_HOME)
        if next_screen == self._screen:
            return

        self._payment_sheet_open = False
        self._selected_group_key = None
        self._config_url = None
        self._config_copied = False
        self._cancel_timer("config_copied")
        self._set_screen(next_screen)

    async def handle_back_button(self) -> None:
        await self.go_home()

    async def open_help(self) -> None:
        self._set_screen(transition(self._screen, ScreenEvent.OPEN_HELP))

    async def open_config(self) -> None:
        if self._screen.kind != ScreenKind.HOME or not self._init_data:
            return
        if self._status is None or not self._status.has_active_server:
            return

        texts = self._texts
        self._toasts.clear()

        try:
            response = await self.api.fetch_config(self._init_data)
        except MiniAppAPIError as error:
            self._toasts.show_error(get_api_error_message(error, texts.CONFIG_LOAD_FAILED))
            return

        url = response.primary_url
        if not url:
            self._toasts.show_error(texts.CONFIG_UNAVAILABLE)
            return

        self._config_url = url
        self._config_copied = False
        self._set_screen(transition(self._screen, ScreenEvent.OPEN_CONFIG))

    async def open_plans(self) -> None:
        if self._screen.kind != ScreenKind.HOME:
            return

        self._toasts.clear()
        if not await self.refresh_plans():
            return
        self._set_screen(transition(self._screen, ScreenEvent.OPEN_PLANS))

    # ------------------------------------------------------------------
    # Данные

    async def refresh_status(self) -> bool:
        if not self._init_data:
            return False

        error = await self._coalesce("status", self._load_status)
        if error is not None:
            self._toasts.show_error(
                get_api_error_message(error, self._texts.STATUS_REFRESH_FAILED)
            )
            return False
        return True

    async def refresh_servers(self) -> bool:
        if not self._init_data:
            return False

        error = await self._coalesce("servers", self._load_servers)
        if error is not None:
            self._toasts.show_error(
                get_api_error_message(error, self._texts.SERVERS_LOAD_FAILED)
            )
            return False
        return True

    async def refresh_plans(self) -> bool:
        if not self._init_data:
            return False

        error = await self._coalesce("plans", self._load_plans)
        if error is not None:
            self._toasts.show_error(
                get_api_error_message(error, self._texts.PLANS_LOAD_FAILED)
            )
            return False
        return True

    async def _refresh_servers_in_background(self) -> None:
        error = await self._coalesce("servers", self._load_servers)
        if error is not None:
            logger.warning(f"Список локаций не загружен при старте: {error.message}")

    async def _load_status(self) -> Optional[MiniAppAPIError]:
        try:
            self._status = await self.api.fetch_status(self._init_data)
        except MiniAppAPIError as error:
            return error
        self._changed()
        return None

    async def _load_servers(self) -> Optional[MiniAppAPIError]:
        self._refreshing_servers = True
        self._changed()
        try:
            self._servers = await self.api.fetch_servers(self._init_data)
        except MiniAppAPIError as error:
            return error
        finally:
            self._refreshing_servers = False
            self._changed()
        return None

    async def _load_plans(self) -> Optional[MiniAppAPIError]:
        self._refreshing_plans = True
        self._changed()
        try:
            plans = await self.api.fetch_plans(self._init_data)
        except MiniAppAPIError as error:
            return error
        finally:
            self._refreshing_plans = False

        self._plans = plans
        self._plan_groups = group_plans(plans)
        if self.selected_plan_group is None:
            self._selected_group_key = None
            self._payment_sheet_open = False
        self._changed()
        return None

    async def _coalesce(self, key: str, factory: Callable[[], Awaitable]):
        """Повторный вызов во время запроса ждёт тот же запрос, а не шлёт новый."""

        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            self._inflight[key] = future

            def _forget(done: asyncio.Future, name: str = key) -> None:
                if self._inflight.get(name) is done:
                    del self._inflight[name]

            future.add_done_callback(_forget)
        return await asyncio.shield(future)

    # ------------------------------------------------------------------
    # Локации

    async def activate_server(self, server_id: str) -> None:
        if not self._init_data or not self._screen.is_functional:
            return
        if server_id in self._activating:
            return

        self._activating.add(server_id)
        self._toasts.clear()
        self._changed()

        try:
            status = await self.api.activate_server(self._init_data, server_id)
        except MiniAppAPIError as error:
            self.host.notify_haptic(HapticKind.ERROR)
            self._toasts.show_error(
                get_api_error_message(error, self._texts.SERVER_ACTIVATE_FAILED)
            )
        else:
            self._status = status
            self.host.notify_haptic(HapticKind.SUCCESS)
        finally:
            self._activating.discard(server_id)
            self._changed()

    # ------------------------------------------------------------------
    # Оплата

    async def select_plan(self, group_key: str) -> None:
        if self._screen.kind != ScreenKind.PLANS:
            return

        group = find_plan_group(self._plan_groups, group_key)
        if group is None:
            return

        self._selected_group_key = group.key
        self._payment_sheet_open = True
        self._changed()

    async def close_payment_sheet(self) -> None:
        if not self._payment_sheet_open:
            return
        self._payment_sheet_open = False
        self._changed()

    async def choose_payment_method(self, provider: PaymentProvider) -> Optional[PaymentOutcome]:
        group = self.selected_plan_group
        if group is None:
            return None

        texts = self._texts
        if not self._init_data:
            self._toasts.show_error(texts.SESSION_EXPIRED)
            return None

        # лист выбора остаётся открытым, чтобы можно было выбрать другой способ
        if self._payments.resolve_variant(group, provider, self._language) is None:
            self._toasts.show_error(texts.PAYMENT_METHOD_UNAVAILABLE)
            return None

        self._payment_sheet_open = False
        self._toasts.clear()
        self._changed()

        try:
            outcome = await self._payments.initiate(
                self._init_data,
                group,
                provider,
                self._language,
            )
        except PaymentError as error:
            self.host.notify_haptic(HapticKind.ERROR)
            self._toasts.show_error(error.message)
            return None
        except MiniAppAPIError as error:
            self.host.notify_haptic(HapticKind.ERROR)
            self._toasts.show_error(get_api_error_message(error, texts.PAYMENT_FAILED))
            return None
        finally:
            self._changed()

        self._announce_payment(outcome)
        return outcome

    def _announce_payment(self, outcome: PaymentOutcome) -> None:
        texts = self._texts

        if outcome.continuation == PaymentContinuation.REDIRECT:
            self._toasts.show_success(texts.OPENING_PAYMENT_PAGE)
            return

        if outcome.continuation == PaymentContinuation.COMPLETED:
            self.host.notify_haptic(HapticKind.SUCCESS)
            self._toasts.show_success(texts.PAYMENT_SUCCESS_EXTENDED)
            return

        status = outcome.invoice_status
        if status == InvoiceStatus.PAID:
            self.host.notify_haptic(HapticKind.SUCCESS)
            self._toasts.show_success(texts.PAYMENT_SUCCESS_EXTENDED)
        elif status == InvoiceStatus.CANCELLED:
            self._toasts.show_error(texts.PAYMENT_CANCELLED)
        elif status == InvoiceStatus.FAILED:
            self.host.notify_haptic(HapticKind.ERROR)
            self._toasts.show_error(texts.PAYMENT_FAILED)
        else:
            self._toasts.show_error(texts.PAYMENT_NOT_COMPLETED)

    # ------------------------------------------------------------------
    # Конфигурация и уведомления

    async def copy_config(self) -> None:
        if not self._config_url:
            return

        try:
            await self.host.copy_to_clipboard(self._config_url)
        except HostCapabilityError as error:
            logger.warning(f"Не удалось скопировать конфигурацию: {error}")
            self._toasts.show_error(self._texts.COPY_FAILED)
            return

        self._config_copied = True
        self._schedule_timer(
            "config_copied",
            settings.MINIAPP_CONFIG_COPIED_SECONDS,
            self._reset_config_copied,
        )
        self._changed()

    def _reset_config_copied(self) -> None:
        self._config_copied = False
        self._changed()

    async def dismiss_toast(self) -> None:
        self._toasts.clear()

    # ------------------------------------------------------------------
    # Служебное

    def _set_screen(self, screen: ScreenState) -> None:
        if screen == self._screen:
            return

        logger.debug(f"Экран: {self._screen.kind.value} -> {screen.kind.value}")
        self._screen = screen
        self.host.set_back_button_visible(screen.back_button_visible)

        self._screen_entered = False
        self._schedule_timer(
            "screen_fade",
            settings.get_screen_fade_seconds(),
            self._mark_screen_entered,
        )
        self._changed()

    def _mark_screen_entered(self) -> None:
        self._screen_entered = True
        self._changed()

    def _schedule_timer(self, name: str, delay: float, callback: Callable[[], None]) -> None:
        self._cancel_timer(name)
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            self._timers.pop(name, None)
            callback()

        self._timers[name] = loop.call_later(delay, _fire)

    def _cancel_timer(self, name: str) -> None:
        handle = self._timers.pop(name, None)
        if handle is not None:
            handle.cancel()

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        """Дождаться фоновых загрузок и сверок статуса после оплаты."""

        while True:
            tasks = list(self._background)
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await self._payments.drain()
            if not self._background:
                return

    async def aclose(self) -> None:
        self._stop_browser_login_polling()
        for name in list(self._timers):
            self._cancel_timer(name)
        for task in list(self._background):
            task.cancel()
        self._payments.cancel_pending()
        self._toasts.clear()
