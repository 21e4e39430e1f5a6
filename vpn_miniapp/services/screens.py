"""Экраны мини-приложения и переходы между ними."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from vpn_miniapp.schemas.miniapp import BrowserLoginSession, BrowserLoginState


class ScreenKind(str, Enum):
    LOADING = "loading"
    FATAL_ERROR = "fatal_error"
    STANDALONE_GATE = "standalone_gate"
    BROWSER_LOGIN_GATE = "browser_login_gate"
    HOME = "home"
    CONFIG = "config"
    PLANS = "plans"
    HELP = "help"


FUNCTIONAL_SCREENS = frozenset({
    ScreenKind.HOME,
    ScreenKind.CONFIG,
    ScreenKind.PLANS,
    ScreenKind.HELP,
})


class ScreenEvent(str, Enum):
    BOOTSTRAP_SUCCEEDED = "bootstrap_succeeded"
    BOOTSTRAP_FAILED = "bootstrap_failed"
    CREDENTIAL_MISSING = "credential_missing"
    STANDALONE_MODE = "standalone_mode"
    BROWSER_LOGIN_STARTED = "browser_login_started"
    BROWSER_LOGIN_EXPIRED = "browser_login_expired"
    CREDENTIAL_SUBMITTED = "credential_submitted"
    RETRY = "retry"
    OPEN_CONFIG = "open_config"
    OPEN_PLANS = "open_plans"
    OPEN_HELP = "open_help"
    GO_HOME = "go_home"


@dataclass(frozen=True)
class BrowserLoginView:
    login_id: str
    expires_at: Optional[datetime] = None
    deep_link: Optional[str] = None
    status: BrowserLoginState = BrowserLoginState.PENDING

    @classmethod
    def from_session(cls, session: BrowserLoginSession) -> "BrowserLoginView":
        return cls(
            login_id=session.login_id,
            expires_at=session.expires_at,
            deep_link=session.deep_link,
        )


@dataclass(frozen=True)
class ScreenState:
    kind: ScreenKind = ScreenKind.LOADING
    error_message: Optional[str] = None
    browser_login: Optional[BrowserLoginView] = None

    @property
    def is_functional(self) -> bool:
        return self.kind in FUNCTIONAL_SCREENS

    @property
    def back_button_visible(self) -> bool:
        return self.is_functional and self.kind != ScreenKind.HOME


LOADING = ScreenState(ScreenKind.LOADING)
HOME = ScreenState(ScreenKind.HOME)


def transition(
    current: ScreenState,
    event: ScreenEvent,
    *,
    message: Optional[str] = None,
    browser_login: Optional[BrowserLoginView] = None,
) -> ScreenState:
    """Следующий экран для события. Недопустимая пара возвращает ``current``."""

    kind = current.kind

    if kind == ScreenKind.LOADING:
        if event == ScreenEvent.BOOTSTRAP_SUCCEEDED:
            return HOME
        if event in (ScreenEvent.BOOTSTRAP_FAILED, ScreenEvent.CREDENTIAL_MISSING):
            return ScreenState(ScreenKind.FATAL_ERROR, error_message=message)
        if event == ScreenEvent.STANDALONE_MODE:
            return ScreenState(ScreenKind.STANDALONE_GATE, error_message=message)
        if event == ScreenEvent.BROWSER_LOGIN_STARTED and browser_login is not None:
            return ScreenState(ScreenKind.BROWSER_LOGIN_GATE, browser_login=browser_login)
        return current

    if kind == ScreenKind.FATAL_ERROR:
        if event == ScreenEvent.RETRY:
            return LOADING
        return current

    if kind in (ScreenKind.STANDALONE_GATE, ScreenKind.BROWSER_LOGIN_GATE):
        if event in (ScreenEvent.CREDENTIAL_SUBMITTED, ScreenEvent.RETRY):
            return LOADING
        if event == ScreenEvent.BROWSER_LOGIN_STARTED and browser_login is not None:
            return ScreenState(ScreenKind.BROWSER_LOGIN_GATE, browser_login=browser_login)
        if (
            event == ScreenEvent.BROWSER_LOGIN_EXPIRED
            and kind == ScreenKind.BROWSER_LOGIN_GATE
            and current.browser_login is not None
        ):
            expired = replace(current.browser_login, status=BrowserLoginState.EXPIRED)
            return replace(current, browser_login=expired)
        return current

    # функциональные экраны
    if event == ScreenEvent.GO_HOME:
        return HOME
    if event == ScreenEvent.OPEN_HELP:
        return ScreenState(ScreenKind.HELP)
    if kind == ScreenKind.HOME:
        if event == ScreenEvent.OPEN_CONFIG:
            return ScreenState(ScreenKind.CONFIG)
        if event == ScreenEvent.OPEN_PLANS:
            return ScreenState(ScreenKind.PLANS)
    return current
