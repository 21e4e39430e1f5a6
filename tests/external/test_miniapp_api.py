"""Тесты HTTP-клиента API мини-приложения на фейковом aiohttp-сервере."""

from typing import Any, Dict, List

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from vpn_miniapp.external.miniapp_api import MiniAppAPI, MiniAppAPIError, get_api_error_message
from vpn_miniapp.schemas.miniapp import BrowserLoginState, PaymentProvider, SubscriptionState


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _create_app(received: List[Dict[str, Any]]) -> web.Application:
    async def status(request: web.Request) -> web.Response:
        body = await request.json()
        received.append({"path": request.path, "body": body})
        if body.get("initData") != "valid":
            return web.json_response({"message": "Неверная подпись initData"}, status=401)
        return web.json_response(
            {
                "status": "active",
                "expiresAt": "2024-02-01T00:00:00Z",
                "daysLeft": 31,
                "progressLeftPct": 140,
                "servers": [{"id": 7, "name": "Нидерланды"}],
            }
        )

    async def plans(request: web.Request) -> web.Response:
        received.append({"path": request.path, "body": await request.json()})
        return web.json_response(
            [
                {"id": "m1-rub", "name": "1 месяц", "price": 199, "currency": "rub", "periodDays": 30},
                {"id": "m1-xtr", "name": "1 месяц", "price": 150, "currency": "XTR", "periodDays": 30, "providerCode": "unknown"},
            ]
        )

    async def servers(request: web.Request) -> web.Response:
        return web.json_response({"items": []})

    async def activate(request: web.Request) -> web.Response:
        body = await request.json()
        received.append({"path": request.path, "body": body})
        return web.json_response(
            {"message": ["Локация переполнена", "Попробуйте другую"]},
            status=409,
        )

    async def pay(request: web.Request) -> web.Response:
        received.append({"path": request.path, "body": await request.json()})
        return web.json_response({"paymentUrl": "https://pay.test/1", "paymentId": 15})

    async def config(request: web.Request) -> web.Response:
        return web.Response(text="<html>Bad gateway</html>", status=502)

    async def browser_start(request: web.Request) -> web.Response:
        return web.json_response(
            {"loginId": "login-1", "expiresAt": "2024-01-01T12:05:00Z", "deepLink": "https://t.me/bot?start=x"}
        )

    async def browser_status(request: web.Request) -> web.Response:
        body = await request.json()
        received.append({"path": request.path, "body": body})
        return web.json_response({"status": "APPROVED", "initData": "approved"})

    async def meta(request: web.Request) -> web.Response:
        received.append({"path": request.path, "method": request.method})
        return web.json_response({"botName": "VPN", "supportTelegram": "@support"})

    app = web.Application()
    app.router.add_post("/api/mini/status", status)
    app.router.add_post("/api/mini/plans", plans)
    app.router.add_post("/api/mini/servers", servers)
    app.router.add_post("/api/mini/activate", activate)
    app.router.add_post("/api/mini/pay", pay)
    app.router.add_post("/api/mini/config", config)
    app.router.add_post("/api/mini/browser/start", browser_start)
    app.router.add_post("/api/mini/browser/status", browser_status)
    app.router.add_get("/api/public/meta", meta)
    return app


def _base_url(client: TestClient) -> str:
    return str(client.make_url("/api/"))


@pytest.mark.anyio("asyncio")
async def test_fetch_status_sends_init_data_in_body() -> None:
    received: List[Dict[str, Any]] = []

    async with TestClient(TestServer(_create_app(received))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            status = await api.fetch_status("valid")

    assert received == [{"path": "/api/mini/status", "body": {"initData": "valid"}}]
    assert status.state == SubscriptionState.ACTIVE
    assert status.days_left == 31
    assert status.progress_pct == 100
    assert status.active_server_id == "7"


@pytest.mark.anyio("asyncio")
async def test_http_error_carries_server_message() -> None:
    async with TestClient(TestServer(_create_app([]))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            with pytest.raises(MiniAppAPIError) as exc_info:
                await api.fetch_status("forged")

    error = exc_info.value
    assert error.status_code == 401
    assert error.message == "Неверная подпись initData"
    assert get_api_error_message(error, "fallback") == "Неверная подпись initData"


@pytest.mark.anyio("asyncio")
async def test_message_list_is_joined() -> None:
    received: List[Dict[str, Any]] = []

    async with TestClient(TestServer(_create_app(received))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            with pytest.raises(MiniAppAPIError) as exc_info:
                await api.activate_server("valid", "srv-1")

    assert received[0]["body"] == {"initData": "valid", "serverId": "srv-1"}
    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Локация переполнена\nПопробуйте другую"


@pytest.mark.anyio("asyncio")
async def test_non_json_error_body() -> None:
    async with TestClient(TestServer(_create_app([]))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            with pytest.raises(MiniAppAPIError) as exc_info:
                await api.fetch_config("valid")

    error = exc_info.value
    assert error.status_code == 502
    assert error.message == "HTTP 502"
    assert error.response_data == {"raw_response": "<html>Bad gateway</html>"}


@pytest.mark.anyio("asyncio")
async def test_fetch_plans_parses_variants() -> None:
    async with TestClient(TestServer(_create_app([]))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            plans = await api.fetch_plans("valid")

    assert [plan.id for plan in plans] == ["m1-rub", "m1-xtr"]
    assert plans[0].currency == "RUB"
    assert plans[0].period_days == 30
    assert plans[1].provider is None


@pytest.mark.anyio("asyncio")
async def test_unexpected_payload_shape_is_an_api_error() -> None:
    async with TestClient(TestServer(_create_app([]))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            with pytest.raises(MiniAppAPIError) as exc_info:
                await api.fetch_servers("valid")

    assert exc_info.value.message == "Invalid response payload"
    assert exc_info.value.status_code is None


@pytest.mark.anyio("asyncio")
async def test_create_payment_sends_provider_code() -> None:
    received: List[Dict[str, Any]] = []

    async with TestClient(TestServer(_create_app(received))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            response = await api.create_payment("valid", "m1-rub", PaymentProvider.PLATEGA)

    assert received[0]["body"] == {"initData": "valid", "planId": "m1-rub", "provider": "PLATEGA"}
    assert response.payment_url == "https://pay.test/1"
    assert response.invoice_link is None
    assert response.payment_id == "15"


@pytest.mark.anyio("asyncio")
async def test_browser_login_and_public_meta() -> None:
    received: List[Dict[str, Any]] = []

    async with TestClient(TestServer(_create_app(received))) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            session = await api.start_browser_login()
            status = await api.get_browser_login_status(session.login_id)
            meta = await api.get_public_meta()

    assert session.deep_link == "https://t.me/bot?start=x"
    assert status.status == BrowserLoginState.APPROVED
    assert status.init_data == "approved"
    assert meta.bot_name == "VPN"
    assert meta.support_telegram == "@support"
    assert received[0]["body"] == {"loginId": "login-1"}
    assert received[1] == {"path": "/api/public/meta", "method": "GET"}


@pytest.mark.anyio("asyncio")
async def test_request_without_session_fails() -> None:
    api = MiniAppAPI("http://miniapp.test/api")

    with pytest.raises(MiniAppAPIError) as exc_info:
        await api.fetch_status("valid")

    assert "Session not initialized" in exc_info.value.message


@pytest.mark.anyio("asyncio")
async def test_connection_error_is_wrapped() -> None:
    async with MiniAppAPI("http://127.0.0.1:9/api", timeout_seconds=2) as api:
        with pytest.raises(MiniAppAPIError) as exc_info:
            await api.fetch_plans("valid")

    assert exc_info.value.message.startswith("Request failed")


def test_get_api_error_message_fallbacks() -> None:
    assert get_api_error_message(MiniAppAPIError("", 500, {"error": "Сбой"}), "fallback") == "Сбой"
    assert get_api_error_message(MiniAppAPIError("", 500, None), "fallback") == "fallback"
    assert get_api_error_message(RuntimeError(""), "fallback") == "fallback"
    assert get_api_error_message(RuntimeError("boom"), "fallback") == "boom"


def _create_broken_app() -> web.Application:
    async def html_page(request: web.Request) -> web.Response:
        return web.Response(text="<html>Maintenance</html>", content_type="text/html")

    async def binary_body(request: web.Request) -> web.Response:
        return web.Response(body=b"\xff\xfe\xfa", content_type="application/json")

    async def binary_error(request: web.Request) -> web.Response:
        return web.Response(body=b"\xff\xfe\xfa", status=500, content_type="application/json")

    async def list_body(request: web.Request) -> web.Response:
        return web.json_response([{"status": "ACTIVE"}])

    app = web.Application()
    app.router.add_post("/api/mini/status", html_page)
    app.router.add_post("/api/mini/pay", html_page)
    app.router.add_post("/api/mini/config", binary_body)
    app.router.add_post("/api/mini/plans", binary_error)
    app.router.add_post("/api/mini/activate", list_body)
    return app


@pytest.mark.anyio("asyncio")
async def test_html_success_body_is_rejected() -> None:
    async with TestClient(TestServer(_create_broken_app())) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            with pytest.raises(MiniAppAPIError) as pay_error:
                await api.create_payment("valid", "m1-rub", PaymentProvider.PLATEGA)
            with pytest.raises(MiniAppAPIError) as status_error:
                await api.fetch_status("valid")

    for error in (pay_error.value, status_error.value):
        assert error.message == "Invalid response payload"
        assert error.status_code == 200
        assert error.response_data == {"raw_response": "<html>Maintenance</html>"}


@pytest.mark.anyio("asyncio")
async def test_undecodable_body_is_wrapped() -> None:
    async with TestClient(TestServer(_create_broken_app())) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            with pytest.raises(MiniAppAPIError) as config_error:
                await api.fetch_config("valid")
            with pytest.raises(MiniAppAPIError) as plans_error:
                await api.fetch_plans("valid")

    assert config_error.value.message == "Invalid response payload"
    assert config_error.value.status_code == 200
    assert plans_error.value.message == "HTTP 500"
    assert plans_error.value.status_code == 500


@pytest.mark.anyio("asyncio")
async def test_object_endpoint_rejects_json_list() -> None:
    async with TestClient(TestServer(_create_broken_app())) as client:
        async with MiniAppAPI(_base_url(client)) as api:
            with pytest.raises(MiniAppAPIError) as exc_info:
                await api.activate_server("valid", "srv-1")

    assert exc_info.value.message == "Invalid response payload"
    assert exc_info.value.response_data == [{"status": "ACTIVE"}]
