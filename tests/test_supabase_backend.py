from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import anyio
import pytest
import requests

from menu_admin.admin.page import AdminMenuPage
from menu_admin.auth.session import AdminSession, AuthContext
from menu_admin.backend import client as supabase_client
from menu_admin.backend.auth import SupabaseAuth
from menu_admin.backend.client import SupabaseHTTP
from menu_admin.backend.rest import SupabaseMenuRepository
from menu_admin.core.errors import ExternalAPIError
from menu_admin.menu.models import MenuItemUpdate
from menu_admin.menu.repository import DevelopmentFallbackRepository

from conftest import BACKEND_ROWS, BackendDouble


def _response(status_code: int = 200, payload: Any = None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.content = b"" if payload is None and not text else b"x"
    response.text = text
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


class RecordingRequests:
    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def __call__(self, method: str, url: str, **kwargs: Any) -> MagicMock:
        self.calls.append({"method": method, "url": url, **kwargs})
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture()
def http() -> SupabaseHTTP:
    return SupabaseHTTP(url="https://project.supabase.co/", anon_key="anon-key", timeout=5)


def test_list_items_reads_whole_table(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(payload=BACKEND_ROWS))
    monkeypatch.setattr(supabase_client.requests, "request", fake)
    repository = SupabaseMenuRepository(AdminSession(access_token="user-jwt"), http=http)

    snapshot = anyio.run(repository.list_items)

    assert [item.id for item in snapshot.items] == ["3", "1", "2"]
    assert snapshot.simulated is False
    call = fake.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://project.supabase.co/rest/v1/menu_items"
    assert call["params"] == {"select": "*"}
    assert call["headers"]["apikey"] == "anon-key"
    assert call["headers"]["Authorization"] == "Bearer user-jwt"
    assert call["timeout"] == 5


def test_requests_fall_back_to_anon_key(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(payload=[]))
    monkeypatch.setattr(supabase_client.requests, "request", fake)
    repository = SupabaseMenuRepository(AdminSession(), http=http)

    snapshot = anyio.run(repository.list_items)

    assert snapshot.items == []
    assert fake.calls[0]["headers"]["Authorization"] == "Bearer anon-key"


def test_update_item_patches_by_id(monkeypatch, http) -> None:
    updated_row = dict(BACKEND_ROWS[1], price="$16.99")
    fake = RecordingRequests(_response(payload=[updated_row]))
    monkeypatch.setattr(supabase_client.requests, "request", fake)
    repository = SupabaseMenuRepository(AdminSession(access_token="user-jwt"), http=http)

    updated = anyio.run(repository.update_item, "1", MenuItemUpdate(price="$16.99"))

    assert updated.price == "$16.99"
    call = fake.calls[0]
    assert call["method"] == "PATCH"
    assert call["params"] == {"id": "eq.1"}
    assert call["json"] == {"price": "$16.99"}
    assert call["headers"]["Prefer"] == "return=representation"


def test_update_item_without_match_returns_none(monkeypatch, http) -> None:
    monkeypatch.setattr(supabase_client.requests, "request", RecordingRequests(_response(payload=[])))
    repository = SupabaseMenuRepository(AdminSession(), http=http)

    assert anyio.run(repository.update_item, "99", MenuItemUpdate(price="$1")) is None


def test_delete_item_filters_by_id(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(status_code=204))
    monkeypatch.setattr(supabase_client.requests, "request", fake)
    repository = SupabaseMenuRepository(AdminSession(), http=http)

    anyio.run(repository.delete_item, "2")

    assert fake.calls[0]["method"] == "DELETE"
    assert fake.calls[0]["params"] == {"id": "eq.2"}


def test_error_response_carries_backend_message(monkeypatch, http) -> None:
    fake = RecordingRequests(
        _response(status_code=401, payload={"code": "42501", "message": "permission denied for table menu_items"})
    )
    monkeypatch.setattr(supabase_client.requests, "request", fake)
    repository = SupabaseMenuRepository(AdminSession(), http=http)

    with pytest.raises(ExternalAPIError) as excinfo:
        anyio.run(repository.list_items)

    assert str(excinfo.value) == "permission denied for table menu_items"
    assert excinfo.value.status_code == 401
    assert excinfo.value.service == "supabase"


def test_error_response_without_json_uses_text(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(status_code=502, text="Bad Gateway"))
    monkeypatch.setattr(supabase_client.requests, "request", fake)

    with pytest.raises(ExternalAPIError, match="Bad Gateway"):
        http.request("GET", "/rest/v1/menu_items")


def test_network_error_becomes_external_api_error(monkeypatch, http) -> None:
    fake = RecordingRequests(requests.ConnectionError("Connection refused"))
    monkeypatch.setattr(supabase_client.requests, "request", fake)
    repository = SupabaseMenuRepository(AdminSession(), http=http)

    with pytest.raises(ExternalAPIError, match="Connection refused") as excinfo:
        anyio.run(repository.list_items)

    assert excinfo.value.status_code is None


def test_malformed_rows_are_reported(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(payload=[{"id": "1", "price": "$1"}]))
    monkeypatch.setattr(supabase_client.requests, "request", fake)
    repository = SupabaseMenuRepository(AdminSession(), http=http)

    with pytest.raises(ExternalAPIError, match="Invalid menu row"):
        anyio.run(repository.list_items)


def test_get_user_returns_user_for_valid_session(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(payload={"id": "admin-1", "email": "admin@example.com"}))
    monkeypatch.setattr(supabase_client.requests, "request", fake)

    user = anyio.run(SupabaseAuth(http).get_user, "user-jwt")

    assert user["id"] == "admin-1"
    assert fake.calls[0]["url"] == "https://project.supabase.co/auth/v1/user"
    assert fake.calls[0]["headers"]["Authorization"] == "Bearer user-jwt"


def test_get_user_returns_none_for_expired_session(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(status_code=401, payload={"msg": "invalid JWT"}))
    monkeypatch.setattr(supabase_client.requests, "request", fake)

    assert anyio.run(SupabaseAuth(http).get_user, "expired") is None


def test_get_user_raises_on_server_error(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(status_code=500, payload={"msg": "database down"}))
    monkeypatch.setattr(supabase_client.requests, "request", fake)

    with pytest.raises(ExternalAPIError, match="database down"):
        anyio.run(SupabaseAuth(http).get_user, "user-jwt")


def test_sign_in_with_password_returns_access_token(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(payload={"access_token": "fresh-jwt", "token_type": "bearer"}))
    monkeypatch.setattr(supabase_client.requests, "request", fake)

    token = anyio.run(SupabaseAuth(http).sign_in_with_password, "admin@example.com", "secret")

    assert token == "fresh-jwt"
    call = fake.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://project.supabase.co/auth/v1/token"
    assert call["params"] == {"grant_type": "password"}
    assert call["json"] == {"email": "admin@example.com", "password": "secret"}


def test_sign_in_failure_carries_description(monkeypatch, http) -> None:
    fake = RecordingRequests(
        _response(status_code=400, payload={"error": "invalid_grant", "error_description": "Invalid login credentials"})
    )
    monkeypatch.setattr(supabase_client.requests, "request", fake)

    with pytest.raises(ExternalAPIError, match="Invalid login credentials"):
        anyio.run(SupabaseAuth(http).sign_in_with_password, "admin@example.com", "wrong")


def test_sign_out_posts_logout(monkeypatch, http) -> None:
    fake = RecordingRequests(_response(status_code=204))
    monkeypatch.setattr(supabase_client.requests, "request", fake)

    anyio.run(SupabaseAuth(http).sign_out, "user-jwt")

    assert fake.calls[0]["method"] == "POST"
    assert fake.calls[0]["url"] == "https://project.supabase.co/auth/v1/logout"
    assert fake.calls[0]["headers"]["Authorization"] == "Bearer user-jwt"


def _html_response() -> MagicMock:
    response = _response(text="<html>maintenance</html>")
    response.json.side_effect = requests.JSONDecodeError("Expecting value", "<html>", 0)
    return response


def _null_response() -> MagicMock:
    response = _response(text="null")
    response.json.side_effect = None
    response.json.return_value = None
    return response


def test_get_user_rejects_non_json_body(monkeypatch, http) -> None:
    monkeypatch.setattr(supabase_client.requests, "request", RecordingRequests(_html_response()))

    with pytest.raises(ExternalAPIError, match="not valid JSON") as excinfo:
        anyio.run(SupabaseAuth(http).get_user, "user-jwt")

    assert excinfo.value.status_code == 200
    assert excinfo.value.path == "/auth/v1/user"


def test_list_items_rejects_non_json_body(monkeypatch, http) -> None:
    monkeypatch.setattr(supabase_client.requests, "request", RecordingRequests(_html_response()))
    repository = SupabaseMenuRepository(AdminSession(), http=http)

    with pytest.raises(ExternalAPIError, match="not valid JSON"):
        anyio.run(repository.list_items)


@pytest.mark.parametrize("body", [_null_response, lambda: _response(payload=["fresh-jwt"])])
def test_sign_in_rejects_non_object_body(monkeypatch, http, body) -> None:
    monkeypatch.setattr(supabase_client.requests, "request", RecordingRequests(body()))

    with pytest.raises(ExternalAPIError, match="Unexpected response shape"):
        anyio.run(SupabaseAuth(http).sign_in_with_password, "admin@example.com", "secret")


def test_guard_uses_dev_flag_when_auth_body_is_not_json(monkeypatch, http) -> None:
    monkeypatch.setattr(supabase_client.requests, "request", RecordingRequests(_html_response()))
    session = AdminSession(access_token="user-jwt", dev_authenticated=True)
    page = AdminMenuPage(
        "page-1",
        DevelopmentFallbackRepository(BackendDouble(), session),
        AuthContext(session, SupabaseAuth(http)),
    )

    assert anyio.run(page.check_access) is True
    assert page.redirect is None
