"""Tests for PlanApiClient against the in-process API."""

from unittest.mock import MagicMock

import httpx
import pytest

from unimedia.client.api_client import PlanApiClient, PlanApiError
from unimedia.core.plans import PlanConflictError, PlanRow

ROWS = [
    PlanRow(codice="70/0041-M", denominazione="Analisi matematica 1", cfu=12),
    PlanRow(codice="IN/0155", denominazione="Fondamenti di informatica", cfu=9),
]


def _stub_http(status_code: int, body: str) -> MagicMock:
    """httpx.Client stand-in whose every request gets the same response."""
    http = MagicMock(spec=httpx.Client)
    response = httpx.Response(status_code, text=body)
    http.get.return_value = response
    http.post.return_value = response
    return http


def test_get_missing_plan_is_none(plan_api):
    assert plan_api.get_plan("70-89") is None


def test_save_then_get(plan_api):
    saved = plan_api.save_plan("70-89", ROWS)
    assert saved.code == "70-89"
    assert saved.rows == ROWS

    fetched = plan_api.get_plan("70-89")
    assert fetched.rows == ROWS
    assert fetched.updated_at == saved.updated_at


def test_save_twice_conflicts(plan_api):
    plan_api.save_plan("70-89", ROWS)
    with pytest.raises(PlanConflictError) as exc_info:
        plan_api.save_plan("70-89", ROWS[:1])
    assert exc_info.value.code == "70-89"
    assert plan_api.get_plan("70-89").rows == ROWS


def test_get_bad_code_is_api_error(plan_api):
    with pytest.raises(PlanApiError) as exc_info:
        plan_api.get_plan("7-89")
    assert exc_info.value.status_code == 400
    assert "Bad code" in str(exc_info.value)


def test_save_validation_error(plan_api):
    with pytest.raises(PlanApiError) as exc_info:
        plan_api.save_plan("70-89", [PlanRow(codice="A", denominazione="B", cfu=0)])
    assert exc_info.value.status_code == 400
    assert str(exc_info.value).startswith("Errore salvataggio (400)")


def test_server_error_on_get():
    api = PlanApiClient(http=_stub_http(500, '{"error": "boom"}'))
    with pytest.raises(PlanApiError) as exc_info:
        api.get_plan("70-89")
    assert exc_info.value.status_code == 500


def test_malformed_body_on_get():
    api = PlanApiClient(http=_stub_http(200, "<html>proxy</html>"))
    with pytest.raises(PlanApiError):
        api.get_plan("70-89")


def test_save_without_ok_flag():
    api = PlanApiClient(http=_stub_http(200, '{"ok": false}'))
    with pytest.raises(PlanApiError):
        api.save_plan("70-89", ROWS)


def test_code_is_path_quoted():
    http = _stub_http(404, "")
    PlanApiClient(http=http).get_plan("70/89")
    http.get.assert_called_once_with("/api/plans/70%2F89")


def test_context_manager_closes_owned_client():
    with PlanApiClient("http://127.0.0.1:1") as api:
        http = api.http
    assert http.is_closed


def test_borrowed_client_left_open(client):
    with PlanApiClient(http=client):
        pass
    assert not client.is_closed
