"""HTTP client for the UniMedia plan store.

Thin wrapper over httpx for the two plan endpoints. No retries; a 404 on
lookup is an expected outcome and maps to None.
"""

from __future__ import annotations

from typing import Any, Iterable
from urllib.parse import quote

import httpx
import structlog

from unimedia.core.plans import PlanConflictError, PlanDocument, PlanRow

logger = structlog.get_logger(__name__)


class PlanApiError(Exception):
    """Raised when the plan store answers with an unexpected status."""

    def __init__(self, status_code: int, body: str, action: str = "richiesta"):
        self.status_code = status_code
        self.body = body
        self.action = action
        super().__init__(f"Errore {action} ({status_code}): {body}")


class PlanApiClient:
    """Client for GET /api/plans/{code} and POST /api/plans.

    Example:
        with PlanApiClient("http://127.0.0.1:8787") as api:
            plan = api.get_plan("70-89")
    """

    def __init__(self, base_url: str = "", http: httpx.Client | None = None):
        self._owns_http = http is None
        self.http = http or httpx.Client(base_url=base_url)

    def __enter__(self) -> PlanApiClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def get_plan(self, code: str) -> PlanDocument | None:
        """Fetch a plan by code.

        Returns:
            PlanDocument, or None if no plan has this code

        Raises:
            PlanApiError: On any status other than 200/404 or a malformed body
            httpx.HTTPError: On transport failure
        """
        response = self.http.get(f"/api/plans/{quote(code, safe='')}")
        if response.status_code == 404:
            logger.debug("plan_api.not_found", code=code)
            return None
        if response.status_code != 200:
            raise PlanApiError(response.status_code, response.text, action="verifica")

        data = _json_or_none(response)
        if not isinstance(data, dict) or not isinstance(data.get("rows"), list):
            raise PlanApiError(response.status_code, "Risposta non valida dal server.")
        return PlanDocument.from_dict(data)

    def save_plan(self, code: str, rows: Iterable[PlanRow]) -> PlanDocument:
        """Store a new plan.

        Raises:
            PlanConflictError: If the code already exists (409)
            PlanApiError: On any other failure
            httpx.HTTPError: On transport failure
        """
        payload = {"code": code, "rows": [r.to_dict() for r in rows]}
        response = self.http.post("/api/plans", json=payload)
        data = _json_or_none(response)

        if response.status_code == 409:
            logger.info("plan_api.conflict", code=code)
            raise PlanConflictError(code)
        if response.status_code != 200 or not isinstance(data, dict) or not data.get("ok"):
            raise PlanApiError(response.status_code, response.text, action="salvataggio")

        logger.info("plan_api.saved", code=code, rows=len(payload["rows"]))
        return PlanDocument.from_dict(data.get("data") or {})


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None
