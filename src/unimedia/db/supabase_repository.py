"""PlanStore backed by a hosted Supabase table.

Expects a table `plans (code text primary key, rows jsonb, updated_at
timestamptz)`; the primary key rejects a second insert for the same code
with Postgres error 23505.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client

from unimedia.config.app_config import StoreConfig
from unimedia.core.plans import (
    DuplicatePlanError,
    PlanDocument,
    PlanStoreError,
)

logger = structlog.get_logger(__name__)

PLAN_COLUMNS = "code,rows,updated_at"
UNIQUE_VIOLATION = "23505"


def _error_message(error: Exception) -> str:
    message = getattr(error, "message", None)
    return str(message) if message else str(error)


def _is_duplicate(error: APIError) -> bool:
    if getattr(error, "code", None) == UNIQUE_VIOLATION:
        return True
    return "duplicate" in _error_message(error).lower()


class SupabasePlanStore:
    """PlanStore over the Supabase PostgREST client."""

    def __init__(self, client: Client, table: str = "plans"):
        self.client = client
        self.table = table

    @classmethod
    def from_config(cls, config: StoreConfig) -> SupabasePlanStore:
        """Create the hosted client from store settings.

        Raises:
            ConfigError: If URL or service key is missing
        """
        url, key = config.require_supabase()
        client = create_client(url, key)
        logger.info("supabase.client_created", table=config.table)
        return cls(client, table=config.table)

    def _select(self, columns: str, code: str) -> list[dict[str, Any]]:
        try:
            response = (
                self.client.table(self.table)
                .select(columns)
                .eq("code", code)
                .limit(1)
                .execute()
            )
        except (APIError, httpx.HTTPError) as e:
            logger.error("supabase.select_failed", code=code, error=_error_message(e))
            raise PlanStoreError(_error_message(e)) from e
        return list(response.data or [])

    def get_plan(self, code: str) -> PlanDocument | None:
        data = self._select(PLAN_COLUMNS, code)
        if not data:
            return None
        return PlanDocument.from_dict(data[0])

    def plan_exists(self, code: str) -> bool:
        return bool(self._select("code", code))

    def insert_plan(self, plan: PlanDocument) -> PlanDocument:
        try:
            response = self.client.table(self.table).insert(plan.to_dict()).execute()
        except APIError as e:
            if _is_duplicate(e):
                raise DuplicatePlanError(plan.code, _error_message(e)) from e
            logger.error("supabase.insert_failed", code=plan.code, error=_error_message(e))
            raise PlanStoreError(_error_message(e)) from e
        except httpx.HTTPError as e:
            logger.error("supabase.insert_failed", code=plan.code, error=str(e))
            raise PlanStoreError(str(e)) from e

        data = list(response.data or [])
        if not data:
            return plan
        return PlanDocument.from_dict(data[0])
