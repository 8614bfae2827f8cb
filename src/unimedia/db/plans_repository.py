"""Repository functions for the plans table (SQLite).

Provides read and insert operations only: plans are insert-once.
SqlitePlanStore adapts these functions to the PlanStore contract.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import structlog

from unimedia.core.plans import (
    DuplicatePlanError,
    PlanDocument,
    PlanStoreError,
)
from unimedia.db.database import get_db, init_db

logger = structlog.get_logger(__name__)


def insert_plan(plan: PlanDocument, db_path: Path | None = None) -> None:
    """Insert a new plan record.

    Args:
        plan: Cleaned plan with updated_at already assigned
        db_path: Override the initialized database

    Raises:
        sqlite3.IntegrityError: If the code already exists
    """
    with get_db(db_path) as conn:
        conn.execute(
            "INSERT INTO plans (code, rows, updated_at) VALUES (?, ?, ?)",
            (
                plan.code,
                json.dumps([r.to_dict() for r in plan.rows], ensure_ascii=False),
                plan.updated_at,
            ),
        )

    logger.debug("plans.inserted", code=plan.code, rows=len(plan.rows))


def get_plan_by_code(code: str, db_path: Path | None = None) -> PlanDocument | None:
    """Get plan by code.

    Returns:
        PlanDocument if found, None otherwise
    """
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT code, rows, updated_at FROM plans WHERE code = ?", (code,)
        ).fetchone()

    if row is None:
        return None

    return _row_to_document(row)


def plan_code_exists(code: str, db_path: Path | None = None) -> bool:
    with get_db(db_path) as conn:
        row = conn.execute("SELECT 1 FROM plans WHERE code = ?", (code,)).fetchone()
    return row is not None


def _row_to_document(row: sqlite3.Row) -> PlanDocument:
    """Convert database row to PlanDocument."""
    return PlanDocument.from_dict(
        {
            "code": row["code"],
            "rows": json.loads(row["rows"]) if row["rows"] else [],
            "updated_at": row["updated_at"],
        }
    )


class SqlitePlanStore:
    """PlanStore backed by a local SQLite file."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = init_db(db_path)

    def get_plan(self, code: str) -> PlanDocument | None:
        try:
            return get_plan_by_code(code, self.db_path)
        except (sqlite3.Error, json.JSONDecodeError) as e:
            logger.error("plans.read_failed", code=code, error=str(e))
            raise PlanStoreError(str(e)) from e

    def plan_exists(self, code: str) -> bool:
        try:
            return plan_code_exists(code, self.db_path)
        except sqlite3.Error as e:
            logger.error("plans.read_failed", code=code, error=str(e))
            raise PlanStoreError(str(e)) from e

    def insert_plan(self, plan: PlanDocument) -> PlanDocument:
        try:
            insert_plan(plan, self.db_path)
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise DuplicatePlanError(plan.code, str(e)) from e
            raise PlanStoreError(str(e)) from e
        except sqlite3.Error as e:
            logger.error("plans.insert_failed", code=plan.code, error=str(e))
            raise PlanStoreError(str(e)) from e

        stored = self.get_plan(plan.code)
        if stored is None:
            raise PlanStoreError(f"Plan '{plan.code}' missing after insert")
        return stored
