"""Shared study plans: records, validation, and the create-only store contract.

A plan is identified by a code "XX-YY" and, once stored, is never
overwritten. The store's unique constraint on code is the only guard
against two writers racing on the same code: a duplicate-key failure on
insert is reported exactly like an existing plan.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

logger = structlog.get_logger(__name__)

CODE_RE = re.compile(r"^\d{2}-\d{2}$", re.ASCII)

MIN_ROW_CFU = 1
MAX_ROW_CFU = 30
MAX_PLAN_ROWS = 200

BAD_ROWS_MESSAGE = "Bad rows format (expected {codice, denominazione, cfu:int})"


@dataclass
class PlanRow:
    """One course row of a shared study plan."""

    codice: str
    denominazione: str
    cfu: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "codice": self.codice,
            "denominazione": self.denominazione,
            "cfu": self.cfu,
        }


@dataclass
class PlanDocument:
    """A stored study plan."""

    code: str
    rows: list[PlanRow] = field(default_factory=list)
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "rows": [r.to_dict() for r in self.rows],
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanDocument:
        """Build a document from a stored or received mapping."""
        rows = [
            PlanRow(
                codice=str(r.get("codice", "")),
                denominazione=str(r.get("denominazione", "")),
                cfu=int(r.get("cfu", 0)),
            )
            for r in data.get("rows") or []
            if isinstance(r, dict)
        ]
        return cls(
            code=str(data.get("code", "")),
            rows=rows,
            updated_at=data.get("updated_at"),
        )


# =============================================================================
# ERRORS
# =============================================================================


class PlanError(Exception):
    """Base exception for plan store errors."""

    pass


class PlanValidationError(PlanError):
    """Raised when a code or row payload is malformed."""

    pass


class PlanNotFoundError(PlanError):
    """Raised when no plan exists for a code."""

    def __init__(self, code: str):
        self.code = code
        super().__init__("Not found")


class PlanConflictError(PlanError):
    """Raised when a plan with the same code already exists."""

    def __init__(self, code: str):
        self.code = code
        super().__init__("Plan already exists")


class PlanStoreError(PlanError):
    """Raised when the underlying storage fails."""

    pass


class DuplicatePlanError(PlanStoreError):
    """Raised by a store when the insert hits the unique constraint on code."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(message or f"duplicate key value for code '{code}'")


# =============================================================================
# STORE CONTRACT
# =============================================================================


class PlanStore(Protocol):
    """Storage backend for the plans table.

    Implementations raise PlanStoreError for storage failures and
    DuplicatePlanError when insert_plan hits the unique constraint.
    """

    def get_plan(self, code: str) -> PlanDocument | None: ...

    def plan_exists(self, code: str) -> bool: ...

    def insert_plan(self, plan: PlanDocument) -> PlanDocument: ...


# =============================================================================
# VALIDATION
# =============================================================================


def is_valid_code(code: str) -> bool:
    return bool(CODE_RE.match(code))


def validate_code(code: Any) -> str:
    """Trim and check a plan code.

    Raises:
        PlanValidationError: "No code" if missing, "Bad code" if malformed
    """
    if not code or not isinstance(code, str):
        raise PlanValidationError("No code")
    code = code.strip()
    if not is_valid_code(code):
        raise PlanValidationError("Bad code")
    return code


def _is_int(value: Any) -> bool:
    # JSON has a single number type: 6.0 counts as an integer, True does not
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _is_valid_row(row: Any) -> bool:
    return (
        isinstance(row, dict)
        and isinstance(row.get("codice"), str)
        and isinstance(row.get("denominazione"), str)
        and _is_int(row.get("cfu"))
    )


def clean_rows(rows: Any) -> list[PlanRow]:
    """Validate and clean an incoming rows payload.

    Strings are trimmed; rows with a blank field or a CFU outside
    [1, 30] are dropped; at most 200 rows are kept.

    Raises:
        PlanValidationError: If rows is not a non-empty list of well-formed
            objects, or if nothing survives cleaning
    """
    if not isinstance(rows, list) or len(rows) == 0:
        raise PlanValidationError("No rows")

    if not all(_is_valid_row(r) for r in rows):
        raise PlanValidationError(BAD_ROWS_MESSAGE)

    cleaned: list[PlanRow] = []
    for r in rows:
        row = PlanRow(
            codice=r["codice"].strip(),
            denominazione=r["denominazione"].strip(),
            cfu=int(r["cfu"]),
        )
        if not row.codice or not row.denominazione:
            continue
        if row.cfu < MIN_ROW_CFU or row.cfu > MAX_ROW_CFU:
            continue
        cleaned.append(row)
        if len(cleaned) == MAX_PLAN_ROWS:
            break

    if not cleaned:
        raise PlanValidationError("No valid rows after cleaning")

    return cleaned


# =============================================================================
# OPERATIONS
# =============================================================================


def fetch_plan(store: PlanStore, code: Any) -> PlanDocument:
    """Fetch a plan by code.

    Raises:
        PlanValidationError: If the code is malformed
        PlanNotFoundError: If no plan has this code
        PlanStoreError: On storage failure
    """
    code = str(code or "").strip()
    if not is_valid_code(code):
        raise PlanValidationError("Bad code")

    plan = store.get_plan(code)
    if plan is None:
        raise PlanNotFoundError(code)
    return plan


def create_plan(store: PlanStore, code: Any, rows: Any) -> PlanDocument:
    """Insert a new plan; never overwrites an existing one.

    Args:
        store: Plans table backend
        code: Raw code from the request
        rows: Raw rows from the request

    Returns:
        The stored document, with server-assigned updated_at

    Raises:
        PlanValidationError: If code or rows are invalid
        PlanConflictError: If the code already exists (including a
            concurrent insert between check and write)
        PlanStoreError: On any other storage failure
    """
    code = validate_code(code)
    cleaned = clean_rows(rows)

    if store.plan_exists(code):
        logger.info("plans.conflict", code=code, stage="check")
        raise PlanConflictError(code)

    plan = PlanDocument(
        code=code,
        rows=cleaned,
        updated_at=datetime.now(timezone.utc).isoformat(),
    )
    try:
        stored = store.insert_plan(plan)
    except DuplicatePlanError:
        logger.info("plans.conflict", code=code, stage="insert")
        raise PlanConflictError(code)

    logger.info("plans.created", code=code, rows=len(stored.rows))
    return stored
