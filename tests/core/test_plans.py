"""Tests for plan validation and the create-only service."""

import pytest

from unimedia.core.plans import (
    BAD_ROWS_MESSAGE,
    DuplicatePlanError,
    PlanConflictError,
    PlanDocument,
    PlanNotFoundError,
    PlanRow,
    PlanValidationError,
    clean_rows,
    create_plan,
    fetch_plan,
    validate_code,
)


class MemoryStore:
    """Dict-backed store; optionally hides existing codes from plan_exists."""

    def __init__(self, blind_check: bool = False):
        self.plans: dict[str, PlanDocument] = {}
        self.blind_check = blind_check
        self.inserts = 0

    def get_plan(self, code):
        return self.plans.get(code)

    def plan_exists(self, code):
        return False if self.blind_check else code in self.plans

    def insert_plan(self, plan):
        self.inserts += 1
        if plan.code in self.plans:
            raise DuplicatePlanError(plan.code)
        self.plans[plan.code] = plan
        return plan


def _row(codice="A", denominazione="Chimica", cfu=6):
    return {"codice": codice, "denominazione": denominazione, "cfu": cfu}


class TestValidateCode:
    """Tests for validate_code."""

    def test_trims(self):
        assert validate_code(" 70-89 ") == "70-89"

    @pytest.mark.parametrize("code", [None, "", 7089])
    def test_missing(self, code):
        with pytest.raises(PlanValidationError, match="No code"):
            validate_code(code)

    @pytest.mark.parametrize("code", ["7-89", "70-890", "70_89", "ab-cd", "٧٠-٨٩"])
    def test_malformed(self, code):
        with pytest.raises(PlanValidationError, match="Bad code"):
            validate_code(code)


class TestCleanRows:
    """Tests for clean_rows."""

    @pytest.mark.parametrize("rows", [None, [], {"codice": "A"}, "rows"])
    def test_no_rows(self, rows):
        with pytest.raises(PlanValidationError, match="No rows"):
            clean_rows(rows)

    @pytest.mark.parametrize(
        "bad",
        [
            _row(cfu="6"),
            _row(cfu=6.5),
            _row(cfu=True),
            _row(codice=None),
            {"codice": "A", "denominazione": "Chimica"},
            "A;Chimica;6",
        ],
    )
    def test_bad_format(self, bad):
        with pytest.raises(PlanValidationError) as exc_info:
            clean_rows([_row(), bad])
        assert str(exc_info.value) == BAD_ROWS_MESSAGE

    def test_trims_and_filters(self):
        rows = clean_rows(
            [
                _row(codice="  A ", denominazione=" Chimica "),
                _row(codice="   "),
                _row(cfu=0),
                _row(cfu=31),
                _row(codice="B", cfu=30.0),
            ]
        )
        assert rows == [PlanRow("A", "Chimica", 6), PlanRow("B", "Chimica", 30)]

    def test_nothing_survives(self):
        with pytest.raises(PlanValidationError, match="No valid rows after cleaning"):
            clean_rows([_row(cfu=0), _row(denominazione="")])

    def test_caps_at_200(self):
        rows = clean_rows([_row(codice=f"C{i}") for i in range(250)])
        assert len(rows) == 200
        assert rows[-1].codice == "C199"


class TestCreatePlan:
    """Tests for create_plan / fetch_plan."""

    def test_create_then_fetch(self):
        store = MemoryStore()
        created = create_plan(store, "70-89", [_row()])
        assert created.updated_at
        assert fetch_plan(store, " 70-89 ").rows == [PlanRow("A", "Chimica", 6)]

    def test_existing_code_conflicts_without_insert(self):
        store = MemoryStore()
        create_plan(store, "70-89", [_row()])
        with pytest.raises(PlanConflictError):
            create_plan(store, "70-89", [_row(codice="Z")])
        assert store.inserts == 1
        assert store.plans["70-89"].rows[0].codice == "A"

    def test_insert_race_reported_as_conflict(self):
        store = MemoryStore(blind_check=True)
        create_plan(store, "70-89", [_row()])
        with pytest.raises(PlanConflictError):
            create_plan(store, "70-89", [_row(codice="Z")])
        assert store.plans["70-89"].rows[0].codice == "A"

    def test_validation_runs_before_store(self):
        store = MemoryStore()
        with pytest.raises(PlanValidationError):
            create_plan(store, "70-89", [])
        assert store.inserts == 0

    def test_fetch_missing(self):
        with pytest.raises(PlanNotFoundError):
            fetch_plan(MemoryStore(), "70-89")

    def test_fetch_bad_code(self):
        with pytest.raises(PlanValidationError, match="Bad code"):
            fetch_plan(MemoryStore(), "70-8")
