"""Tests for the import / lookup / export workflows."""

from unittest.mock import MagicMock

import pytest

from unimedia.client.api_client import PlanApiError
from unimedia.client.plan_sync import (
    PublishStatus,
    export_shared_plan,
    import_plan_file,
    lookup_plan,
    merge_message,
    merge_shared_plan,
)
from unimedia.core.csv_import import HeaderMismatchError, InvalidFilenameError
from unimedia.core.plans import PlanConflictError, PlanNotFoundError, PlanRow
from unimedia.core.tracker import (
    EmptySelectionError,
    Exam,
    ExamsState,
    MergeResult,
    load_exams_state,
)

PLAN_CSV = (
    "Codice;Denominazione;CFU\n"
    "70/0041-M;Analisi matematica 1;12\n"
    "IN/0155;Fondamenti di informatica;9\n"
)


@pytest.fixture
def state() -> ExamsState:
    return ExamsState(exams=[Exam(id="keep", name="Analisi matematica 1", cfu=12, grade="27")])


class TestImportPlanFile:
    """Tests for import_plan_file."""

    def test_new_plan_is_published(self, write_csv, state, plan_api, data_dir):
        outcome = import_plan_file(write_csv("70-89.csv", PLAN_CSV), state, plan_api, data_dir)

        assert outcome.publish is PublishStatus.SAVED
        assert outcome.message == "Piano salvato."
        assert [e.name for e in state.exams] == ["Analisi matematica 1", "Fondamenti di informatica"]
        assert all(e.grade == "" for e in state.exams)
        assert load_exams_state(data_dir).exams == state.exams
        assert plan_api.get_plan("70-89").rows == outcome.plan.rows

    def test_existing_plan_is_not_overwritten(self, write_csv, state, plan_api, data_dir):
        plan_api.save_plan("70-89", [PlanRow("ZZ/0001", "Corso diverso", 6)])

        outcome = import_plan_file(write_csv("70-89.csv", PLAN_CSV), state, plan_api, data_dir)

        assert outcome.publish is PublishStatus.ALREADY_EXISTS
        assert "70-89" in outcome.message
        assert [e.name for e in state.exams] == ["Analisi matematica 1", "Fondamenti di informatica"]
        assert [r.codice for r in plan_api.get_plan("70-89").rows] == ["ZZ/0001"]

    def test_race_on_save_reports_existing(self, write_csv, state, data_dir):
        api = MagicMock()
        api.get_plan.return_value = None
        api.save_plan.side_effect = PlanConflictError("70-89")

        outcome = import_plan_file(write_csv("70-89.csv", PLAN_CSV), state, api, data_dir)

        assert outcome.publish is PublishStatus.ALREADY_EXISTS
        api.save_plan.assert_called_once()

    def test_invalid_file_leaves_state_untouched(self, write_csv, state, plan_api, data_dir):
        before = list(state.exams)
        with pytest.raises(HeaderMismatchError):
            import_plan_file(
                write_csv("70-89.csv", "Codice;Nome;CFU\nA;B;6\n"), state, plan_api, data_dir
            )
        with pytest.raises(InvalidFilenameError):
            import_plan_file(write_csv("piano.csv", PLAN_CSV), state, plan_api, data_dir)

        assert state.exams == before
        assert not (data_dir / "state" / "exams_v5.json").exists()
        assert plan_api.get_plan("70-89") is None

    def test_remote_failure_keeps_local_replacement(self, write_csv, state, data_dir):
        api = MagicMock()
        api.get_plan.side_effect = PlanApiError(500, "boom", action="verifica")

        with pytest.raises(PlanApiError):
            import_plan_file(write_csv("70-89.csv", PLAN_CSV), state, api, data_dir)

        assert len(load_exams_state(data_dir).exams) == 2


class TestLookupAndMerge:
    """Tests for lookup_plan / merge_shared_plan."""

    def test_lookup_missing(self, plan_api):
        with pytest.raises(PlanNotFoundError):
            lookup_plan(plan_api, "70-89")

    def test_merge_all_skips_duplicates(self, plan_api, state, data_dir):
        plan_api.save_plan(
            "70-89",
            [PlanRow("70/0041-M", "Analisi matematica 1", 12), PlanRow("IN/0155", "Fondamenti di informatica", 9)],
        )
        plan = lookup_plan(plan_api, "70-89")

        result = merge_shared_plan(plan, state, data_dir=data_dir)

        assert [e.name for e in result.added] == ["Fondamenti di informatica"]
        assert result.skipped == 1
        assert state.get_exam("keep").grade == "27"
        assert len(load_exams_state(data_dir).exams) == 2

    def test_merge_selected_rows(self, plan_api, data_dir):
        plan_api.save_plan(
            "70-89",
            [PlanRow("A", "Chimica", 6), PlanRow("B", "Fisica", 9), PlanRow("C", "Logica", 3)],
        )
        state = ExamsState()
        result = merge_shared_plan(lookup_plan(plan_api, "70-89"), state, [0, 2], data_dir)
        assert [e.name for e in result.added] == ["Chimica", "Logica"]

    def test_empty_selection(self, plan_api, data_dir):
        plan_api.save_plan("70-89", [PlanRow("A", "Chimica", 6)])
        state = ExamsState()
        with pytest.raises(EmptySelectionError):
            merge_shared_plan(lookup_plan(plan_api, "70-89"), state, [], data_dir)
        assert not (data_dir / "state" / "exams_v5.json").exists()

    def test_merge_message(self):
        added = [Exam(id="x", name="Chimica", cfu=6)]
        assert merge_message("70-89", MergeResult(added=added)) == "Aggiunti 1 esami dal piano 70-89."
        assert merge_message("70-89", MergeResult(added=added, skipped=2)) == (
            "Aggiunti 1 esami dal piano 70-89 (saltati 2 duplicati)."
        )


class TestExport:
    """Tests for export_shared_plan."""

    def test_export_writes_importable_csv(self, plan_api, tmp_path, state, data_dir):
        rows = [PlanRow("70/0041-M", "Analisi matematica 1", 12)]
        plan_api.save_plan("70-89", rows)

        path = export_shared_plan(plan_api, "70-89", tmp_path / "export")

        assert path.name == "70-89.csv"
        outcome = import_plan_file(path, state, plan_api, data_dir)
        assert outcome.plan.rows == rows
        assert outcome.publish is PublishStatus.ALREADY_EXISTS

    def test_export_missing(self, plan_api, tmp_path):
        with pytest.raises(PlanNotFoundError):
            export_shared_plan(plan_api, "70-89", tmp_path)
