"""Plan import, lookup, and export workflows for the exam tracker.

Import: the CSV is parsed and validated first; only then is the local
exam list replaced and saved. The shared copy is published only when no
plan exists yet for the derived code. The store never overwrites, so an
existing plan is reported and left as is.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

import structlog

from unimedia.client.api_client import PlanApiClient
from unimedia.core.csv_import import ImportedPlan, export_plan_csv, load_plan_csv
from unimedia.core.plans import PlanConflictError, PlanDocument, PlanNotFoundError
from unimedia.core.tracker import ExamsState, MergeResult, save_exams_state, select_rows

logger = structlog.get_logger(__name__)


class PublishStatus(str, Enum):
    """What happened to the shared copy of an imported plan."""

    SAVED = "saved"
    ALREADY_EXISTS = "already_exists"


@dataclass
class ImportOutcome:
    """Result of importing a plan CSV."""

    plan: ImportedPlan
    publish: PublishStatus

    @property
    def message(self) -> str:
        if self.publish is PublishStatus.SAVED:
            return "Piano salvato."
        return (
            f"Il piano {self.plan.code} esiste già nella memoria condivisa: "
            "caricato solo in locale, la copia condivisa non è stata modificata."
        )


def import_plan_file(
    path: Path,
    state: ExamsState,
    api: PlanApiClient,
    data_dir: Path | None = None,
) -> ImportOutcome:
    """Import a plan CSV into the exam list and publish it if new.

    Args:
        path: CSV file named XX-YY.csv
        state: Exam list to replace
        api: Plan store client
        data_dir: Where the exam list is persisted

    Returns:
        ImportOutcome with the parsed plan and publish status

    Raises:
        CsvImportError: If the file fails validation (state untouched)
        PlanApiError: If the store check or save fails (local list already
            replaced and saved)
    """
    imported = load_plan_csv(path)

    state.replace_with_plan(imported.rows)
    save_exams_state(state, data_dir)
    logger.info("plan_import.replaced", code=imported.code, exams=len(state.exams))

    if api.get_plan(imported.code) is not None:
        logger.info("plan_import.already_shared", code=imported.code)
        return ImportOutcome(plan=imported, publish=PublishStatus.ALREADY_EXISTS)

    try:
        api.save_plan(imported.code, imported.rows)
    except PlanConflictError:
        # Someone else published the same code between check and save
        return ImportOutcome(plan=imported, publish=PublishStatus.ALREADY_EXISTS)

    return ImportOutcome(plan=imported, publish=PublishStatus.SAVED)


def lookup_plan(api: PlanApiClient, code: str) -> PlanDocument:
    """Fetch a shared plan.

    Raises:
        PlanNotFoundError: If nobody has uploaded this plan yet
        PlanApiError: On server errors
    """
    plan = api.get_plan(code)
    if plan is None:
        raise PlanNotFoundError(code)
    return plan


def merge_shared_plan(
    plan: PlanDocument,
    state: ExamsState,
    indices: Iterable[int] | None = None,
    data_dir: Path | None = None,
) -> MergeResult:
    """Merge selected rows of a fetched plan into the exam list.

    Raises:
        EmptySelectionError: If no row is selected
    """
    selected = select_rows(plan.rows, indices)
    result = state.merge_plan_rows(selected)
    save_exams_state(state, data_dir)
    logger.info(
        "plan_merge.done",
        code=plan.code,
        added=len(result.added),
        skipped=result.skipped,
    )
    return result


def merge_message(code: str, result: MergeResult) -> str:
    text = f"Aggiunti {len(result.added)} esami dal piano {code}"
    if result.skipped > 0:
        return text + f" (saltati {result.skipped} duplicati)."
    return text + "."


def export_shared_plan(api: PlanApiClient, code: str, output_dir: Path) -> Path:
    """Download a shared plan into output_dir/XX-YY.csv.

    Raises:
        PlanNotFoundError: If the plan does not exist
        UnexportableRowError: If a row cannot be written in the CSV format
    """
    plan = lookup_plan(api, code)
    return export_plan_csv(plan.rows, Path(output_dir) / f"{plan.code}.csv")
