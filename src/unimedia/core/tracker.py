"""Exam tracker state.

Holds the user's personal exam list, persists it as JSON under
data/state/, and merges shared study-plan rows into it.

The list is owned by a single user and mutated by one process at a time;
every mutation is followed by save_exams_state().
"""

from __future__ import annotations

import json
import random
import re
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import structlog

from unimedia.core.average import parse_cfu
from unimedia.core.plans import PlanRow

logger = structlog.get_logger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

EXAMS_SCHEMA = "exams_v5"
EXAMS_FILENAME = "exams_v5.json"

DEFAULT_EXAM_NAME = "Nuovo esame"
DEFAULT_EXAM_CFU = 6

# =============================================================================
# DATA CLASSES
# =============================================================================


def make_id() -> str:
    """Generate an opaque exam id ("<millis>-<random digits>")."""
    millis = int(time.time() * 1000)
    return f"{millis}-{random.randrange(10**15):015d}"


@dataclass
class Exam:
    """A single exam in the personal list."""

    id: str
    name: str
    cfu: int
    grade: str = ""  # "" = not recorded yet

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "cfu": self.cfu,
            "grade": self.grade,
        }


@dataclass
class MergeResult:
    """Outcome of merging plan rows into the exam list."""

    added: list[Exam] = field(default_factory=list)
    skipped: int = 0


class ExamNotFoundError(Exception):
    """Raised when an exam id is not in the list."""

    def __init__(self, exam_id: str):
        self.exam_id = exam_id
        super().__init__(f"Esame '{exam_id}' non trovato")


class EmptySelectionError(Exception):
    """Raised when no plan row is selected for merging."""

    def __init__(self) -> None:
        super().__init__("Nessun esame selezionato.")


def demo_exams() -> list[Exam]:
    """Starter list shown on first run and after a reset."""
    return [
        Exam(id=make_id(), name="Analisi 1", cfu=10, grade="28"),
        Exam(id=make_id(), name="Fisica 1", cfu=10, grade="24"),
        Exam(id=make_id(), name="Informatica", cfu=5, grade=""),
    ]


def norm_key(name: str, cfu: int) -> str:
    """Merge key: lower-cased, whitespace-collapsed title plus CFU."""
    title = re.sub(r"\s+", " ", str(name).strip().lower())
    return f"{title}|{cfu}"


@dataclass
class ExamsState:
    """Exam list state container."""

    exams: list[Exam] = field(default_factory=list)

    def get_exam(self, exam_id: str) -> Exam | None:
        """Get exam by ID."""
        for exam in self.exams:
            if exam.id == exam_id:
                return exam
        return None

    def require_exam(self, exam_id: str) -> Exam:
        exam = self.get_exam(exam_id)
        if exam is None:
            raise ExamNotFoundError(exam_id)
        return exam

    def resolve_exam(self, ref: str) -> Exam:
        """Resolve an exam by id or by 1-based position in the list."""
        exam = self.get_exam(ref)
        if exam is not None:
            return exam
        if ref.isdecimal():
            idx = int(ref) - 1
            if 0 <= idx < len(self.exams):
                return self.exams[idx]
        raise ExamNotFoundError(ref)

    def add_exam(
        self,
        name: str = DEFAULT_EXAM_NAME,
        cfu: int = DEFAULT_EXAM_CFU,
        grade: str = "",
    ) -> Exam:
        """Append a new exam and return it."""
        exam = Exam(id=make_id(), name=name, cfu=parse_cfu(cfu), grade=grade)
        self.exams.append(exam)
        return exam

    def remove_exam(self, exam_id: str) -> bool:
        """Remove an exam by ID. Returns True if removed."""
        for i, exam in enumerate(self.exams):
            if exam.id == exam_id:
                self.exams.pop(i)
                return True
        return False

    def update_exam(
        self,
        exam_id: str,
        name: str | None = None,
        cfu: int | None = None,
        grade: str | None = None,
    ) -> Exam:
        """Patch the given fields of an exam in place."""
        exam = self.require_exam(exam_id)
        if name is not None:
            exam.name = name
        if cfu is not None:
            exam.cfu = parse_cfu(cfu)
        if grade is not None:
            exam.grade = grade
        return exam

    def clear(self) -> None:
        self.exams = []

    def reset_demo(self) -> None:
        self.exams = demo_exams()

    def replace_with_plan(self, rows: Iterable[PlanRow]) -> list[Exam]:
        """Replace the whole list with one ungraded exam per plan row."""
        self.exams = [
            Exam(id=make_id(), name=r.denominazione, cfu=r.cfu, grade="")
            for r in rows
        ]
        return self.exams

    def merge_plan_rows(self, rows: Iterable[PlanRow]) -> MergeResult:
        """Append plan rows not already present by (title, cfu).

        Duplicates inside the same batch are skipped as well.
        """
        existing = {norm_key(e.name, e.cfu) for e in self.exams}
        result = MergeResult()
        for row in rows:
            key = norm_key(row.denominazione, row.cfu)
            if key in existing:
                result.skipped += 1
                continue
            existing.add(key)
            exam = Exam(id=make_id(), name=row.denominazione, cfu=row.cfu, grade="")
            result.added.append(exam)
        self.exams.extend(result.added)
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "$schema": EXAMS_SCHEMA,
            "exams": [e.to_dict() for e in self.exams],
        }


def select_rows(rows: list[PlanRow], indices: Iterable[int] | None = None) -> list[PlanRow]:
    """Pick plan rows by 0-based index; None selects all.

    Selection is by position so repeated course codes stay independent.

    Raises:
        EmptySelectionError: If nothing is selected
    """
    if indices is None:
        selected = list(rows)
    else:
        wanted = set(indices)
        selected = [r for i, r in enumerate(rows) if i in wanted]
    if not selected:
        raise EmptySelectionError()
    return selected


# =============================================================================
# STATE PERSISTENCE
# =============================================================================


def _migrate_exam(raw: Any) -> Exam | None:
    """Coerce one stored entry into an Exam, or None to drop it."""
    if not isinstance(raw, dict):
        return None
    exam_id = raw.get("id")
    name = raw.get("name")
    grade = raw.get("grade")
    exam = Exam(
        id=exam_id if isinstance(exam_id, str) and exam_id else make_id(),
        name="" if name is None else str(name),
        cfu=parse_cfu(raw.get("cfu")),
        grade="" if grade is None else str(grade),
    )
    if not exam.name and exam.cfu <= 0 and not exam.grade.strip():
        return None
    return exam


def load_exams_state(data_dir: Path | None = None) -> ExamsState:
    """Load exam list state from disk, or return the demo list.

    Accepts both the schema-tagged object and a bare JSON list of exams.
    Unknown or malformed entries are coerced or dropped.

    Args:
        data_dir: Base data directory. Defaults to ./data

    Returns:
        ExamsState object (demo list if file missing or corrupted)
    """
    if data_dir is None:
        data_dir = Path("data")

    state_path = data_dir / "state" / EXAMS_FILENAME

    if not state_path.exists():
        logger.debug("exams_state_not_found", path=str(state_path))
        return ExamsState(exams=demo_exams())

    try:
        with open(state_path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.error("exams_state_load_failed", error=str(e))
        return ExamsState(exams=demo_exams())

    if isinstance(data, dict):
        if data.get("$schema") != EXAMS_SCHEMA:
            logger.warning(
                "exams_state_invalid_schema",
                expected=EXAMS_SCHEMA,
                got=data.get("$schema"),
            )
            return ExamsState(exams=demo_exams())
        entries = data.get("exams")
    else:
        entries = data

    if not isinstance(entries, list):
        logger.warning("exams_state_not_a_list", path=str(state_path))
        return ExamsState(exams=demo_exams())

    exams = [e for e in (_migrate_exam(raw) for raw in entries) if e is not None]
    dropped = len(entries) - len(exams)
    if dropped:
        logger.info("exams_state_entries_dropped", dropped=dropped)

    return ExamsState(exams=exams)


def save_exams_state(state: ExamsState, data_dir: Path | None = None) -> Path:
    """Persist exam list state to disk.

    Args:
        state: ExamsState to save
        data_dir: Base data directory. Defaults to ./data

    Returns:
        Path to saved state file
    """
    if data_dir is None:
        data_dir = Path("data")

    state_dir = data_dir / "state"
    state_dir.mkdir(parents=True, exist_ok=True)
    state_path = state_dir / EXAMS_FILENAME

    with open(state_path, "w", encoding="utf-8") as f:
        json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)

    logger.debug("exams_state_saved", path=str(state_path), count=len(state.exams))
    return state_path
