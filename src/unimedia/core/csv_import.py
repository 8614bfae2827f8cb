"""Study-plan CSV import and export.

Responsibilities:
- Detect the file encoding (UTF-8 / UTF-16 with or without BOM)
- Sniff the delimiter (";" or ",") from the header line
- Tokenize rows and validate the exact header Codice;Denominazione;CFU
- Normalize rows into PlanRow records
- Derive the plan code from the file name XX-YY.csv

Any failure raises a CsvImportError subclass before anything is mutated.
"""

from __future__ import annotations

import csv
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import structlog

from unimedia.core.average import parse_cfu
from unimedia.core.plans import PlanRow

logger = structlog.get_logger(__name__)

EXPECTED_HEADERS = ["Codice", "Denominazione", "CFU"]

FILENAME_RE = re.compile(r"^(\d{2})-(\d{2})\.csv$", re.IGNORECASE | re.ASCII)
CODE_PART_RE = re.compile(r"^\d{2}$", re.ASCII)

ENCODING_SAMPLE_BYTES = 4000
UTF16_ZERO_RATIO = 0.2

BOM = "\ufeff"

UNEXPORTABLE_CHARS = (";", '"', "\r", "\n")


@dataclass
class ParsedCsv:
    """Tokenized CSV content."""

    headers: list[str]
    rows: list[dict[str, str]]
    delimiter: str


@dataclass
class ImportedPlan:
    """A validated plan read from a CSV file."""

    code: str
    rows: list[PlanRow]
    encoding: str = "utf-8"
    delimiter: str = ";"


class CsvImportError(Exception):
    """Base exception for CSV import errors."""

    pass


class InvalidFilenameError(CsvImportError):
    """Raised when the file name does not follow XX-YY.csv."""

    def __init__(self, name: str):
        self.name = name
        super().__init__('Nome file non valido. Deve essere tipo "70-89.csv".')


class InvalidPlanCodeError(CsvImportError):
    """Raised when a plan code part is not exactly two digits."""

    def __init__(self, value: str):
        self.value = value
        super().__init__("Inserisci un codice valido (due cifre + due cifre).")


class HeaderMismatchError(CsvImportError):
    """Raised when the header row differs from the expected one."""

    def __init__(self, expected: list[str], found: list[str]):
        self.expected = expected
        self.found = found
        super().__init__(
            "Header CSV non valido.\n"
            f"Atteso: {';'.join(expected)}\n"
            f"Trovato: {';'.join(found)}"
        )


class EmptyPlanError(CsvImportError):
    """Raised when no usable row survives normalization."""

    def __init__(self) -> None:
        super().__init__(
            "CSV valido ma nessuna riga utile (Codice/Denominazione/CFU vuoti?)."
        )


class UnexportableRowError(CsvImportError):
    """Raised when a row holds text the plan CSV format cannot carry."""

    def __init__(self, row: PlanRow):
        self.row = row
        super().__init__(
            f"Impossibile esportare la riga \"{row.codice}\": Codice e Denominazione "
            "devono essere non vuoti e senza ; \" o a capo, CFU positivo."
        )


# =============================================================================
# ENCODING
# =============================================================================


def detect_encoding(data: bytes) -> str:
    """Guess the encoding of raw CSV bytes.

    BOMs win; otherwise a high share of zero bytes at odd offsets in the
    first 4000 bytes means UTF-16LE (ASCII text stored as 16-bit units).

    Returns:
        "utf-16-le", "utf-16-be", "utf-8-sig" or "utf-8"
    """
    if data[:2] == b"\xff\xfe":
        return "utf-16-le"
    if data[:2] == b"\xfe\xff":
        return "utf-16-be"
    if data[:3] == b"\xef\xbb\xbf":
        return "utf-8-sig"

    sample_len = min(len(data), ENCODING_SAMPLE_BYTES)
    zero_odd = sum(1 for i in range(1, sample_len, 2) if data[i] == 0)
    ratio = zero_odd / max(1, sample_len / 2)

    return "utf-16-le" if ratio > UTF16_ZERO_RATIO else "utf-8"


def decode_csv_bytes(data: bytes) -> tuple[str, str]:
    """Decode raw CSV bytes.

    Returns:
        Tuple of (text, encoding name). Undecodable sequences are replaced.
    """
    encoding = detect_encoding(data)
    text = data.decode(encoding, errors="replace")
    if text.startswith(BOM):
        text = text[1:]
    return text, encoding


# =============================================================================
# TOKENIZING
# =============================================================================


def detect_delimiter(header_line: str) -> str:
    """Semicolon unless commas strictly outnumber semicolons."""
    return ";" if header_line.count(";") >= header_line.count(",") else ","


def _clean_field(value: str) -> str:
    value = value.strip()
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def parse_csv_auto(text: str) -> ParsedCsv:
    """Split CSV text into headers and row dicts keyed by header.

    Blank lines are ignored. Fewer than two non-blank lines yields no
    headers and no rows. Missing trailing fields become "".
    """
    if text.startswith(BOM):
        text = text[1:]
    lines = [line for line in re.split(r"\r?\n", text) if line.strip() != ""]
    if len(lines) < 2:
        return ParsedCsv(headers=[], rows=[], delimiter=";")

    delimiter = detect_delimiter(lines[0])
    headers = [_clean_field(normalize_header_name(h)) for h in lines[0].split(delimiter)]

    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        cols = line.split(delimiter)
        rows.append(
            {
                h: _clean_field(cols[i]) if i < len(cols) else ""
                for i, h in enumerate(headers)
            }
        )

    return ParsedCsv(headers=headers, rows=rows, delimiter=delimiter)


# =============================================================================
# VALIDATION
# =============================================================================


def normalize_header_name(name: str) -> str:
    return name.replace(BOM, "").replace("\x00", "").strip()


def require_exact_headers(headers: list[str], expected: list[str] = EXPECTED_HEADERS) -> None:
    """Require an exact, order-sensitive header match.

    Raises:
        HeaderMismatchError: If names, count, or order differ
    """
    got = [normalize_header_name(h) for h in headers]
    exp = [normalize_header_name(h) for h in expected]
    if got != exp:
        raise HeaderMismatchError(exp, got)


def parse_csv_cfu(raw: str) -> int:
    """Parse a CFU cell: "30,5" and "30.9" both become 30."""
    return parse_cfu(raw.strip().replace(",", ".", 1))


def normalize_plan_rows(records: Iterable[dict[str, str]]) -> list[PlanRow]:
    """Turn tokenized records into PlanRow, dropping unusable rows."""
    rows: list[PlanRow] = []
    for record in records:
        row = PlanRow(
            codice=_clean_field(record.get("Codice", "")),
            denominazione=_clean_field(record.get("Denominazione", "")),
            cfu=parse_csv_cfu(record.get("CFU", "")),
        )
        if row.codice and row.denominazione and row.cfu > 0:
            rows.append(row)
    return rows


def parse_plan_filename(name: str) -> str:
    """Derive the plan code from a file name like 07-89.csv.

    Raises:
        InvalidFilenameError: If the name does not match XX-YY.csv
    """
    match = FILENAME_RE.match(Path(name.strip()).name)
    if not match:
        raise InvalidFilenameError(name)
    return f"{match.group(1)}-{match.group(2)}"


def build_plan_code(xx: str, yy: str) -> str:
    """Join two 2-digit parts into a plan code.

    Raises:
        InvalidPlanCodeError: If either part is not exactly two digits
    """
    parts = []
    for part in (xx, yy):
        t = str(part).strip()
        if not CODE_PART_RE.match(t):
            raise InvalidPlanCodeError(t)
        parts.append(t)
    return "-".join(parts)


# =============================================================================
# PIPELINE
# =============================================================================


def parse_plan_bytes(filename: str, data: bytes) -> ImportedPlan:
    """Run the full import pipeline on in-memory file content.

    Raises:
        CsvImportError: On any stage failure
    """
    code = parse_plan_filename(filename)
    text, encoding = decode_csv_bytes(data)
    parsed = parse_csv_auto(text)
    require_exact_headers(parsed.headers)

    rows = normalize_plan_rows(parsed.rows)
    if not rows:
        raise EmptyPlanError()

    logger.debug(
        "csv.parsed",
        code=code,
        encoding=encoding,
        delimiter=parsed.delimiter,
        rows=len(rows),
        dropped=len(parsed.rows) - len(rows),
    )
    return ImportedPlan(code=code, rows=rows, encoding=encoding, delimiter=parsed.delimiter)


def load_plan_csv(path: Path) -> ImportedPlan:
    """Read and validate a plan CSV from disk.

    Raises:
        CsvImportError: On any stage failure
        OSError: If the file cannot be read
    """
    path = Path(path)
    code = parse_plan_filename(path.name)  # fail before touching the disk
    logger.debug("csv.loading", path=str(path), code=code)
    return parse_plan_bytes(path.name, path.read_bytes())


def _is_exportable_text(value: str) -> bool:
    # the tokenizer neither unescapes quotes nor honours quoted delimiters
    return (
        value != ""
        and value == value.strip()
        and not any(ch in value for ch in UNEXPORTABLE_CHARS)
    )


def check_exportable(row: PlanRow) -> None:
    """Require a row that load_plan_csv reads back unchanged.

    Raises:
        UnexportableRowError: If a field would be split, altered, or dropped
    """
    if not (
        _is_exportable_text(row.codice)
        and _is_exportable_text(row.denominazione)
        and row.cfu > 0
    ):
        raise UnexportableRowError(row)


def export_plan_csv(rows: Iterable[PlanRow], path: Path) -> Path:
    """Write plan rows in the import format (UTF-8, ";" delimited).

    Every row is checked before the file is opened, so a refused plan
    leaves nothing on disk.

    Raises:
        UnexportableRowError: If a row cannot survive a re-import
    """
    rows = list(rows)
    for row in rows:
        check_exportable(row)

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f, delimiter=";", quoting=csv.QUOTE_NONE, lineterminator="\n")
        writer.writerow(EXPECTED_HEADERS)
        for row in rows:
            writer.writerow([row.codice, row.denominazione, row.cfu])
    logger.info("csv.exported", path=str(path))
    return path


def build_csv_prompt(code: str) -> str:
    """Instructions for producing a conforming plan CSV with an assistant."""
    fname = f"{code}.csv"
    return (
        f"Genera un file CSV (separatore ;) in UTF-8 chiamato ESATTAMENTE {fname} "
        "(due numeri, trattino, due numeri, estensione .csv).\n"
        "La prima riga (header) deve essere ESATTAMENTE:\n"
        "Codice;Denominazione;CFU\n"
        "Poi crea una riga per ogni insegnamento con questi vincoli:\n"
        "Codice: stringa del codice corso (può contenere /, -, spazi, come in 70/0041-M o IN/0155).\n"
        "Denominazione: nome dell'insegnamento (testo).\n"
        "CFU: intero positivo (es. 6, 7, 8, 9, 10, 12).\n"
        "Non aggiungere altre colonne. Non mettere virgolette inutili. "
        "Non usare la virgola come separatore: usa SEMPRE ;.\n"
        "Restituisci un file .csv scaricabile, non semplice testo."
    )
