"""CLI commands for UniMedia.

Exam list:
- list, add, remove, set, what-if, reset, clear

Study plans:
- import: load a XX-YY.csv plan and publish it to the shared store
- lookup: fetch a shared plan and merge selected exams
- export-plan: download a shared plan as XX-YY.csv
- prompt: print instructions for producing a plan CSV

Server:
- serve: run the plan store API with uvicorn
"""

from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from unimedia.client.api_client import PlanApiClient, PlanApiError
from unimedia.client.plan_sync import (
    export_shared_plan,
    import_plan_file,
    lookup_plan,
    merge_message,
    merge_shared_plan,
)
from unimedia.config.app_config import ConfigError, load_app_config
from unimedia.core.average import (
    credit_summary,
    format_average,
    parse_grade,
    weighted_average,
    what_if_average,
)
from unimedia.core.csv_import import (
    CsvImportError,
    build_csv_prompt,
    build_plan_code,
)
from unimedia.core.plans import PlanNotFoundError
from unimedia.core.tracker import (
    EmptySelectionError,
    ExamNotFoundError,
    ExamsState,
    load_exams_state,
    save_exams_state,
)

app = typer.Typer(
    name="unimedia",
    help="Weighted grade average tracker with shared study plans.",
    no_args_is_help=True,
)

console = Console()


def _data_dir() -> Path:
    return Path(load_app_config(force_reload=True).client.data_dir)


def _load_state() -> ExamsState:
    return load_exams_state(_data_dir())


def _save_state(state: ExamsState) -> None:
    save_exams_state(state, _data_dir())


def _open_api() -> PlanApiClient:
    """Create the plan store client from configuration."""
    return PlanApiClient(load_app_config(force_reload=True).client.api_base)


def _fail(message: str) -> None:
    console.print(f"[red]✗ {escape(message)}[/red]")
    raise typer.Exit(code=1)


def _resolve_or_exit(state: ExamsState, ref: str):
    try:
        return state.resolve_exam(ref)
    except ExamNotFoundError as e:
        _fail(str(e))


def _plan_code_or_exit(xx: str, yy: str) -> str:
    try:
        return build_plan_code(xx, yy)
    except CsvImportError as e:
        _fail(str(e))


def _parse_selection(raw: str | None, total: int) -> list[int] | None:
    """Parse "1,3,5" (1-based) into 0-based indices; None selects all."""
    if raw is None:
        return None
    indices = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdecimal() or not 1 <= int(part) <= total:
            _fail(f"'{part}' non è una riga valida (1-{total})")
        indices.append(int(part) - 1)
    return indices


def _warn_if_bad_grade(grade: str | None) -> None:
    if grade and grade.strip() and parse_grade(grade) is None:
        console.print("[yellow]⚠ Voto non valido (0-30): non verrà conteggiato nella media[/yellow]")


def _print_exams(state: ExamsState) -> None:
    table = Table(title="Esami")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Esame")
    table.add_column("CFU", justify="right")
    table.add_column("Voto", justify="right")
    table.add_column("ID", style="dim")

    for i, exam in enumerate(state.exams, start=1):
        grade = exam.grade if exam.grade.strip() else "—"
        if exam.grade.strip() and parse_grade(exam.grade) is None:
            grade = f"[red]{exam.grade}[/red]"
        table.add_row(str(i), exam.name, str(exam.cfu), grade, exam.id)

    console.print(table)


def _print_average(state: ExamsState) -> None:
    summary = credit_summary(state.exams)
    console.print(f"[bold]Media pesata:[/bold] {format_average(weighted_average(state.exams))}")
    console.print(
        f"  [dim]CFU con voto:[/dim] {summary.graded_cfu}/{summary.total_cfu}"
        f"  [dim]esami con voto:[/dim] {summary.graded_exams}/{summary.total_exams}"
    )


# =============================================================================
# EXAM LIST
# =============================================================================


@app.command(name="list")
def list_exams() -> None:
    """Show the exam list and the weighted average."""
    state = _load_state()
    if not state.exams:
        console.print("[dim]Nessun esame. Usa 'unimedia add' o 'unimedia import'.[/dim]")
    else:
        _print_exams(state)
    _print_average(state)


@app.command()
def add(
    name: str = typer.Option("Nuovo esame", "--name", "-n", help="Exam title"),
    cfu: int = typer.Option(6, "--cfu", "-c", min=0, help="Credit weight"),
    grade: str = typer.Option("", "--grade", "-g", help="Grade 0-30 (empty = not recorded)"),
) -> None:
    """Add an exam to the list."""
    _warn_if_bad_grade(grade)
    state = _load_state()
    exam = state.add_exam(name=name, cfu=cfu, grade=grade)
    _save_state(state)
    console.print(f"[green]✓ Aggiunto: {exam.name} ({exam.cfu} CFU)[/green]")
    _print_average(state)


@app.command()
def remove(
    exam_ref: str = typer.Argument(..., help="Exam ID or position in the list"),
) -> None:
    """Remove an exam from the list."""
    state = _load_state()
    exam = _resolve_or_exit(state, exam_ref)
    state.remove_exam(exam.id)
    _save_state(state)
    console.print(f"[green]✓ Rimosso: {exam.name}[/green]")


@app.command(name="set")
def set_exam(
    exam_ref: str = typer.Argument(..., help="Exam ID or position in the list"),
    name: str | None = typer.Option(None, "--name", "-n", help="New title"),
    cfu: int | None = typer.Option(None, "--cfu", "-c", min=0, help="New credit weight"),
    grade: str | None = typer.Option(None, "--grade", "-g", help="New grade ('' clears it)"),
) -> None:
    """Edit the title, CFU, or grade of an exam."""
    if name is None and cfu is None and grade is None:
        _fail("Nessuna modifica: usa --name, --cfu o --grade")

    _warn_if_bad_grade(grade)
    state = _load_state()
    exam = _resolve_or_exit(state, exam_ref)
    state.update_exam(exam.id, name=name, cfu=cfu, grade=grade)
    _save_state(state)
    console.print(f"[green]✓ Aggiornato: {exam.name} ({exam.cfu} CFU, voto {exam.grade or '—'})[/green]")
    _print_average(state)


@app.command(name="what-if")
def what_if(
    exam_ref: str = typer.Argument(..., help="Exam ID or position in the list"),
    grade: str = typer.Argument(..., help="Hypothetical grade 0-30"),
) -> None:
    """Simulate the average with a hypothetical grade for one exam."""
    state = _load_state()
    exam = _resolve_or_exit(state, exam_ref)

    if parse_grade(grade) is None:
        console.print("[yellow]⚠ Voto ipotetico non valido: media invariata[/yellow]")

    current = weighted_average(state.exams)
    simulated = what_if_average(state.exams, exam.id, grade)
    console.print(f"[bold]Media attuale:[/bold]   {format_average(current)}")
    console.print(f"[bold]Media simulata:[/bold]  {format_average(simulated)}")
    console.print(f"  [dim]{exam.name} → {grade}[/dim]")


@app.command()
def reset() -> None:
    """Restore the demo exam list."""
    state = _load_state()
    state.reset_demo()
    _save_state(state)
    console.print("[green]✓ Demo ripristinata.[/green]")


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Remove every exam from the list."""
    if not yes and not typer.confirm("Svuotare la lista degli esami?"):
        console.print("[dim]Annullato.[/dim]")
        return
    state = _load_state()
    state.clear()
    _save_state(state)
    console.print("[green]✓ Lista svuotata.[/green]")


# =============================================================================
# STUDY PLANS
# =============================================================================


@app.command(name="import")
def import_plan(
    csv_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="Plan CSV named XX-YY.csv"
    ),
) -> None:
    """Replace the exam list with a plan CSV and share it if new.

    The file must be named XX-YY.csv and start with the header
    Codice;Denominazione;CFU (";" or "," separated, UTF-8 or UTF-16).
    """
    state = _load_state()
    console.print("[blue]Caricamento piano…[/blue]")
    try:
        with _open_api() as api:
            outcome = import_plan_file(csv_file, state, api, _data_dir())
    except CsvImportError as e:
        _fail(f"Errore: {e}")
    except (PlanApiError, httpx.HTTPError) as e:
        _fail(f"Piano caricato in locale, ma non salvato: {e}")

    console.print(f"[green]✓ {len(outcome.plan.rows)} esami caricati dal piano {outcome.plan.code}[/green]")
    console.print(f"  {outcome.message}")


@app.command()
def lookup(
    xx: str = typer.Argument(..., help="First two digits of the plan code"),
    yy: str = typer.Argument(..., help="Last two digits of the plan code"),
    select: str | None = typer.Option(
        None, "--select", "-s", help="Rows to add, e.g. '1,3,4' (default: all)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the plan without merging"),
) -> None:
    """Fetch a shared plan and add its exams, skipping duplicates."""
    code = _plan_code_or_exit(xx, yy)
    console.print(f"[blue]Ricerca piano {code}…[/blue]")

    try:
        with _open_api() as api:
            plan = lookup_plan(api, code)
    except PlanNotFoundError:
        console.print("[yellow]Questo piano non è ancora stato caricato da nessun utente.[/yellow]")
        raise typer.Exit(code=1)
    except (PlanApiError, httpx.HTTPError) as e:
        _fail(f"Errore: {e}")

    table = Table(title=f"Piano {plan.code}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Codice")
    table.add_column("Denominazione")
    table.add_column("CFU", justify="right")
    for i, row in enumerate(plan.rows, start=1):
        table.add_row(str(i), row.codice, row.denominazione, str(row.cfu))
    console.print(table)

    if dry_run:
        return

    indices = _parse_selection(select, len(plan.rows))
    state = _load_state()
    try:
        result = merge_shared_plan(plan, state, indices, _data_dir())
    except EmptySelectionError as e:
        _fail(str(e))

    console.print(f"[green]✓ {merge_message(plan.code, result)}[/green]")


@app.command(name="export-plan")
def export_plan(
    xx: str = typer.Argument(..., help="First two digits of the plan code"),
    yy: str = typer.Argument(..., help="Last two digits of the plan code"),
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help="Destination folder"),
) -> None:
    """Download a shared plan as XX-YY.csv."""
    code = _plan_code_or_exit(xx, yy)
    try:
        with _open_api() as api:
            path = export_shared_plan(api, code, output_dir)
    except PlanNotFoundError:
        _fail("Questo piano non è ancora stato caricato da nessun utente.")
    except (PlanApiError, CsvImportError, httpx.HTTPError) as e:
        _fail(f"Errore: {e}")

    console.print(f"[green]✓ Piano esportato: {path}[/green]")


@app.command()
def prompt(
    xx: str = typer.Argument(..., help="First two digits of the plan code"),
    yy: str = typer.Argument(..., help="Last two digits of the plan code"),
) -> None:
    """Print instructions to generate a conforming plan CSV."""
    code = _plan_code_or_exit(xx, yy)
    console.print(build_csv_prompt(code), markup=False, highlight=False)


# =============================================================================
# SERVER
# =============================================================================


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Port (default from config)"),
) -> None:
    """Run the plan store API."""
    import uvicorn

    from unimedia.db import open_plan_store
    from unimedia.web.api import create_app

    try:
        config = load_app_config(force_reload=True)
        store = open_plan_store(config.store)
    except ConfigError as e:
        _fail(str(e))

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    console.print(f"[blue]API on http://{bind_host}:{bind_port}[/blue]")
    uvicorn.run(create_app(store=store, config=config), host=bind_host, port=bind_port)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
