"""Interactive CLI application."""
import logging
import time
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from epa_tutor.catalog import (
    EPA_COMPONENTS, GRADE_BOUNDARIES, get_requirement, knowledge_codes,
    load_questions, load_requirements, load_sections,
)
from epa_tutor.config import configure_logging, load_settings
from epa_tutor.dashboard import (
    STATUS_LABELS, get_dashboard_stats, get_score_color, tracker_statuses,
    tracker_summary,
)
from epa_tutor.db import init_db
from epa_tutor.importer import import_file
from epa_tutor.portfolio import (
    detected_requirements, display_title, document_progress, new_document,
    rename_document, update_section,
)
from epa_tutor.quiz import (
    MODE_SETTINGS, ExamMode, ExamSession, SessionState, format_time,
)
from epa_tutor.store import ProgressStore
from epa_tutor.study import FILTERS, assessment_labels, filter_requirements, mark_studied, studied_progress
from epa_tutor.tagger import tag_evidence_ordered
from epa_tutor.tutor import (
    MissingCredentialError, TutorChat, TutorError, client_factory, draft_section,
)

logger = logging.getLogger(__name__)

console = Console()

EXIT_WORDS = ("q", "menu")


class SessionExitRequested(Exception):
    """Raised when the learner leaves an exam or chat mid-way."""


def session_prompt(prompt: str, choices: list | None = None, **kwargs) -> str:
    if choices is not None:
        choices = list(choices) + [w for w in EXIT_WORDS if w not in choices]
    value = Prompt.ask(prompt, choices=choices, **kwargs)
    if value.strip().lower() in EXIT_WORDS:
        raise SessionExitRequested()
    return value


def read_multiline(hint: str) -> str:
    """Read lines until an empty line; returns the joined text."""
    console.print(f"[dim]{hint} (finish with an empty line)[/dim]")
    lines = []
    while True:
        line = console.input()
        if not line.strip():
            break
        lines.append(line)
    return "\n".join(lines)


def resolve_api_key(store: ProgressStore, settings) -> str:
    return store.api_key or settings.gemini_api_key


def show_welcome():
    console.print(Panel(
        "[bold]Level 3 MOET Study Hub[/bold]\n"
        "[dim]City & Guilds End-Point Assessment Preparation · ST0154[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("dashboard", "Progress overview"),
        ("study", "Browse and mark requirements studied"),
        ("quiz", "Mock tests"),
        ("portfolio", "Write portfolio evidence"),
        ("tracker", "Requirement tracker"),
        ("tutor", "Ask the AI tutor"),
        ("import", "Import evidence from a file"),
        ("settings", "API key"),
        ("reset", "Clear all progress"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


# --- exam ---


def run_exam(session: ExamSession, timer=time.monotonic) -> None:
    """Drive an active exam session until it reaches its results."""
    if not session.questions:
        console.print("[yellow]No questions available for this selection.[/yellow]")
        session.reset()
        return
    last = timer()

    def tick():
        nonlocal last
        elapsed = int(timer() - last)
        last += elapsed
        session.tick(elapsed)
        return session.state is SessionState.ACTIVE

    console.print(f"\n[bold]{session.mode.value.title()} exam[/bold] — {session.total} questions\n")
    try:
        while session.state is SessionState.ACTIVE:
            q = session.current_question
            header = f"Q{session.index + 1}/{session.total}  [dim]{q.requirement} · {q.topic}[/dim]"
            if session.countdown_enabled:
                color = "red" if session.remaining < 300 else "dim"
                header += f"  [{color}]{format_time(session.remaining)}[/{color}]"
            console.print(header)
            console.print(f"[bold]{q.text}[/bold]\n")
            for letter, text in q.options.items():
                console.print(f"  [cyan]{letter})[/cyan] {text}")
            answer = session_prompt("\nYour answer", choices=list(q.options))
            if not tick():
                console.print("[red]Time's up![/red]")
                break
            feedback = session.answer(answer)
            if feedback.correct:
                console.print("[green]Correct![/green]")
            else:
                console.print(f"[red]Incorrect.[/red] Correct answer: [green]{q.answer.upper()}[/green]")
            if feedback.explanation:
                console.print(f"[dim]{feedback.explanation}[/dim]")
            label = "See results" if session.is_last_question else "Next question"
            session_prompt(f"[dim]Press Enter: {label}[/dim]", default="", show_default=False)
            if not tick():
                console.print("[red]Time's up![/red]")
                break
            session.advance()
    except SessionExitRequested:
        session.reset()
        console.print("[dim]Exam abandoned; nothing was saved.[/dim]")
        return
    show_results(session)


def show_results(session: ExamSession) -> None:
    pct = round(session.percentage)
    grade = session.grade
    console.print(Panel(
        f"[bold]{pct}%[/bold]  [{grade.color}]{grade.name}[/{grade.color}]\n"
        f"{session.score} / {session.total} correct",
        title="Results", border_style=grade.color,
    ))
    table = Table(title="Review")
    table.add_column("#", justify="right")
    table.add_column("Question")
    table.add_column("Yours")
    table.add_column("Answer")
    table.add_column("KSB")
    for item in session.review():
        q = item.question
        mark = "[green]✓[/green]" if item.correct else "[red]✗[/red]"
        text = q.text if len(q.text) <= 80 else q.text[:80] + "…"
        yours = item.selected.upper() if item.answered else "[dim]unanswered[/dim]"
        table.add_row(f"{item.number} {mark}", text, yours, q.answer.upper(), q.requirement)
    console.print(table)


def cmd_quiz(store: ProgressStore):
    console.print(f"\n[bold]Mock Tests[/bold] — {len(load_questions())} questions in the bank")
    console.print("  [cyan]full[/cyan]   All questions · 45 minutes · exam conditions")
    console.print("  [cyan]quick[/cyan]  10 questions · 15 minutes")
    console.print("  [cyan]topic[/cyan]  Focus on one knowledge area · untimed")
    bounds = GRADE_BOUNDARIES["knowledge_test"]
    console.print(f"[dim]Pass {bounds['pass']}% · Merit {bounds['merit']}% · "
                  f"Distinction {bounds['distinction']}%[/dim]")
    mode = ExamMode(Prompt.ask("Mode", choices=[m.value for m in ExamMode], default="quick"))
    topic = None
    if mode is ExamMode.TOPIC:
        codes = knowledge_codes()
        for code in codes:
            console.print(f"  [cyan]{code}[/cyan] {get_requirement(code).title}")
        topic = Prompt.ask("Topic", choices=codes, default=codes[0])
    session = ExamSession(on_complete=store.record_attempt)
    session.start(mode, topic=topic)
    if MODE_SETTINGS[mode].countdown:
        console.print(f"[dim]Time limit {format_time(session.remaining)}. Type 'q' to abandon.[/dim]")
    run_exam(session)


# --- dashboard / study / tracker ---


def cmd_dashboard(store: ProgressStore):
    stats = get_dashboard_stats(store)
    header = "Electrical Technician Pathway"
    last = stats["last_attempt"]
    if last:
        header += f"\nLast test: {last['score']}/{last['total']} ({last['pct']}%, {last['grade']})"
    console.print(Panel(header, title="Level 3 MOET Study Hub", border_style="blue"))

    table = Table(title="Progress")
    table.add_column("Measure", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Progress", justify="right")
    table.add_row("KSBs studied", f"{stats['studied']}/{stats['requirements_total']}", f"{stats['studied_pct']}%")
    table.add_row("Tests taken", str(stats["tests_taken"]), f"{stats['tests_progress']}%")
    avg_color = get_score_color(stats["avg_score"])
    table.add_row("Average score", f"[{avg_color}]{stats['avg_score']}%[/{avg_color}]", f"{stats['avg_score']}%")
    table.add_row("Portfolio pieces", f"{stats['portfolio_complete']}/{stats['portfolio_target']}",
                  f"{stats['portfolio_pct']}%")
    console.print(table)

    components = Table(title="EPA Components")
    components.add_column("Component")
    components.add_column("KSBs")
    components.add_column("Weight", justify="right")
    for c in EPA_COMPONENTS:
        components.add_row(f"[{c['color']}]{c['name']}[/{c['color']}]", c["requirements"], c["weight"])
    console.print(components)


def cmd_study(store: ProgressStore):
    console.print(f"\n[bold]Study Mode[/bold] — {store.studied_count}/{len(load_requirements())} studied "
                  f"({studied_progress(store)}%)")
    category = Prompt.ask("Filter", choices=list(FILTERS), default="all")
    requirements = filter_requirements(category)
    table = Table(title=FILTERS[category])
    table.add_column("KSB", style="cyan")
    table.add_column("Title")
    table.add_column("Studied")
    for r in requirements:
        title = r.title + (" [yellow](Specialist)[/yellow]" if r.is_specialist else "")
        table.add_row(r.id, title, "[green]✓[/green]" if store.is_studied(r.id) else "")
    console.print(table)
    codes = [r.id for r in requirements]
    code = Prompt.ask("Open a KSB (Enter to go back)", default="", show_default=False).strip().upper()
    if not code:
        return
    if code not in codes:
        console.print(f"[red]Unknown KSB: {code}[/red]")
        return
    r = get_requirement(code)
    points = "\n".join(f"• {p}" for p in r.key_points)
    console.print(Panel(
        f"{r.description}\n[dim]{' | '.join(assessment_labels(r.assessed_by))}[/dim]\n\n"
        f"[bold]Key Points to Know[/bold]\n{points}",
        title=f"{r.id} – {r.title}",
    ))
    verb = "Unmark" if store.is_studied(code) else "Mark"
    if Confirm.ask(f"{verb} {code} as studied?", default=not store.is_studied(code)):
        studied = mark_studied(store, code)
        console.print("[green]Marked as studied.[/green]" if studied else "[dim]Studied mark removed.[/dim]")


def cmd_tracker(store: ProgressStore):
    summary = tracker_summary(store)
    console.print(f"\n[bold]KSB Tracker[/bold] — {summary['total']} requirements · "
                  f"[blue]{summary['studied']} studied[/blue] · "
                  f"[dark_orange]{summary['evidenced']} evidenced[/dark_orange] · "
                  f"[green]{summary['complete']} complete[/green]")
    statuses = tracker_statuses(store)
    table = Table()
    table.add_column("KSB", style="cyan")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Status")
    for r in load_requirements():
        label, color = STATUS_LABELS[statuses[r.id]]
        table.add_row(r.id, r.title, r.category, f"[{color}]{label}[/{color}]")
    console.print(table)


# --- portfolio ---


def _pick_section() -> str:
    sections = load_sections()
    for i, s in enumerate(sections, 1):
        console.print(f"  [cyan]{i}[/cyan]) {s.title}")
    index = IntPrompt.ask("Section", choices=[str(i) for i in range(1, len(sections) + 1)])
    return sections[index - 1].id


def _show_document(doc):
    done, total = document_progress(doc)
    table = Table(title=f"{display_title(doc)} — {done}/{total} sections")
    table.add_column("#", justify="right")
    table.add_column("Section")
    table.add_column("Length", justify="right")
    table.add_column("Status")
    for i, s in enumerate(load_sections(), 1):
        text = doc.sections.get(s.id, "")
        status = "[green]complete[/green]" if s.id in doc.completed_sections else "[dim]incomplete[/dim]"
        table.add_row(str(i), s.title, str(len(text)), status)
    console.print(table)
    codes = detected_requirements(doc)
    if codes:
        console.print(f"[dim]Detected KSBs: {', '.join(codes)}[/dim]")


def edit_document(store: ProgressStore, doc, settings):
    factory = client_factory(settings)
    while True:
        _show_document(doc)
        action = Prompt.ask("Action", choices=["title", "edit", "ai", "back"], default="back")
        if action == "back":
            return
        if action == "title":
            rename_document(doc, Prompt.ask("Title", default=doc.title))
            store.update_document(doc)
            continue
        section_id = _pick_section()
        section = next(s for s in load_sections() if s.id == section_id)
        if action == "edit":
            console.print(Panel(f"{section.prompt}\n\n[dim]{section.placeholder}[/dim]", title=section.title))
            current = doc.sections.get(section_id, "")
            if current:
                console.print(Panel(current, title="Current text", border_style="dim"))
            update_section(doc, section_id, read_multiline("Type the new section text"))
            store.update_document(doc)
            console.print(f"[dim]KSBs in this section: "
                          f"{', '.join(tag_evidence_ordered(doc.sections[section_id])) or 'none'}[/dim]")
        else:
            try:
                with console.status("Drafting with AI..."):
                    text = draft_section(store, doc.id, section_id, resolve_api_key(store, settings), factory)
            except MissingCredentialError as e:
                console.print(f"[yellow]{e}[/yellow]")
                continue
            except TutorError as e:
                console.print(f"[red]Failed to generate content: {e}[/red]")
                continue
            if text:
                console.print(Panel(text, title=section.title, border_style="green"))
            doc = store.get_document(doc.id) or doc


def cmd_portfolio(store: ProgressStore, settings):
    while True:
        console.print("\n[bold]Portfolio Builder[/bold]")
        table = Table()
        table.add_column("#", justify="right")
        table.add_column("Title")
        table.add_column("Sections", justify="right")
        table.add_column("KSBs")
        for i, doc in enumerate(store.documents, 1):
            done, total = document_progress(doc)
            codes = detected_requirements(doc)
            shown = ", ".join(codes[:5]) + (f" +{len(codes) - 5} more" if len(codes) > 5 else "")
            table.add_row(str(i), display_title(doc), f"{done}/{total}", shown)
        if store.documents:
            console.print(table)
        else:
            console.print("[dim]No portfolio pieces yet.[/dim]")
        action = Prompt.ask("Action", choices=["new", "open", "delete", "back"], default="back")
        if action == "back":
            return
        if action == "new":
            doc = new_document(existing_ids=[d.id for d in store.documents])
            rename_document(doc, Prompt.ask("Title", default=""))
            store.add_document(doc)
            edit_document(store, doc, settings)
            continue
        if not store.documents:
            console.print("[yellow]Create a portfolio piece first.[/yellow]")
            continue
        index = IntPrompt.ask("Piece", choices=[str(i) for i in range(1, len(store.documents) + 1)])
        doc = store.documents[index - 1]
        if action == "open":
            edit_document(store, doc, settings)
        elif Confirm.ask(f"Delete '{display_title(doc)}'?", default=False):
            store.delete_document(doc.id)
            console.print("[dim]Deleted.[/dim]")


# --- tutor ---


def cmd_tutor(store: ProgressStore, settings, chat: TutorChat):
    console.print("\n[bold]AI Tutor[/bold] [dim]— type 'clear' to reset, 'q' to return to the menu[/dim]")
    for turn in chat.transcript:
        _print_turn(turn)
    while True:
        try:
            message = session_prompt("[bold]You[/bold]")
        except SessionExitRequested:
            return
        if message.strip().lower() == "clear":
            chat.clear()
            _print_turn(chat.transcript[0])
            continue
        try:
            with console.status("Thinking..."):
                reply = chat.send(message, resolve_api_key(store, settings))
        except MissingCredentialError as e:
            console.print(f"[yellow]{e} Use 'settings' to add it.[/yellow]")
            return
        except TutorError as e:
            console.print(f"[red]{e}[/red]")
            continue
        if reply is not None:
            _print_turn(reply)


def _print_turn(turn):
    if turn.role == "user":
        console.print(f"[cyan]You:[/cyan] {turn.text}")
    else:
        console.print(Panel(turn.text, title="Tutor", border_style="magenta"))


# --- misc ---


def cmd_import(store: ProgressStore):
    if not store.documents:
        console.print("[yellow]Create a portfolio piece first.[/yellow]")
        return
    file_path = Prompt.ask("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    for i, doc in enumerate(store.documents, 1):
        console.print(f"  [cyan]{i}[/cyan]) {display_title(doc)}")
    index = IntPrompt.ask("Piece", choices=[str(i) for i in range(1, len(store.documents) + 1)])
    section_id = _pick_section()
    result = import_file(store, file_path, store.documents[index - 1].id, section_id)
    codes = ", ".join(result["requirements"]) or "none detected"
    console.print(f"[green]Imported {result['filename']} ({result['length']} chars) → {codes}[/green]")


def cmd_settings(store: ProgressStore, settings):
    if store.api_key:
        console.print(f"API key: [green]configured[/green] (…{store.api_key[-4:]})")
    elif settings.gemini_api_key:
        console.print("API key: [green]from environment[/green]")
    else:
        console.print("API key: [yellow]not configured[/yellow]")
    key = Prompt.ask("New Gemini API key (Enter to keep)", password=True, default="", show_default=False)
    if key.strip():
        store.set_api_key(key)
        console.print("[green]Saved.[/green]")


def cmd_reset(store: ProgressStore):
    if Confirm.ask("[red]Clear all progress, test history, portfolio and API key?[/red]", default=False):
        store.reset()
        console.print("[dim]All progress cleared.[/dim]")


def main():
    settings = load_settings()
    configure_logging(settings.log_level)
    init_db(settings.db_path)
    store = ProgressStore.load(settings.db_path)
    chat = TutorChat(client_factory(settings))

    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="dashboard").strip().lower()
        try:
            if choice == "dashboard":
                cmd_dashboard(store)
            elif choice == "study":
                cmd_study(store)
            elif choice == "quiz":
                cmd_quiz(store)
            elif choice == "portfolio":
                cmd_portfolio(store, settings)
            elif choice == "tracker":
                cmd_tracker(store)
            elif choice == "tutor":
                cmd_tutor(store, settings, chat)
            elif choice == "import":
                cmd_import(store)
            elif choice == "settings":
                cmd_settings(store, settings)
            elif choice == "reset":
                cmd_reset(store)
            elif choice in ("quit", "exit", "q"):
                console.print("[dim]Good luck with your EPA![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            logger.exception("Command %s failed", choice)
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
