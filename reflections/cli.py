"""
CLI interface for reflections.

Usage:
    reflections login me@example.com
    reflections capture screenshot.png --note "worth remembering"
    reflections find "python"
    reflections radar
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .api import Reflections
from .errors import AuthError, CallableError, GenerationError, ValidationError
from .logging_config import configure_quiet_mode, enable_debug_mode
from .milestones import milestone_message
from .profile_sync import resume_preview
from .types import Reflection, local_date


# Set REFLECTIONS_VERBOSE=1 to enable debug mode via environment
if os.environ.get("REFLECTIONS_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"reflections {version('reflections')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    if value is not None:
        _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="reflections",
    help="Capture, enrich and reflect on what you read.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="REFLECTIONS_STORE_PATH",
        help="Path to the store directory (default: ~/.reflections/)",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Capture, enrich and reflect on what you read."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _get_reflections() -> Reflections:
    """Open the store, handling errors gracefully."""
    import atexit

    try:
        rf = Reflections(_get_store_override())
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    atexit.register(rf.close)
    return rf


def _fail(message: str) -> None:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _emit(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _record_dict(record: Reflection) -> dict[str, Any]:
    return {"id": record.id, "created_at": record.created_at, **record.to_doc()}


def _format_record(record: Reflection) -> str:
    """One line per record: id, date, summary (or note) and tags."""
    text = record.summary or record.user_note or "(pending enrichment)"
    text = text.replace("\n", " ")
    if len(text) > 80:
        text = text[:77] + "..."
    line = f"{record.id}  {local_date(record.created_at)}  {text}"
    if record.tags:
        line += "  [" + ", ".join(record.tags) + "]"
    return line


def _print_records(records: list[Reflection]) -> None:
    if _get_json_output():
        _emit([_record_dict(r) for r in records])
        return
    if not records:
        typer.echo("No reflections found.")
        return
    for record in records:
        typer.echo(_format_record(record))


def _announce_milestone(milestone: Optional[int]) -> None:
    if milestone is not None and not _get_json_output():
        title, message = milestone_message(milestone)
        typer.echo(f"\n*** {title} ***\n{message}")
        typer.echo("(Run 'reflections milestone --clear' to dismiss.)")


def _print_created(record: Reflection, milestone: Optional[int]) -> None:
    if _get_json_output():
        _emit({**_record_dict(record), "milestone": milestone})
    else:
        typer.echo(f"Saved {record.id}")
    _announce_milestone(milestone)


# -----------------------------------------------------------------------------
# Account
# -----------------------------------------------------------------------------

@app.command()
def signup(
    email: Annotated[str, typer.Argument(help="Email address")],
    name: Annotated[str, typer.Option("--name", help="Display name")] = "",
):
    """Create an account and sign in."""
    password = typer.prompt("Password", hide_input=True, confirmation_prompt=True)
    rf = _get_reflections()
    try:
        user = rf.sign_up(email, password, display_name=name)
    except AuthError as e:
        _fail(str(e))
    typer.echo(f"Signed in as {user.email}")


@app.command()
def login(
    email: Annotated[str, typer.Argument(help="Email address")],
):
    """Sign in to an existing account."""
    password = typer.prompt("Password", hide_input=True)
    rf = _get_reflections()
    try:
        user = rf.sign_in(email, password)
    except AuthError as e:
        _fail(str(e))
    typer.echo(f"Signed in as {user.email}")


@app.command()
def logout():
    """Sign out."""
    _get_reflections().sign_out()
    typer.echo("Signed out.")


@app.command()
def whoami():
    """Show the signed-in user and profile summary."""
    rf = _get_reflections()
    if rf.current_user is None:
        _fail("Not signed in.")
    profile = rf.get_profile()
    if _get_json_output():
        _emit({
            "uid": profile.uid,
            "email": rf.current_user.email,
            "display_name": profile.display_name,
            "tagline": profile.tagline,
            "has_resume": bool(profile.resume_text),
            "has_external_profile": profile.external_profile is not None,
        })
        return
    typer.echo(f"{rf.current_user.email} ({profile.uid})")
    if profile.display_name:
        typer.echo(f"Name: {profile.display_name}")
    if profile.tagline:
        typer.echo(f"Tagline: {profile.tagline}")
    preview = resume_preview(profile)
    if preview:
        typer.echo(f"Resume: {preview}")


# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------

@app.command()
def capture(
    image: Annotated[Path, typer.Argument(help="PNG screenshot to capture", exists=True, dir_okay=False)],
    note: Annotated[str, typer.Option("--note", "-n", help="Your note")] = "",
    url: Annotated[Optional[str], typer.Option("--url", help="Page the screenshot came from")] = None,
):
    """Capture a screenshot as a new reflection."""
    rf = _get_reflections()
    try:
        record, milestone = rf.capture(image.read_bytes(), note=note, source_url=url)
    except AuthError as e:
        _fail(str(e))
    _print_created(record, milestone)


@app.command()
def upload(
    path: Annotated[Path, typer.Argument(help="File to upload", exists=True, dir_okay=False)],
    note: Annotated[str, typer.Option("--note", "-n", help="Your note")] = "",
    title: Annotated[Optional[str], typer.Option("--title", help="Display title")] = None,
):
    """Upload a file as a new reflection."""
    rf = _get_reflections()
    try:
        record, milestone = rf.upload(path, note=note, title=title)
    except (AuthError, ValidationError) as e:
        _fail(str(e))
    _print_created(record, milestone)


@app.command()
def note(
    text: Annotated[str, typer.Argument(help="Note text")],
):
    """Save a text-only reflection."""
    rf = _get_reflections()
    try:
        record, milestone = rf.note(text)
    except (AuthError, ValidationError) as e:
        _fail(str(e))
    _print_created(record, milestone)


@app.command("list")
def list_recent(
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", help="Maximum results")] = None,
):
    """List reflections, newest first."""
    rf = _get_reflections()
    try:
        records = rf.list_reflections(limit=limit)
    except AuthError as e:
        _fail(str(e))
    _print_records(records)


@app.command()
def find(
    query: Annotated[str, typer.Argument(help="Text to match in notes, summaries and tags")],
):
    """Search reflections (case-insensitive substring)."""
    rf = _get_reflections()
    try:
        records = rf.find(query)
    except AuthError as e:
        _fail(str(e))
    _print_records(records)


@app.command()
def trending():
    """Show the most frequent tags."""
    rf = _get_reflections()
    try:
        tags = rf.trending()
    except AuthError as e:
        _fail(str(e))
    if _get_json_output():
        _emit(tags)
    elif tags:
        typer.echo(", ".join(tags))
    else:
        typer.echo("No tags yet.")


@app.command()
def edit(
    id: Annotated[str, typer.Argument(help="Reflection ID")],
    note: Annotated[Optional[str], typer.Option("--note", "-n", help="Replace the note")] = None,
    summary: Annotated[Optional[str], typer.Option("--summary", help="Replace the summary")] = None,
):
    """Edit a reflection's note or summary."""
    if note is None and summary is None:
        _fail("Nothing to edit; use --note or --summary")
    rf = _get_reflections()
    try:
        record = rf.edit(id, note=note, summary=summary)
    except (AuthError, ValidationError) as e:
        _fail(str(e))
    if _get_json_output():
        _emit(_record_dict(record))
    else:
        typer.echo(_format_record(record))


@app.command()
def status(
    id: Annotated[str, typer.Argument(help="Pursuit ID")],
    new_status: Annotated[str, typer.Argument(
        metavar="STATUS",
        help="not-started, in-progress, stuck, completed or archived",
    )],
    note: Annotated[Optional[str], typer.Option("--note", "-n", help="Replace the note")] = None,
):
    """Change a pursuit's status."""
    rf = _get_reflections()
    try:
        record = rf.update_pursuit(id, note=note, status=new_status)
    except (AuthError, ValidationError) as e:
        _fail(str(e))
    typer.echo(f"{record.id} is now {record.status.value}")


@app.command()
def delete(
    id: Annotated[str, typer.Argument(help="Reflection ID")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
):
    """Permanently delete a reflection."""
    rf = _get_reflections()
    try:
        record = rf.get(id)
    except AuthError as e:
        _fail(str(e))
    if record is None:
        _fail(f"No reflection {id}")
    confirmed = yes or typer.confirm(f"Delete {_format_record(record)}?", default=False)
    if not rf.delete(id, confirmed=confirmed):
        typer.echo("Not deleted.")
        raise typer.Exit(1)
    typer.echo(f"Deleted {id}")


@app.command()
def enrich():
    """Enrich pending reflections and wait for the results."""
    rf = _get_reflections()
    try:
        stats = rf.enrich_pending(wait=True)
    except AuthError as e:
        _fail(str(e))
    if _get_json_output():
        _emit(stats)
    elif stats["started"] == 0:
        typer.echo("Nothing to enrich.")
    else:
        typer.echo(f"Enriched {stats['enriched']} of {stats['started']}"
                   + (f" ({stats['failed']} failed; see log)" if stats["failed"] else ""))


# -----------------------------------------------------------------------------
# Identity
# -----------------------------------------------------------------------------

@app.command()
def persona():
    """Synthesize your professional persona from your reflections."""
    rf = _get_reflections()
    try:
        result = rf.analyze_persona()
    except (AuthError, ValidationError, GenerationError) as e:
        _fail(str(e))
    if _get_json_output():
        _emit(result.to_doc())
        return
    typer.echo(result.summary)
    for trait in result.traits:
        typer.echo(f"  - {trait}")


@app.command()
def milestone(
    clear: Annotated[bool, typer.Option("--clear", help="Dismiss the pending milestone")] = False,
):
    """Show (or dismiss) the pending milestone."""
    rf = _get_reflections()
    try:
        flag = rf.milestone()
        if clear and flag is not None:
            rf.clear_milestone()
    except AuthError as e:
        _fail(str(e))
    if _get_json_output():
        _emit({"milestone": flag, "cleared": bool(clear and flag is not None)})
        return
    if flag is None:
        typer.echo("No pending milestone.")
        return
    title, message = milestone_message(flag)
    typer.echo(f"{title}: {message}")
    if clear:
        typer.echo("Dismissed.")


@app.command()
def level():
    """Show your level and progress to the next one."""
    rf = _get_reflections()
    try:
        current = rf.level()
    except AuthError as e:
        _fail(str(e))
    if _get_json_output():
        _emit({
            "level": current.name,
            "count": current.count,
            "target": current.target,
            "next": current.next_name,
            "progress": current.progress,
        })
    else:
        typer.echo(current.describe())


@app.command()
def resume(
    path: Annotated[Path, typer.Argument(help="Resume (.pdf, .docx or .txt)", exists=True, dir_okay=False)],
):
    """Import your resume text."""
    rf = _get_reflections()
    try:
        text = rf.import_resume(path)
    except (AuthError, ValidationError) as e:
        _fail(str(e))
    typer.echo(f"Imported {len(text)} characters from {path.name}")


@app.command("sync-profile")
def sync_profile(
    page: Annotated[Path, typer.Argument(help="Saved profile page text", exists=True, dir_okay=False)],
    name: Annotated[str, typer.Option("--name", help="Profile name")] = "",
    headline: Annotated[str, typer.Option("--headline", help="Profile headline")] = "",
    url: Annotated[str, typer.Option("--url", help="Profile URL")] = "",
):
    """Sync your external professional profile from scraped page text."""
    rf = _get_reflections()
    try:
        profile = rf.sync_profile(
            page.read_text(encoding="utf-8", errors="replace"),
            name=name, headline=headline, profile_url=url,
        )
    except AuthError as e:
        _fail(str(e))
    typer.echo("Profile synced." + (f" Tagline: {profile.tagline}" if profile.tagline else ""))


# -----------------------------------------------------------------------------
# Radar & pursuits
# -----------------------------------------------------------------------------

@app.command()
def radar():
    """Run the weekly radar briefing."""
    rf = _get_reflections()
    try:
        result = rf.run_radar()
    except CallableError as e:
        _fail(f"{e.code}: {e.message}")
    if _get_json_output():
        _emit(result)
        return
    if result["status"] != "success":
        typer.echo(result.get("message", "No radar this week."))
        return
    data = result["data"]
    for key, card in data["cards"].items():
        typer.echo(f"[{key.replace('_', ' ').title()}] {card['title']}")
        typer.echo(f"  {card['content']}")
    for video in data["videos"]:
        typer.echo(f"Video: {video['title']} {video['url']}")


@app.command()
def suggest():
    """Generate three growth suggestions."""
    rf = _get_reflections()
    try:
        cards = rf.suggest()
    except (AuthError, GenerationError) as e:
        _fail(str(e))
    if _get_json_output():
        _emit(cards)
        return
    for i, card in enumerate(cards, 1):
        typer.echo(f"{i}. [{card['type']}] {card['title']}")
        typer.echo(f"   {card['description']}")
        if card.get("action_item"):
            typer.echo(f"   Next: {card['action_item']}")


@app.command()
def pursue(
    number: Annotated[int, typer.Argument(help="Suggestion number from 'suggest'")],
):
    """Save a growth suggestion as a pursuit."""
    rf = _get_reflections()
    try:
        record = rf.pursue(number - 1)
    except (AuthError, ValidationError) as e:
        _fail(str(e))
    if record is None:
        typer.echo("Already pursuing that one.")
    else:
        typer.echo(f"Pursuing {record.id}: {record.summary}")


@app.command()
def pursuits():
    """List your pursuits."""
    rf = _get_reflections()
    try:
        records = rf.pursuits()
    except AuthError as e:
        _fail(str(e))
    if _get_json_output():
        _emit([_record_dict(r) for r in records])
        return
    if not records:
        typer.echo("No pursuits yet.")
    for record in records:
        status_text = record.status.value if record.status else "-"
        typer.echo(f"{record.id}  {status_text}  {record.summary}")


@app.command()
def coach(
    id: Annotated[str, typer.Argument(help="Pursuit ID")],
    update: Annotated[Optional[str], typer.Argument(help="Progress update")] = None,
    stuck: Annotated[bool, typer.Option("--stuck", help="Ask for help getting unstuck")] = False,
    plan: Annotated[bool, typer.Option("--plan", help="Generate a roadmap")] = False,
    target_date: Annotated[Optional[str], typer.Option("--by", help="Target date for the roadmap")] = None,
):
    """Get a roadmap or coaching feedback on a pursuit."""
    if not plan and not update:
        _fail("Give a progress update, or --plan for a roadmap")
    rf = _get_reflections()
    try:
        if plan:
            roadmap = rf.plan_pursuit(id, target_date=target_date)
            if _get_json_output():
                _emit(roadmap)
                return
            typer.echo(roadmap.get("assessment", ""))
            for phase in roadmap.get("phases", []):
                typer.echo(f"\n{phase.get('phase', '')}")
                for item in phase.get("items", []):
                    typer.echo(f"  - {item}")
        if update:
            feedback = rf.coach(id, update, stuck=stuck)
            if _get_json_output():
                _emit({"feedback": feedback})
            else:
                typer.echo(feedback)
    except (AuthError, ValidationError, GenerationError) as e:
        _fail(str(e))


@app.command()
def ask(
    question: Annotated[str, typer.Argument(help="Question about your reflections")],
):
    """Ask a question grounded in your reflections."""
    rf = _get_reflections()
    try:
        answer = rf.ask(question)
    except (AuthError, GenerationError) as e:
        _fail(str(e))
    typer.echo(answer)


@app.command()
def config():
    """Show the store configuration."""
    rf = _get_reflections()
    cfg = rf.config
    info = {
        "store": str(cfg.path),
        "config": str(cfg.config_path),
        "generation": cfg.generation.name,
        "document": cfg.document.name,
        "workers": cfg.pipeline.workers,
        "persona_debounce_seconds": cfg.pipeline.persona_debounce_seconds,
        "radar_email": bool(cfg.radar.email_api_key),
        "radar_video": bool(cfg.radar.video_api_key),
    }
    if _get_json_output():
        _emit(info)
        return
    for key, value in info.items():
        typer.echo(f"{key}: {value}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="reflections CLI", store_path=_get_store_override())
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
