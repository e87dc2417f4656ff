"""CLI entry point for session-vault."""

import functools
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

import click
import uvicorn

from . import operations
from .config import get_vault_dir, load_config
from .errors import VaultError


def _handle_errors(f):
    """Report VaultError as a click error (message + exit code 1)."""

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except VaultError as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _entry_line(entry) -> str:
    tags = f"  [{', '.join(entry.tags)}]" if entry.tags else ""
    return f"{entry.id[:8]}  {entry.saved_at[:10]}  {entry.project}  {entry.summary}{tags}"


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx, verbose: bool):
    """Save and browse Claude Code conversations."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    vault_dir = get_vault_dir()
    ctx.obj = {"vault_dir": vault_dir, "config": load_config(vault_dir)}


@main.command()
@click.argument("transcript_path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--project", "project_path", default=None, help="Project directory (default: cwd).")
@click.option("--session-id", default=None, help="Original session ID.")
@click.option("--tag", "tags", multiple=True, help="Tag to attach (repeatable).")
@click.option("--note", default="", help="A note describing the conversation.")
@click.pass_obj
@_handle_errors
def save(obj, transcript_path: Path, project_path: str | None, session_id: str | None, tags, note: str):
    """Save a session .jsonl file to the vault."""
    record = operations.save_conversation(
        obj["vault_dir"],
        transcript_path,
        project_path=project_path or str(Path.cwd()),
        config=obj["config"],
        session_id=session_id,
        tags=tags,
        note=note,
    )
    click.echo(f"Saved {record.id} ({record.message_count} messages): {record.summary}")


@main.command(name="list")
@click.option("--project", default=None, help="Filter by project name.")
@click.option("--tag", default=None, help="Filter by tag.")
@click.option("--limit", default=20, type=click.IntRange(1, 100), help="Maximum results.")
@click.option("--offset", default=0, type=click.IntRange(0), help="Results to skip.")
@click.option("--json", "as_json", is_flag=True, help="Print JSON.")
@click.pass_obj
@_handle_errors
def list_command(obj, project: str | None, tag: str | None, limit: int, offset: int, as_json: bool):
    """List saved conversations, newest first."""
    entries, total = operations.list_conversations(
        obj["vault_dir"], project=project, tag=tag, limit=limit, offset=offset
    )
    if as_json:
        _echo_json({"conversations": [e.to_dict() for e in entries], "total": total})
        return
    for entry in entries:
        click.echo(_entry_line(entry))
    click.echo(f"{len(entries)} of {total} conversations")


@main.command()
@click.argument("query")
@click.option("--project", default=None, help="Filter by project name.")
@click.option("--tag", default=None, help="Filter by tag.")
@click.option("--from", "date_from", default=None, help="Saved on or after (ISO 8601).")
@click.option("--to", "date_to", default=None, help="Saved on or before (ISO 8601).")
@click.option("--json", "as_json", is_flag=True, help="Print JSON.")
@click.pass_obj
@_handle_errors
def search(obj, query: str, project, tag, date_from, date_to, as_json: bool):
    """Search saved conversations by metadata and content."""
    results = operations.search_conversations(
        obj["vault_dir"], query, project=project, tag=tag, date_from=date_from, date_to=date_to
    )
    if as_json:
        _echo_json({"results": [asdict(r) for r in results], "total": len(results)})
        return
    for r in results:
        click.echo(f"{r.id[:8]}  score={r.score}  {r.summary}")
        click.echo("    " + r.match_context.replace("\n", "\n    "))
    click.echo(f"{len(results)} results")


@main.command()
@click.argument("conversation_id")
@click.option(
    "--section",
    type=click.Choice(["full", "decisions", "code", "errors"]),
    default="full",
    help="Part of the transcript to print.",
)
@click.pass_obj
@_handle_errors
def get(obj, conversation_id: str, section: str):
    """Print a saved conversation (ID or unique ID prefix)."""
    _, content = operations.get_conversation(obj["vault_dir"], conversation_id, section)
    click.echo(content)


@main.command()
@click.argument("ids", nargs=-1)
@click.option("--older-than", default=None, help='Age filter such as "30d", "12h" or "6m".')
@click.option("--tag", default=None, help="Only conversations with this tag.")
@click.option("--yes", "confirm", is_flag=True, help="Delete without previewing.")
@click.pass_obj
@_handle_errors
def delete(obj, ids, older_than: str | None, tag: str | None, confirm: bool):
    """Delete conversations by ID, age or tag (preview unless --yes)."""
    if not ids and not older_than and not tag:
        raise click.UsageError("Give conversation IDs, --older-than or --tag.")

    result = operations.delete_conversations(
        obj["vault_dir"], ids=ids, older_than=older_than, tag=tag, confirm=confirm
    )
    for missing in result.missing:
        click.echo(f"Not found: {missing}", err=True)
    if not result.entries:
        click.echo("No conversations match the given filter.")
        return
    for entry in result.entries:
        click.echo(_entry_line(entry))
    if result.deleted:
        click.echo(f"Deleted {len(result.entries)} conversations")
    else:
        click.echo(f"Would delete {len(result.entries)} conversations. Re-run with --yes to delete.")


@main.command()
@click.argument("conversation_id")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default=None, help="Export format.")
@click.option("--output-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.pass_obj
@_handle_errors
def export(obj, conversation_id: str, fmt: str | None, output_dir: Path | None):
    """Export a conversation (or "all") to files."""
    paths = operations.export_conversations(
        obj["vault_dir"],
        conversation_id,
        fmt=fmt or obj["config"].default_export_format,
        output_dir=output_dir,
    )
    for path in paths:
        click.echo(str(path))
    click.echo(f"Exported {len(paths)} conversations")


@main.command(name="rebuild-index")
@click.pass_obj
@_handle_errors
def rebuild_index(obj):
    """Rebuild index.json from the saved metadata files."""
    index = operations.rebuild_index(obj["vault_dir"])
    click.echo(f"Indexed {len(index.entries)} conversations")


@main.command()
@click.pass_obj
def hook(obj):
    """Auto-save from a SessionEnd hook payload on stdin.

    Exits 0 when the session was saved and 1 when it was skipped.
    """
    raw = sys.stdin.read()
    if not raw.strip():
        click.echo("auto-save: no input on stdin", err=True)
        sys.exit(1)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        click.echo("auto-save: failed to parse stdin as JSON", err=True)
        sys.exit(1)
    if not isinstance(payload, dict):
        click.echo("auto-save: expected a JSON object on stdin", err=True)
        sys.exit(1)

    try:
        record = operations.auto_save(obj["vault_dir"], payload, obj["config"])
    except VaultError as e:
        click.echo(f"auto-save: {e}", err=True)
        sys.exit(1)
    if record is None:
        sys.exit(1)
    click.echo(f"auto-save: saved {record.id}")


@main.command(name="config")
@click.pass_obj
def show_config(obj):
    """Print the effective configuration."""
    _echo_json({"vault_dir": str(obj["vault_dir"]), **obj["config"].to_dict()})


@main.command()
@click.option("--port", default=None, type=int, help="Port to serve on (default: viewer_port).")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.pass_obj
def serve(obj, port: int | None, host: str):
    """Start the read/delete API."""
    port = port or obj["config"].viewer_port
    click.echo(f"Starting session-vault on http://{host}:{port}")
    uvicorn.run("session_vault.server:app", host=host, port=port, reload=False)
