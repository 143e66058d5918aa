from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import typer

from .workflows.article_fetch import ArticleFetchConfig, ArticleFetcher
from .workflows.collaborators import ConsoleNotifier
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.errors import RuleConfigError
from .workflows.processor import (
    MODE_APPEND,
    MODE_CREATE,
    STATUS_FAILED,
    DocumentProcessor,
    ProcessorOptions,
)
from .workflows.settings import NotelinkSettings, load_settings, load_transformation_config
from .workflows.url_transform import UrlTransformer, probe_proxy
from .workflows.vault import Vault

app = typer.Typer(add_help_option=False, no_args_is_help=False)


def _minimal_help() -> str:
    return """notelink (note link CLI)

Usage:
  notelink process <note> [--create] [--track]
  notelink process-active [--create] [--track]
  notelink process-folder [<folder>] [--create] [--no-track] [--json] [--soft-fail]
  notelink url-batch <note> [--out <folder>]
  notelink transform <url> [--json]
  notelink doctor [--probe]

Common options:
  --vault <DIR>   Vault root (default: NOTELINK_VAULT_ROOT or .).
  --rules <FILE>  Rule file (default: NOTELINK_RULES_PATH or packaged rules).

Discoverability:
  --help-full     Expanded help + env vars.
  --find <query>  Search commands, flags, env vars.
"""


def _help_full() -> str:
    return """notelink: fetch the article a note links to and merge it back

Commands:
  process         Process one note (append by default, --create for a new note).
  process-active  Process the note named by NOTELINK_ACTIVE_NOTE.
  process-folder  Process every note under a folder, skipping processed ones.
  url-batch       Create one note per http(s) line of a URL-list note.
  transform       Show how the rewrite rules treat a URL.
  doctor          Print environment and configuration diagnostics.

Notes:
  The source URL comes from the first non-empty front-matter field of
  url, link, source, web_url, article_url; else the first markdown link;
  else the first bare http(s) URL.
  Tracked runs set `article_processed: true` after the article is merged.

Env vars:
  NOTELINK_VAULT_ROOT
  NOTELINK_ACTIVE_NOTE
  NOTELINK_DEFAULT_FOLDER
  NOTELINK_OUTPUT_FOLDER
  NOTELINK_RULES_PATH
  NOTELINK_PROXY_TTL_MINUTES
  NOTELINK_PROXY_TIMEOUT_MS
  NOTELINK_FETCH_TIMEOUT
  NOTELINK_LOG_LEVEL

Exit codes:
  0 success, 1 note (or batch item) failed, 2 configuration error.
"""


_FIND_INDEX = [
    ("command", "process", "Process one note."),
    ("command", "process-active", "Process the active note."),
    ("command", "process-folder", "Process every note under a folder."),
    ("command", "url-batch", "Create notes from a URL-list note."),
    ("command", "transform", "Dry-run the URL rewrite rules."),
    ("command", "doctor", "Print environment diagnostics."),
    ("flag", "--vault", "Vault root directory."),
    ("flag", "--rules", "Transformation rule file."),
    ("flag", "--create", "Create a new note instead of appending."),
    ("flag", "--track", "Skip and mark notes via article_processed."),
    ("flag", "--no-track", "Do not skip or mark processed notes."),
    ("flag", "--json", "Print JSON to stdout only."),
    ("flag", "--soft-fail", "Exit 0 even if some notes fail."),
    ("flag", "--out", "Folder for notes created from URL lists."),
    ("flag", "--probe", "Probe proxy endpoints in doctor."),
    ("env", "NOTELINK_VAULT_ROOT", "Vault root directory."),
    ("env", "NOTELINK_ACTIVE_NOTE", "Active note for process-active."),
    ("env", "NOTELINK_DEFAULT_FOLDER", "Default folder for process-folder."),
    ("env", "NOTELINK_OUTPUT_FOLDER", "Folder for created notes."),
    ("env", "NOTELINK_RULES_PATH", "Transformation rule file."),
    ("env", "NOTELINK_PROXY_TTL_MINUTES", "Proxy health cache TTL."),
    ("env", "NOTELINK_PROXY_TIMEOUT_MS", "Proxy health probe timeout."),
    ("env", "NOTELINK_FETCH_TIMEOUT", "Article fetch timeout (seconds)."),
    ("env", "NOTELINK_LOG_LEVEL", "Logging level."),
]


def _run_find(query: str) -> str:
    needle = (query or "").strip().lower()
    if not needle:
        return ""
    lines = []
    for category, name, desc in _FIND_INDEX:
        haystack = f"{category} {name} {desc}".lower()
        if needle in haystack:
            lines.append(f"{category} {name} - {desc}")
    return "\n".join(lines)


def _settings(ctx: typer.Context) -> NotelinkSettings:
    obj = ctx.obj or {}
    settings = obj.get("settings")
    if settings is None:
        settings = load_settings()
    return settings


def _build_processor(
    ctx: typer.Context,
    *,
    output_folder: Optional[str] = None,
    notices_to_stderr: bool = False,
) -> Tuple[DocumentProcessor, ArticleFetcher]:
    settings = _settings(ctx)
    try:
        config = load_transformation_config(settings.rules_path)
    except RuleConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    vault = Vault(settings.vault_root, active_note=settings.active_note)
    fetcher = ArticleFetcher(ArticleFetchConfig(timeout=settings.fetch_timeout))
    options = ProcessorOptions(
        output_folder=output_folder if output_folder is not None else settings.output_folder
    )
    processor = DocumentProcessor(
        vault,
        fetcher,
        notifier=ConsoleNotifier(err=notices_to_stderr),
        transformer=UrlTransformer(config),
        options=options,
    )
    return processor, fetcher


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars."),
    vault: Optional[Path] = typer.Option(None, "--vault", help="Vault root directory."),
    rules: Optional[Path] = typer.Option(None, "--rules", help="Transformation rule file."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)
    settings = load_settings(vault_root=vault, rules_path=rules)
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"settings": settings}


@app.command("process", add_help_option=True)
def process_cmd(
    ctx: typer.Context,
    note: str = typer.Argument(..., help="Note path relative to the vault."),
    create: bool = typer.Option(False, "--create", help="Create a new note instead of appending."),
    track: bool = typer.Option(False, "--track", help="Skip processed notes and mark this one."),
) -> None:
    """Fetch the article a note links to and merge it."""
    processor, _ = _build_processor(ctx)
    outcome = processor.process_document(note, MODE_CREATE if create else MODE_APPEND, track)
    raise typer.Exit(code=1 if outcome.status == STATUS_FAILED else 0)


@app.command("process-active", add_help_option=True)
def process_active_cmd(
    ctx: typer.Context,
    create: bool = typer.Option(False, "--create", help="Create a new note instead of appending."),
    track: bool = typer.Option(False, "--track", help="Skip processed notes and mark this one."),
) -> None:
    """Process the active note (NOTELINK_ACTIVE_NOTE)."""
    processor, _ = _build_processor(ctx)
    outcome = processor.process_active(MODE_CREATE if create else MODE_APPEND, track)
    raise typer.Exit(code=1 if outcome is None or outcome.status == STATUS_FAILED else 0)


@app.command("process-folder", add_help_option=True)
def process_folder_cmd(
    ctx: typer.Context,
    folder: Optional[str] = typer.Argument(None, help="Folder prefix (default: NOTELINK_DEFAULT_FOLDER)."),
    create: bool = typer.Option(False, "--create", help="Create new notes instead of appending."),
    no_track: bool = typer.Option(False, "--no-track", help="Do not skip or mark processed notes."),
    json_out: bool = typer.Option(False, "--json", help="Print summary JSON to stdout only."),
    soft_fail: bool = typer.Option(False, "--soft-fail", help="Exit 0 even if some notes fail."),
) -> None:
    """Process every note under a folder, one at a time."""
    settings = _settings(ctx)
    prefix = folder if folder is not None else settings.default_folder
    processor, _ = _build_processor(ctx, notices_to_stderr=json_out)
    summary = processor.process_folder(prefix, MODE_CREATE if create else MODE_APPEND, not no_track)
    if json_out:
        sys.stdout.write(json.dumps(summary.to_dict(), ensure_ascii=False) + "\n")
    raise typer.Exit(code=1 if summary.failed_count and not soft_fail else 0)


@app.command("url-batch", add_help_option=True)
def url_batch_cmd(
    ctx: typer.Context,
    note: str = typer.Argument(..., help="Note listing one URL per line."),
    out: Optional[str] = typer.Option(None, "--out", help="Folder for created notes (default: the list's folder)."),
) -> None:
    """Create a note for every URL listed in a note."""
    processor, fetcher = _build_processor(ctx)
    folder = out
    if folder is None:
        parent = Path(note).parent.as_posix()
        folder = "" if parent == "." else parent
    fetcher.batch_sink = lambda url, markdown: processor.save_article(url, markdown, folder)
    count = processor.process_url_list(note)
    raise typer.Exit(code=0 if count else 1)


@app.command("transform", add_help_option=True)
def transform_cmd(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="URL to rewrite."),
    json_out: bool = typer.Option(False, "--json", help="Print the result as JSON."),
) -> None:
    """Show which rule applies to a URL and what it becomes."""
    settings = _settings(ctx)
    try:
        config = load_transformation_config(settings.rules_path)
    except RuleConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)
    result = UrlTransformer(config).transform(url)
    if json_out:
        sys.stdout.write(json.dumps(result.to_dict(), ensure_ascii=False) + "\n")
        raise typer.Exit(code=0)
    typer.echo(f"original:    {result.original_url}")
    typer.echo(f"transformed: {result.transformed_url}")
    typer.echo(f"rule:        {result.applied_rule or '-'}")
    typer.echo(f"proxy ok:    {'yes' if result.proxy_healthy else 'no'}")
    if result.error:
        typer.echo(f"error:       {result.error}")
    raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd(
    ctx: typer.Context,
    probe: bool = typer.Option(False, "--probe", help="Probe proxy endpoints over the network."),
) -> None:
    """Print environment and configuration diagnostics."""
    report = build_doctor_report(_settings(ctx), probe=probe_proxy if probe else None)
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)
