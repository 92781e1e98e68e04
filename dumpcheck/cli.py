#!/usr/bin/env python3
"""DumpCheck CLI: lint MySQL 8.0 export files for 8.4 upgrade blockers."""
import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dumpcheck.analyzer import AnalysisResult, Analyzer, ExportFile, classify_file
from dumpcheck.constants import CATEGORY_LABELS, SERVER_REQUIRED_CHECKS
from dumpcheck.errors import ResultFormatError
from dumpcheck.log import configure_logging
from dumpcheck.report import to_csv, to_fix_script, to_json, to_sarif, to_shell_report
from dumpcheck.rules import RULES, SEV_RANK, Finding
from dumpcheck.server_results import analyze_server_result, parse_server_result

app = typer.Typer(
    name="dumpcheck",
    help="\U0001f50d DumpCheck: find MySQL 8.4 upgrade blockers in 8.0 dumps",
)
console = Console(stderr=True)
out = Console()

SEV_COLORS = {"error": "red bold", "warning": "yellow", "info": "cyan"}
FORMATS = ("text", "json", "csv", "report", "fixes", "sarif")


def _render_table(findings: List[Finding], title: str) -> None:
    tbl = Table(title=title, show_lines=True)
    tbl.add_column("Rule", width=24)
    tbl.add_column("Sev", width=8)
    tbl.add_column("Location", width=30)
    tbl.add_column("Message", min_width=30)
    for f in findings:
        message = f"[bold]{escape(f.title)}[/]\n{escape(f.description)}"
        if f.fix_query:
            message += f"\n[dim]{escape(f.fix_query)}[/]"
        tbl.add_row(f.rule_id, f"[{SEV_COLORS[f.severity]}]{f.severity}[/]",
                    escape(f.location), message)
    out.print(tbl)


def _render_result(result: AnalysisResult) -> None:
    if not result.findings:
        out.print("✅ [green]no upgrade issues found[/]")
        return
    for category, label in CATEGORY_LABELS.items():
        group = [f for f in result.findings if f.category == category]
        if group:
            _render_table(group, f"{label} ({len(group)})")
    s = result.stats
    out.print(f"  [red bold]{s['error']} errors[/], [yellow]{s['warning']} warnings[/], "
              f"[cyan]{s['info']} notices[/] in {result.metadata['total_files']} files\n")


def _collect_files(paths: List[str]) -> List[Path]:
    files: List[Path] = []
    for p in paths:
        path = Path(p)
        if path.is_dir():
            files.extend(f for f in sorted(path.glob("**/*"))
                         if f.is_file() and classify_file(f.name) not in ("skip", "unknown"))
        elif path.is_file():
            files.append(path)
        else:
            console.print(f"[red]Error: {escape(p)} not found[/]")
            raise typer.Exit(1)
    return files


def _read(path: Path) -> Optional[str]:
    """File text, or None when it cannot be read. Undecodable bytes become U+FFFD."""
    try:
        data = path.read_bytes()
    except OSError as exc:
        console.print(f"[red]Error: {escape(str(path))} could not be read: "
                      f"{escape(str(exc))}[/]")
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        console.print(f"[yellow]Warning: {escape(str(path))} is not valid UTF-8; "
                      f"undecodable bytes were replaced[/]")
        return data.decode("utf-8", errors="replace")


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", "--log-level", envvar="DUMPCHECK_LOG_LEVEL",
                                  help="DEBUG, INFO, WARNING or ERROR"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit log lines as JSON"),
) -> None:
    """Offline MySQL 8.0 -> 8.4 compatibility checks for export files."""
    configure_logging(level=log_level, json_format=json_logs)


@app.command()
def lint(
    paths: List[str] = typer.Argument(..., help="Dump files or directories"),
    fmt: str = typer.Option("text", "--format", "-f", envvar="DUMPCHECK_FORMAT",
                            help="Output: text, json, csv, report, fixes, sarif"),
    fail_on: str = typer.Option("error", "--fail-on", envvar="DUMPCHECK_FAIL_ON",
                                help="Min severity to exit 1 (error, warning, info, none)"),
) -> None:
    """Analyse export files for MySQL 8.4 compatibility problems."""
    if fmt not in FORMATS:
        console.print(f"[red]Error: unknown format {fmt!r}[/]")
        raise typer.Exit(2)
    files = _collect_files(paths)
    if not files:
        console.print("[yellow]No dump files found[/]")
        raise typer.Exit(0)
    exports = []
    unreadable = []
    for f in files:
        text = _read(f)
        if text is None:
            unreadable.append(str(f))
        else:
            exports.append(ExportFile(str(f), text))
    result = Analyzer().run(exports)
    result.metadata["failed_files"].extend(unreadable)
    if fmt == "json":
        print(to_json(result))
    elif fmt == "csv":
        print(to_csv(result.findings), end="")
    elif fmt == "report":
        print(json.dumps(to_shell_report(result), indent=2, ensure_ascii=False))
    elif fmt == "fixes":
        print(to_fix_script(result.findings), end="")
    elif fmt == "sarif":
        print(json.dumps(to_sarif(result.findings), indent=2))
    else:
        _render_result(result)
    threshold = SEV_RANK.get(fail_on)
    failed = threshold is not None and any(
        SEV_RANK[f.severity] >= threshold for f in result.findings)
    raise typer.Exit(1 if failed else 0)


@app.command("rules")
def list_rules(
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Only this category"),
) -> None:
    """List the rule catalog."""
    tbl = Table(title="DumpCheck rules")
    tbl.add_column("Rule")
    tbl.add_column("Kind")
    tbl.add_column("Category")
    tbl.add_column("Sev")
    tbl.add_column("Title")
    for rule in RULES:
        if category and rule.category != category:
            continue
        tbl.add_row(rule.id, rule.kind, rule.category,
                    f"[{SEV_COLORS[rule.severity]}]{rule.severity}[/]", rule.title)
    out.print(tbl)


@app.command("server-checks")
def server_checks() -> None:
    """Show the checks that need a live server, with the query to run."""
    for check in SERVER_REQUIRED_CHECKS:
        out.print(f"[bold]{check.name}[/] ({check.id})")
        out.print(f"  {check.description}")
        out.print(check.query, markup=False, highlight=False)
        out.print(f"  [dim]{check.how_to_read}[/]\n")


@app.command("check-result")
def check_result(
    check_id: str = typer.Argument(..., help="Server check id, e.g. authMethodUsage"),
    result_file: Path = typer.Argument(..., help="Saved query output (JSON or TSV)"),
    fmt: str = typer.Option("text", "--format", "-f", help="Output: text, json"),
) -> None:
    """Analyse a saved server query result."""
    if not result_file.is_file():
        console.print(f"[red]Error: {escape(str(result_file))} not found[/]")
        raise typer.Exit(1)
    text = _read(result_file)
    if text is None:
        raise typer.Exit(1)
    try:
        parsed = parse_server_result(text)
    except ResultFormatError as exc:
        console.print(f"[red]Error: unsupported result-file format: {escape(str(exc))}[/]")
        raise typer.Exit(2)
    findings = analyze_server_result(check_id, parsed)
    if fmt == "json":
        print(json.dumps([f.to_dict() for f in findings], indent=2))
    elif findings:
        _render_table(findings, f"{check_id} ({len(findings)})")
    else:
        out.print(f"✅ [green]{check_id}[/]: no issues")
    raise typer.Exit(1 if any(f.severity == "error" for f in findings) else 0)


if __name__ == "__main__":
    app()
