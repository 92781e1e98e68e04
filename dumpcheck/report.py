"""Report projections: JSON, CSV, upgrade-checker report, fix script, SARIF."""
import csv
import io
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from dumpcheck import __version__
from dumpcheck.analyzer import AnalysisResult
from dumpcheck.constants import CATEGORY_LABELS, SOURCE_VERSION, TARGET_VERSION
from dumpcheck.rules import Finding

CSV_HEADER = ["Category", "Severity", "Title", "Description", "Location", "Code",
              "Suggestion", "Rule Ref"]
SHELL_STATUS = {"error": "ERROR", "warning": "WARNING", "info": "NOTICE"}
SHELL_LEVEL = {"error": "Error", "warning": "Warning", "info": "Notice"}
SARIF_LEVEL = {"error": "error", "warning": "warning", "info": "note"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_json(result: AnalysisResult) -> str:
    return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)


def to_csv(findings: List[Finding]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for f in findings:
        writer.writerow([f.category, f.severity, f.title, f.description, f.location,
                         f.code, f.suggestion, f.check_id or ""])
    return buf.getvalue()


def to_shell_report(result: AnalysisResult) -> dict:
    """Group findings by upgrade-checker id, shaped like MySQL Shell's JSON output."""
    groups: Dict[str, List[Finding]] = {}
    for f in result.findings:
        groups.setdefault(f.check_id or "other", []).append(f)
    checks = []
    for check_id, items in groups.items():
        severities = {f.severity for f in items}
        status = next(SHELL_STATUS[s] for s in ("error", "warning", "info") if s in severities)
        checks.append({
            "id": check_id,
            "title": items[0].title,
            "status": status,
            "description": items[0].description,
            "detectedProblems": [
                {"level": SHELL_LEVEL[f.severity],
                 "dbObject": f.location or f.table_name or "Unknown",
                 "description": f.suggestion}
                for f in items],
        })
    return {
        "serverAddress": "dump-file-analysis",
        "serverVersion": SOURCE_VERSION,
        "targetVersion": TARGET_VERSION,
        "timestamp": result.metadata.get("analyzed_at") or _now(),
        "detectedProblems": checks,
        "summary": {
            "totalIssues": len(result.findings),
            "errors": result.stats.get("error", 0),
            "warnings": result.stats.get("warning", 0),
            "notices": result.stats.get("info", 0),
        },
    }


def to_fix_script(findings: List[Finding], generated_at: Optional[str] = None) -> str:
    fixable = [f for f in findings if f.fix_query]
    if not fixable:
        return "-- No automatic fixes available\n"
    lines = [
        f"-- MySQL {SOURCE_VERSION} -> {TARGET_VERSION} upgrade fix queries",
        f"-- Generated: {generated_at or _now()}",
        f"-- Total fixes: {len(fixable)}",
        "",
        "-- WARNING: review every statement before running it.",
        "-- Back up your data first.",
        "",
        "START TRANSACTION;",
        "",
    ]
    by_category: Dict[str, List[Finding]] = {}
    for f in fixable:
        by_category.setdefault(f.category, []).append(f)
    rule = "-- " + "=" * 76
    for category, items in by_category.items():
        lines += [rule, f"-- {CATEGORY_LABELS.get(category, category)}", rule, ""]
        for n, f in enumerate(items, 1):
            lines.append(f"-- Fix {n}: {f.title}")
            if f.location:
                lines.append(f"-- Location: {f.location}")
            lines.append(f.fix_query)
            lines.append("")
    lines += ["-- Review the changes above, then commit or roll back:", "-- COMMIT;",
              "-- ROLLBACK;"]
    return "\n".join(lines) + "\n"


def to_sarif(findings: List[Finding]) -> dict:
    results = []
    rules = {}
    for f in findings:
        rules.setdefault(f.rule_id, {
            "id": f.rule_id,
            "shortDescription": {"text": f.title},
            "helpUri": f.doc_link,
        })
        uri = f.location.split(" - ", 1)[0].split(" [", 1)[0]
        results.append({"ruleId": f.rule_id, "level": SARIF_LEVEL[f.severity],
            "message": {"text": f"{f.description} {f.suggestion}".strip()},
            "locations": [{"physicalLocation": {
                "artifactLocation": {"uri": uri}}}]})
    driver_rules = [{k: v for k, v in r.items() if v is not None} for r in rules.values()]
    return {"version": "2.1.0", "runs": [{"tool": {"driver": {
        "name": "DumpCheck", "version": __version__, "rules": driver_rules}},
        "results": results}]}
