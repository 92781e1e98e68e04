"""Two-phase analysis engine and finding aggregation."""
import json
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import structlog

from dumpcheck.constants import (
    CATEGORY_LABELS,
    CONFIG_SUFFIXES,
    DATA_SUFFIXES,
    FOUR_BYTE_CHARSETS,
    SKIP_FILE_NAMES,
    SKIP_FILE_PREFIXES,
)
from dumpcheck.crossref import validate
from dumpcheck.rules import RULES, SEVERITIES, Finding, FixContext, Rule, get_rule
from dumpcheck.scanners import (
    scan_delimited_rows,
    scan_inserts,
    scan_option_file,
    scan_patterns,
)
from dumpcheck.schema import SchemaRegistry, TableDefinition, parse_create_table
from dumpcheck.sqltext import iter_statements, leading_words
from dumpcheck.users import analyze_user_statements

log = structlog.get_logger()


@dataclass
class ExportFile:
    name: str
    text: str


@dataclass
class AnalysisResult:
    findings: List[Finding]
    stats: Dict[str, int]
    category_stats: Dict[str, int]
    metadata: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class FindingAggregator:
    """Collects findings, dropping exact duplicates and keeping counts.

    With ``rule_ids`` set, findings for any other rule are discarded.
    """

    def __init__(self, rule_ids: Optional[Iterable[str]] = None):
        self.rule_ids = frozenset(rule_ids) if rule_ids is not None else None
        self.findings: List[Finding] = []
        self._keys = set()
        self.stats: Dict[str, int] = {sev: 0 for sev in SEVERITIES}
        self.category_stats: Dict[str, int] = {cat: 0 for cat in CATEGORY_LABELS}

    def __len__(self) -> int:
        return len(self.findings)

    def add(self, finding: Finding) -> bool:
        if finding.key in self._keys:
            return False
        self._keys.add(finding.key)
        self.findings.append(finding)
        self.stats[finding.severity] += 1
        self.category_stats[finding.category] += 1
        return True

    def emit(self, rule: Rule, location: str, code: str = "", *,
             matched_text: Optional[str] = None, description: Optional[str] = None,
             table_name: Optional[str] = None, column_name: Optional[str] = None,
             column_type: Optional[str] = None, enum_values: Optional[List[str]] = None,
             user_name: Optional[str] = None,
             fix_context: Optional[FixContext] = None) -> Optional[Finding]:
        """Build a finding for ``rule``; returns None when it is a duplicate or filtered out."""
        if self.rule_ids is not None and rule.id not in self.rule_ids:
            return None
        if (rule.id, location, code) in self._keys:
            return None
        fix_query = None
        if rule.fix is not None:
            if fix_context is None:
                fix_context = FixContext(
                    code=code, matched_text=matched_text or "", table_name=table_name,
                    column_name=column_name, column_type=column_type,
                    enum_values=enum_values, user_name=user_name)
            try:
                fix_query = rule.fix(fix_context)
            except Exception:
                log.exception("fix_template_failed", rule=rule.id, location=location)
        finding = Finding(
            rule_id=rule.id,
            category=rule.category,
            severity=rule.severity,
            title=rule.title,
            description=description or rule.description,
            suggestion=rule.suggestion,
            location=location,
            code=code,
            matched_text=matched_text,
            table_name=table_name,
            column_name=column_name,
            column_type=column_type,
            enum_values=enum_values,
            user_name=user_name,
            fix_query=fix_query,
            check_id=rule.check_id,
            doc_link=rule.doc_link,
        )
        self.add(finding)
        return finding

    def ordered(self) -> List[Finding]:
        """Findings by category order, then error/warning/info; ties keep insertion order."""
        categories = list(CATEGORY_LABELS)
        return sorted(self.findings, key=lambda f: (categories.index(f.category),
                                                    SEVERITIES.index(f.severity)))


def classify_file(name: str) -> str:
    """Route a file by name: sql, config, metadata, data, skip or unknown."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1].lower()
    if base in SKIP_FILE_NAMES or base.startswith(SKIP_FILE_PREFIXES):
        return "skip"
    suffix = "." + base.rsplit(".", 1)[1] if "." in base else ""
    if not suffix or suffix in CONFIG_SUFFIXES:
        return "config"
    if suffix == ".json":
        return "metadata" if "@." in base else "unknown"
    if suffix == ".sql":
        return "sql"
    if suffix in DATA_SUFFIXES:
        return "data"
    return "unknown"


class Analyzer:
    """Runs the first pass per file, then the registry-wide second pass."""

    def __init__(self, rules: Iterable[Rule] = RULES):
        self.rules = tuple(rules)
        self.registry = SchemaRegistry()
        self.aggregator = FindingAggregator()
        self.metadata: Dict[str, object] = {}

    def _reset(self) -> None:
        self.registry = SchemaRegistry()
        self.aggregator = FindingAggregator(r.id for r in self.rules)
        self.metadata = {
            "total_files": 0,
            "file_types": {},
            "analyzed_at": datetime.now(timezone.utc).isoformat(),
            "failed_files": [],
        }

    def iter_findings(self, files: Iterable[ExportFile]) -> Iterator[Finding]:
        """Yield each accepted finding once, file by file, then the cross-checks."""
        self._reset()
        file_types: Counter = Counter()
        for export in files:
            self.metadata["total_files"] += 1
            kind = classify_file(export.name)
            file_types[kind] += 1
            self.metadata["file_types"] = dict(file_types)
            before = len(self.aggregator)
            try:
                self._analyze_file(export, kind)
            except Exception:
                log.exception("file_analysis_failed", file=export.name)
                self.metadata["failed_files"].append(export.name)
            yield from self.aggregator.findings[before:]

        before = len(self.aggregator)
        validate(self.registry, self.aggregator, self.rules)
        yield from self.aggregator.findings[before:]

    def run(self, files: Iterable[ExportFile]) -> AnalysisResult:
        for _ in self.iter_findings(files):
            pass
        return self.result()

    def result(self) -> AnalysisResult:
        return AnalysisResult(
            findings=self.aggregator.ordered(),
            stats=dict(self.aggregator.stats),
            category_stats=dict(self.aggregator.category_stats),
            metadata=dict(self.metadata),
        )

    def _analyze_file(self, export: ExportFile, kind: str) -> None:
        log.debug("analyzing_file", file=export.name, kind=kind)
        if kind == "sql":
            self._analyze_sql(export)
        elif kind == "config":
            scan_option_file(export.text, export.name, self.aggregator, self.rules)
        elif kind == "metadata":
            self._analyze_metadata(export)
        elif kind == "data":
            scan_delimited_rows(export.text, export.name, self.aggregator)
        elif kind == "unknown":
            log.info("file_type_unknown", file=export.name)

    def _analyze_sql(self, export: ExportFile) -> None:
        statements: List[Tuple[str, int]] = list(iter_statements(export.text))
        for statement, _ in statements:
            words = leading_words(statement, 2)
            if words[:1] == ["CREATE"] and words[1:2] in (["TABLE"], ["TEMPORARY"]):
                table = parse_create_table(statement, export.name)
                if table is not None:
                    self._register(table)
        scan_patterns(export.text, export.name, self.aggregator, ("schema", "query"),
                      self.rules)
        analyze_user_statements(statements, export.name, self.aggregator)
        scan_inserts(statements, export.name, self.registry, self.aggregator, self.rules)

    def _register(self, table: TableDefinition) -> None:
        for earlier in self.registry.register(table):
            same_engine = earlier.effective_engine.lower() == table.effective_engine.lower()
            same_charset = earlier.table_charset() == table.table_charset()
            if same_engine and same_charset:
                continue
            self.aggregator.emit(
                get_rule("table_redeclared"), f"{table.source} - Table: {table.name}",
                f"ENGINE={table.effective_engine} CHARSET={table.table_charset()}",
                table_name=table.name,
                description=f"Table `{table.name}` was already declared in {earlier.source} "
                            f"with ENGINE={earlier.effective_engine} "
                            f"CHARSET={earlier.table_charset()}.")
            break

    def _analyze_metadata(self, export: ExportFile) -> None:
        try:
            data = json.loads(export.text)
        except ValueError as exc:
            log.warning("metadata_parse_failed", file=export.name, error=str(exc))
            return
        options = data.get("options") if isinstance(data, dict) else None
        charset = options.get("defaultCharacterSet") if isinstance(options, dict) else None
        if not isinstance(charset, str):
            return
        charset = charset.lower()
        code = f"defaultCharacterSet: {charset}"
        if charset in ("utf8", "utf8mb3"):
            self.aggregator.emit(get_rule("utf8_charset"), export.name, code)
        elif charset not in FOUR_BYTE_CHARSETS:
            self.aggregator.emit(get_rule("latin1"), export.name, code)
