"""First-pass scanners: text patterns, option files and row values."""
import io
import re
from dataclasses import dataclass, field
from itertools import islice
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from dumpcheck.constants import (
    CODE_SNIPPET_LIMIT,
    CONTEXT_WINDOW,
    DATA_SCAN_LINE_LIMIT,
    FOUR_BYTE_CHARSETS,
)
from dumpcheck.rules import RULES, FixContext, Rule, get_rule, rules_for
from dumpcheck.schema import SchemaRegistry, TableDefinition
from dumpcheck.sqltext import (
    find_closing_paren,
    leading_words,
    read_qualified_name,
    split_top_level,
    strip_comments,
    unquote_identifier,
    unquote_string,
)

log = structlog.get_logger()

_FOUR_BYTE = re.compile("[\U00010000-\U0010FFFF]")
_INSERT = re.compile(
    r"^\s*(?:INSERT|REPLACE)\s+(?:(?:LOW_PRIORITY|DELAYED|HIGH_PRIORITY)\s+)?"
    r"(?:IGNORE\s+)?(?:INTO\s+)?", re.IGNORECASE)
_VALUES = re.compile(r"\s*VALUES?\b\s*", re.IGNORECASE)
_STATEMENT_SPAN = 4000


def has_four_byte(text: str) -> bool:
    return _FOUR_BYTE.search(text) is not None


# ---------------------------------------------------------------------------
# Pattern scanning
# ---------------------------------------------------------------------------

def _enclosing_statement(text: str, pos: int) -> str:
    """Best-effort statement around ``pos``; ignores quoting."""
    lo = max(0, pos - _STATEMENT_SPAN)
    start = text.rfind(";", lo, pos)
    start = lo if start < 0 else start + 1
    end = text.find(";", pos, pos + _STATEMENT_SPAN)
    end = min(len(text), pos + _STATEMENT_SPAN) if end < 0 else end
    return text[start:end].strip()


def scan_patterns(text: str, source: str, sink, kinds: Sequence[str] = ("schema", "query"),
                  rules: Iterable[Rule] = RULES) -> int:
    """Run every pattern rule of ``kinds`` over raw text; returns matches kept."""
    half = CONTEXT_WINDOW // 2
    kept = 0
    for rule in rules_for(kinds, rules):
        if rule.pattern is None:
            continue
        seen = set()
        for match in rule.pattern.finditer(text):
            start = max(0, match.start() - half)
            end = min(len(text), match.start() + half)
            window = text[start:end].strip()
            if window in seen:
                continue
            seen.add(window)
            kept += 1
            sink.emit(rule, source, window, matched_text=match.group(0),
                      fix_context=FixContext(
                          code=window, matched_text=match.group(0),
                          statement=_enclosing_statement(text, match.start())))
    return kept


# ---------------------------------------------------------------------------
# Option files
# ---------------------------------------------------------------------------

@dataclass
class OptionEntry:
    section: str
    key: str
    value: Optional[str]
    line: int

    @property
    def name(self) -> str:
        """Normalized option name: underscores, no ``loose_`` prefix."""
        name = self.key.strip().lower().replace("-", "_")
        if name.startswith("loose_"):
            name = name[len("loose_"):]
        return name

    def render(self) -> str:
        if self.value is None:
            return self.name
        return f"{self.name} = {self.value}"

    @property
    def raw(self) -> str:
        if self.value is None:
            return self.key
        return f"{self.key} = {self.value}"


def _option_value(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        return value[1:-1]
    # inline comment after an unquoted value
    return re.split(r"\s+[#;]", value, maxsplit=1)[0].strip()


def parse_option_file(text: str) -> List[OptionEntry]:
    """Parse my.cnf-style text into entries; keys outside a section are ``global``."""
    entries = []
    section = "global"
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line or line[0] in "#;" or line.startswith("!"):
            continue
        header = re.match(r"^\[([^\]]+)\]$", line)
        if header:
            section = header.group(1).strip()
            continue
        if "=" in line:
            key, value = line.split("=", 1)
            entries.append(OptionEntry(section, key.strip(), _option_value(value), lineno))
        else:
            entries.append(OptionEntry(section, line.split()[0], None, lineno))
    return entries


def scan_option_file(text: str, source: str, sink, rules: Iterable[Rule] = RULES) -> int:
    config_rules = [r for r in rules_for(("config",), rules) if r.pattern is not None]
    hits = 0
    for entry in parse_option_file(text):
        line = entry.render()
        for rule in config_rules:
            m = rule.pattern.search(line)
            if not m:
                continue
            hits += 1
            sink.emit(rule, f"{source} [{entry.section}]", entry.raw, matched_text=m.group(0),
                      fix_context=FixContext(code=entry.raw, matched_text=m.group(0),
                                             variable_name=entry.name))
    return hits


# ---------------------------------------------------------------------------
# Row values
# ---------------------------------------------------------------------------

@dataclass
class InsertStatement:
    table: str
    schema: Optional[str]
    columns: List[str]
    rows: List[List[str]]
    values_text: str
    source: str = ""
    four_byte: bool = field(default=False, compare=False)

    @property
    def snippet(self) -> str:
        return self.values_text[:CODE_SNIPPET_LIMIT]

    def column_at(self, index: int, table: Optional[TableDefinition]) -> Optional[str]:
        if self.columns:
            return self.columns[index] if index < len(self.columns) else None
        if table is not None and index < len(table.columns):
            return table.columns[index].name
        return None


def parse_insert(statement: str, source: str = "") -> Optional[InsertStatement]:
    """Parse ``INSERT|REPLACE ... VALUES (...),(...)``; other forms give None."""
    sql = strip_comments(statement).strip()
    m = _INSERT.match(sql)
    if not m:
        return None
    schema, table, pos = read_qualified_name(sql, m.end())
    if not table:
        return None
    while pos < len(sql) and sql[pos].isspace():
        pos += 1
    columns = []
    if pos < len(sql) and sql[pos] == "(":
        close = find_closing_paren(sql, pos)
        if close < 0:
            return None
        inner = sql[pos + 1:close]
        if re.match(r"\s*SELECT\b", inner, re.IGNORECASE):
            return None
        columns = [unquote_identifier(c) for c in split_top_level(inner)]
        pos = close + 1
    values = _VALUES.match(sql, pos)
    if not values:
        return None
    pos = values.end()
    values_start = pos
    rows = []
    while pos < len(sql):
        ch = sql[pos]
        if ch.isspace() or ch == ",":
            pos += 1
            continue
        if ch != "(":
            break  # ON DUPLICATE KEY UPDATE, AS alias
        close = find_closing_paren(sql, pos)
        if close < 0:
            log.debug("insert_row_unbalanced", table=table, file=source)
            break
        rows.append(split_top_level(sql[pos + 1:close]))
        pos = close + 1
    return InsertStatement(table=table, schema=schema, columns=columns, rows=rows,
                           values_text=sql[values_start:pos].strip(), source=source)


def data_location(source: str, table: str, column: Optional[str] = None) -> str:
    if column:
        return f"{source} - Table: {table}, Column: {column}"
    return f"{source} - Table: {table}"


def _has_null_byte(value: str) -> bool:
    if value[:1] not in ("'", '"'):
        return False
    return "\x00" in unquote_string(value)


def scan_insert(insert: InsertStatement, registry: SchemaRegistry, sink,
                rules: Iterable[Rule] = RULES) -> None:
    """Evaluate one INSERT's values against the data rules."""
    table = registry.get(insert.table)
    predicates = [r for r in rules_for(("data",), rules) if r.predicate is not None]
    null_rule = get_rule("data_null_byte")
    emitted = set()
    for row in insert.rows:
        for index, value in enumerate(row):
            column_name = insert.column_at(index, table)
            column = table.column(column_name) if (table and column_name) else None
            column_type = column.type if column else ""
            location = data_location(insert.source, insert.table, column_name)
            if (null_rule.id, index) not in emitted and _has_null_byte(value):
                emitted.add((null_rule.id, index))
                sink.emit(null_rule, location, insert.snippet, table_name=insert.table,
                          column_name=column_name, column_type=column_type or None)
            for rule in predicates:
                if (rule.id, index) in emitted:
                    continue
                try:
                    matched = rule.predicate(value, column_type)
                except Exception:
                    log.exception("predicate_failed", rule=rule.id, file=insert.source)
                    matched = False
                if matched:
                    emitted.add((rule.id, index))
                    sink.emit(rule, location, insert.snippet, matched_text=value,
                              table_name=insert.table, column_name=column_name,
                              column_type=column_type or None,
                              enum_values=column.elements if column else None)


def check_insert_charset(insert: InsertStatement, registry: SchemaRegistry, sink) -> None:
    """Warn when 4-byte data lands in a column whose charset cannot hold it.

    Needs the complete registry: every declaration of the table is consulted,
    and tables no file declares are reported as unverifiable.
    """
    rule = get_rule("data_4byte_chars")
    declarations = registry.declarations(insert.table)
    first = declarations[0] if declarations else None
    reported = set()
    for row in insert.rows:
        for index, value in enumerate(row):
            if not has_four_byte(value):
                continue
            column_name = insert.column_at(index, first)
            if column_name in reported:
                continue
            reported.add(column_name)
            location = data_location(insert.source, insert.table, column_name)
            if not declarations:
                sink.emit(rule, location, insert.snippet, table_name=insert.table,
                          column_name=column_name,
                          description=f"Table `{insert.table}` holds 4-byte UTF-8 data "
                                      f"but is not defined in the analysed files; its "
                                      f"character set could not be verified.")
                continue
            charsets = []
            for table in declarations:
                column = table.column(column_name) if column_name else None
                charsets.append(table.charset_of(column))
            if any(cs in FOUR_BYTE_CHARSETS for cs in charsets):
                continue
            target = f"column `{column_name}`" if column_name else "a column"
            sink.emit(rule, location, insert.snippet, table_name=insert.table,
                      column_name=column_name,
                      description=f"Table `{insert.table}` stores 4-byte UTF-8 data in "
                                  f"{target} with character set {charsets[0]}, which "
                                  f"cannot hold it.")


def scan_inserts(statements: Iterable[Tuple[str, int]], source: str,
                 registry: SchemaRegistry, sink, rules: Iterable[Rule] = RULES) -> int:
    """Scan every INSERT/REPLACE statement; returns how many were parsed."""
    parsed = 0
    for statement, line in statements:
        words = leading_words(statement, 1)
        if not words or words[0] not in ("INSERT", "REPLACE"):
            continue
        insert = parse_insert(statement, source)
        if insert is None:
            log.debug("insert_unparsed", file=source, line=line)
            continue
        parsed += 1
        known = insert.table in registry
        if not known:
            registry.deferred_inserts.append(insert)
        if known or insert.columns:
            scan_insert(insert, registry, sink, rules)
        if any(has_four_byte(v) for row in insert.rows for v in row):
            insert.four_byte = True
            registry.four_byte_inserts.append(insert)
    return parsed


def table_from_data_file(name: str) -> str:
    """``schema@table@chunk.tsv`` -> ``table``."""
    base = name.replace("\\", "/").rsplit("/", 1)[-1]
    stem = base.rsplit(".", 1)[0]
    parts = stem.split("@")
    if len(parts) >= 2:
        return parts[1]
    return stem


def scan_delimited_rows(text: str, source: str, sink,
                        limit: int = DATA_SCAN_LINE_LIMIT) -> bool:
    """Look for 4-byte characters in the first ``limit`` rows; one finding at most."""
    for line in islice(io.StringIO(text), limit):
        if has_four_byte(line):
            table = table_from_data_file(source)
            sink.emit(get_rule("data_4byte_chars"), data_location(source, table),
                      line.rstrip("\r\n")[:CODE_SNIPPET_LIMIT], table_name=table)
            return True
    return False
