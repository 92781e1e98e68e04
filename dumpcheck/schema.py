"""Lightweight CREATE TABLE extraction and the per-run table registry."""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

import structlog

from dumpcheck.constants import DEFAULT_CHARSET
from dumpcheck.sqltext import (
    find_closing_paren,
    iter_statements,
    leading_words,
    mask_literals,
    read_identifier,
    read_qualified_name,
    skip_quoted,
    split_top_level,
    strip_comments,
    unquote_identifier,
    unquote_string,
)

log = structlog.get_logger()

PRIMARY = "PRIMARY"

_CREATE_TABLE = re.compile(
    r"^\s*CREATE\s+(?:TEMPORARY\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?", re.IGNORECASE)
_TYPE_WORD = re.compile(
    r"([A-Za-z_]\w*)(?:\s+(PRECISION|VARYING))?", re.IGNORECASE)
_TYPE_MODIFIER = re.compile(r"\s+(UNSIGNED|SIGNED|ZEROFILL)\b", re.IGNORECASE)
_INDEX_PART = re.compile(
    r"^\s*(`(?:[^`]|``)+`|\"[^\"]+\"|[\w$]+)\s*(?:\(\s*(\d+)\s*\))?\s*(?:ASC|DESC)?\s*$",
    re.IGNORECASE)
_FOREIGN_KEY = re.compile(
    r"^FOREIGN\s+KEY\s*(?P<name>`(?:[^`]|``)+`|[\w$]+)?\s*\((?P<cols>[^)]*)\)\s*"
    r"REFERENCES\s+(?P<ref>(?:`(?:[^`]|``)+`|[\w$]+)(?:\s*\.\s*(?:`(?:[^`]|``)+`|[\w$]+))?)"
    r"\s*\((?P<refcols>[^)]*)\)(?P<rest>.*)$",
    re.IGNORECASE | re.DOTALL)
_FK_ACTION = r"(RESTRICT|CASCADE|SET\s+NULL|SET\s+DEFAULT|NO\s+ACTION)"
_PARTITION_BY = re.compile(
    r"^\s*PARTITION\s+BY\s+(LINEAR\s+)?(RANGE|LIST|HASH|KEY)\b\s*(COLUMNS\b)?\s*"
    r"(?:ALGORITHM\s*=\s*\d+\s*)?", re.IGNORECASE)
_SUBPARTITION_BY = re.compile(
    r"\s*SUBPARTITION\s+BY\s+(?:LINEAR\s+)?(?:HASH|KEY)\s*(?:ALGORITHM\s*=\s*\d+\s*)?",
    re.IGNORECASE)

_TABLE_OPTIONS = {
    "engine": re.compile(r"\bENGINE\s*=?\s*`?(\w+)`?", re.IGNORECASE),
    "charset": re.compile(
        r"\b(?:DEFAULT\s+)?(?:CHARSET|CHARACTER\s+SET)\s*=?\s*['\"`]?(\w+)", re.IGNORECASE),
    "collation": re.compile(r"\b(?:DEFAULT\s+)?COLLATE\s*=?\s*['\"`]?(\w+)", re.IGNORECASE),
    "row_format": re.compile(r"\bROW_FORMAT\s*=?\s*(\w+)", re.IGNORECASE),
    "tablespace": re.compile(r"\bTABLESPACE\s*=?\s*['\"`]?(\w+)", re.IGNORECASE),
}


def charset_from_collation(collation: Optional[str]) -> Optional[str]:
    """``utf8mb4_0900_ai_ci`` -> ``utf8mb4``."""
    if not collation:
        return None
    return collation.lower().split("_", 1)[0]


@dataclass
class GeneratedColumn:
    expression: str
    stored: bool = False


@dataclass
class ColumnDefinition:
    name: str
    type: str
    nullable: bool = True
    default: Optional[str] = None
    charset: Optional[str] = None
    collation: Optional[str] = None
    extra: List[str] = field(default_factory=list)
    generated: Optional[GeneratedColumn] = None

    @property
    def base_type(self) -> str:
        return self.type.split("(", 1)[0].split()[0].upper()

    @property
    def length(self) -> Optional[int]:
        """Declared length, the first number in the type arguments."""
        m = re.search(r"\(\s*(\d+)", self.type)
        return int(m.group(1)) if m else None

    @property
    def elements(self) -> List[str]:
        """ENUM/SET members, unquoted."""
        if self.base_type not in ("ENUM", "SET"):
            return []
        open_pos = self.type.find("(")
        close = find_closing_paren(self.type, open_pos) if open_pos >= 0 else -1
        if close < 0:
            return []
        return [unquote_string(v) for v in split_top_level(self.type[open_pos + 1:close])]


@dataclass
class IndexColumn:
    name: str
    prefix_length: Optional[int] = None


@dataclass
class IndexDefinition:
    name: str
    kind: str
    columns: List[IndexColumn] = field(default_factory=list)

    @property
    def unique(self) -> bool:
        return self.kind in (PRIMARY, "UNIQUE")

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


@dataclass
class ForeignKeyDefinition:
    name: str
    columns: List[str]
    ref_table: str
    ref_columns: List[str]
    ref_schema: Optional[str] = None
    on_delete: Optional[str] = None
    on_update: Optional[str] = None

    @property
    def ref_display(self) -> str:
        if self.ref_schema:
            return f"{self.ref_schema}.{self.ref_table}"
        return self.ref_table


@dataclass
class PartitionDefinition:
    name: str
    values: Optional[str] = None
    engine: Optional[str] = None
    tablespace: Optional[str] = None


@dataclass
class TableDefinition:
    name: str
    schema: Optional[str] = None
    columns: List[ColumnDefinition] = field(default_factory=list)
    indexes: List[IndexDefinition] = field(default_factory=list)
    foreign_keys: List[ForeignKeyDefinition] = field(default_factory=list)
    engine: Optional[str] = None
    charset: Optional[str] = None
    collation: Optional[str] = None
    row_format: Optional[str] = None
    tablespace: Optional[str] = None
    partition_method: Optional[str] = None
    partition_expression: Optional[str] = None
    partitions: List[PartitionDefinition] = field(default_factory=list)
    source: str = ""

    @property
    def effective_engine(self) -> str:
        return self.engine or "InnoDB"

    @property
    def partitioned(self) -> bool:
        return self.partition_method is not None

    def column(self, name: str) -> Optional[ColumnDefinition]:
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    def table_charset(self) -> str:
        return (self.charset or charset_from_collation(self.collation)
                or DEFAULT_CHARSET).lower()

    def charset_of(self, column: Optional[ColumnDefinition]) -> str:
        """Resolve a column's charset: column override, then the table, then the default."""
        if column is not None:
            if column.base_type in ("NCHAR", "NVARCHAR", "NATIONAL"):
                return "utf8mb3"
            resolved = column.charset or charset_from_collation(column.collation)
            if resolved:
                return resolved.lower()
        return self.table_charset()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _identifier_list(text: str) -> List[str]:
    return [unquote_identifier(p) for p in split_top_level(text)]


def _index_columns(text: str) -> List[IndexColumn]:
    parts = []
    for part in split_top_level(text):
        if part.startswith("("):
            continue  # functional key part
        m = _INDEX_PART.match(part)
        if not m:
            raise ValueError(f"unrecognised key part: {part!r}")
        prefix = int(m.group(2)) if m.group(2) else None
        parts.append(IndexColumn(unquote_identifier(m.group(1)), prefix))
    return parts


def _parse_index(table: TableDefinition, clause: str, kind: str, keyword_end: int,
                 name: Optional[str] = None) -> None:
    open_pos = clause.find("(", keyword_end)
    if open_pos < 0:
        raise ValueError("index without column list")
    head = clause[keyword_end:open_pos].strip()
    if head and not head.upper().startswith("USING"):
        declared, _ = read_identifier(head, 0)
        name = name or declared
    close = find_closing_paren(clause, open_pos)
    if close < 0:
        raise ValueError("unbalanced index column list")
    columns = _index_columns(clause[open_pos + 1:close])
    if kind == PRIMARY:
        name = PRIMARY
    elif not name:
        name = columns[0].name if columns else f"index_{len(table.indexes) + 1}"
    table.indexes.append(IndexDefinition(name, kind, columns))


def _parse_foreign_key(table: TableDefinition, clause: str, name: Optional[str]) -> None:
    m = _FOREIGN_KEY.match(clause)
    if not m:
        raise ValueError("malformed foreign key")
    ref_schema, ref_table, _ = read_qualified_name(m.group("ref"), 0)
    rest = m.group("rest")
    on_delete = re.search(r"ON\s+DELETE\s+" + _FK_ACTION, rest, re.IGNORECASE)
    on_update = re.search(r"ON\s+UPDATE\s+" + _FK_ACTION, rest, re.IGNORECASE)
    if not name:
        name = f"{table.name}_ibfk_{len(table.foreign_keys) + 1}"
    table.foreign_keys.append(ForeignKeyDefinition(
        name=name,
        columns=_identifier_list(m.group("cols")),
        ref_table=ref_table,
        ref_columns=_identifier_list(m.group("refcols")),
        ref_schema=ref_schema,
        on_delete=" ".join(on_delete.group(1).upper().split()) if on_delete else None,
        on_update=" ".join(on_update.group(1).upper().split()) if on_update else None,
    ))


def _read_default(rest: str, masked: str) -> Optional[str]:
    m = re.search(r"\bDEFAULT\s+", masked, re.IGNORECASE)
    if not m:
        return None
    pos = m.end()
    intro = re.match(r"(_\w+|[bBxXnN])(?=['\"])", rest[pos:])
    if intro:
        pos += intro.end()
    if pos < len(rest) and rest[pos] in "'\"":
        return rest[m.end():skip_quoted(rest, pos)]
    if pos < len(rest) and rest[pos] == "(":
        close = find_closing_paren(rest, pos)
        return rest[pos:close + 1] if close > 0 else None
    token = re.match(r"[-+]?[\w.]+(?:\(\d*\))?", rest[pos:])
    return token.group(0) if token else None


def _parse_column(table: TableDefinition, clause: str) -> None:
    name, end = read_identifier(clause, 0)
    if not name:
        raise ValueError("column without a name")
    while end < len(clause) and clause[end].isspace():
        end += 1
    m = _TYPE_WORD.match(clause, end)
    if not m:
        raise ValueError(f"column {name} has no type")
    type_end = m.end()
    if type_end < len(clause) and clause[type_end] == "(":
        close = find_closing_paren(clause, type_end)
        if close < 0:
            raise ValueError(f"column {name} has unbalanced type arguments")
        type_end = close + 1
    modifier = _TYPE_MODIFIER.match(clause, type_end)
    while modifier:
        type_end = modifier.end()
        modifier = _TYPE_MODIFIER.match(clause, type_end)
    col = ColumnDefinition(name=name, type=clause[end:type_end].strip())

    rest = clause[type_end:]
    masked = mask_literals(rest)
    col.nullable = not re.search(r"\bNOT\s+NULL\b", masked, re.IGNORECASE)
    col.default = _read_default(rest, masked)
    charset = re.search(r"\b(?:CHARACTER\s+SET|CHARSET)\s*=?\s*(\w+)", masked, re.IGNORECASE)
    if charset:
        col.charset = charset.group(1).lower()
    collate = re.search(r"\bCOLLATE\s*=?\s*(\w+)", masked, re.IGNORECASE)
    if collate:
        col.collation = collate.group(1).lower()
    if re.search(r"\bAUTO_INCREMENT\b", masked, re.IGNORECASE):
        col.extra.append("AUTO_INCREMENT")
    if re.search(r"\bON\s+UPDATE\s+CURRENT_TIMESTAMP\b", masked, re.IGNORECASE):
        col.extra.append("ON UPDATE CURRENT_TIMESTAMP")
    generated = re.search(r"\b(?:GENERATED\s+ALWAYS\s+)?AS\s*\(", masked, re.IGNORECASE)
    if generated:
        open_pos = generated.end() - 1
        close = find_closing_paren(rest, open_pos)
        if close > 0:
            stored = re.search(r"\b(?:STORED|PERSISTENT)\b", masked[close:], re.IGNORECASE)
            col.generated = GeneratedColumn(rest[open_pos + 1:close].strip(), bool(stored))
    table.columns.append(col)

    if re.search(r"\bPRIMARY\s+KEY\b", masked, re.IGNORECASE):
        table.indexes.append(IndexDefinition(PRIMARY, PRIMARY, [IndexColumn(name)]))
    elif re.search(r"\bUNIQUE\b", masked, re.IGNORECASE):
        table.indexes.append(IndexDefinition(name, "UNIQUE", [IndexColumn(name)]))


def _parse_clause(table: TableDefinition, clause: str) -> None:
    masked = mask_literals(clause)
    constraint_name = None
    m = re.match(r"CONSTRAINT\b", masked, re.IGNORECASE)
    if m:
        after = clause[m.end():]
        if not re.match(r"\s*(?:PRIMARY|UNIQUE|FOREIGN|CHECK)\b", after, re.IGNORECASE):
            constraint_name, end = read_identifier(after, 0)
            after = after[end:]
        clause = after.strip()
        masked = mask_literals(clause)

    m = re.match(r"PRIMARY\s+KEY\b", masked, re.IGNORECASE)
    if m:
        _parse_index(table, clause, PRIMARY, m.end())
        return
    m = re.match(r"UNIQUE(?:\s+(?:KEY|INDEX))?\b", masked, re.IGNORECASE)
    if m:
        _parse_index(table, clause, "UNIQUE", m.end(), constraint_name)
        return
    m = re.match(r"(FULLTEXT|SPATIAL)(?:\s+(?:KEY|INDEX))?\b", masked, re.IGNORECASE)
    if m:
        _parse_index(table, clause, m.group(1).upper(), m.end())
        return
    m = re.match(r"(?:KEY|INDEX)\b", masked, re.IGNORECASE)
    if m:
        _parse_index(table, clause, "INDEX", m.end())
        return
    if re.match(r"FOREIGN\s+KEY\b", masked, re.IGNORECASE):
        _parse_foreign_key(table, clause, constraint_name)
        return
    if re.match(r"CHECK\b", masked, re.IGNORECASE):
        return
    _parse_column(table, clause)


def _parse_partitions(table: TableDefinition, text: str) -> None:
    m = _PARTITION_BY.match(text)
    if not m:
        return
    method = m.group(2).upper()
    if m.group(1):
        method = "LINEAR " + method
    if m.group(3):
        method += " COLUMNS"
    table.partition_method = method
    pos = m.end()
    if pos < len(text) and text[pos] == "(":
        close = find_closing_paren(text, pos)
        if close < 0:
            return
        table.partition_expression = text[pos + 1:close].strip()
        pos = close + 1
    count = re.match(r"\s*PARTITIONS\s+(\d+)", text[pos:], re.IGNORECASE)
    partition_count = 0
    if count:
        partition_count = int(count.group(1))
        pos += count.end()
    sub = _SUBPARTITION_BY.match(text, pos)
    if sub:
        pos = sub.end()
        if pos < len(text) and text[pos] == "(":
            pos = find_closing_paren(text, pos) + 1
        sub_count = re.match(r"\s*SUBPARTITIONS\s+\d+", text[pos:], re.IGNORECASE)
        if sub_count:
            pos += sub_count.end()
    while pos < len(text) and text[pos].isspace():
        pos += 1
    if pos < len(text) and text[pos] == "(":
        close = find_closing_paren(text, pos)
        for definition in split_top_level(text[pos + 1:close if close > 0 else len(text)]):
            table.partitions.append(_parse_partition_definition(definition))
    elif partition_count:
        table.partitions = [PartitionDefinition(f"p{i}") for i in range(partition_count)]


def _parse_partition_definition(text: str) -> PartitionDefinition:
    masked = mask_literals(text)
    name = re.match(r"\s*PARTITION\s+(`(?:[^`]|``)+`|[\w$]+)", text, re.IGNORECASE)
    part = PartitionDefinition(unquote_identifier(name.group(1)) if name else text.split()[0])
    values = re.search(r"\bVALUES\s+(LESS\s+THAN|IN)\s*", masked, re.IGNORECASE)
    if values:
        start = values.end()
        if text[start:start + 1] == "(":
            close = find_closing_paren(text, start)
            bound = text[start:close + 1] if close > 0 else text[start:]
        else:
            bound = text[start:].split()[0]
        part.values = f"{' '.join(values.group(1).upper().split())} {bound}"
    engine = re.search(r"\b(?:STORAGE\s+)?ENGINE\s*=?\s*`?(\w+)", masked, re.IGNORECASE)
    if engine:
        part.engine = engine.group(1)
    tablespace = re.search(r"\bTABLESPACE\s*=?\s*['\"`]?(\w+)", text, re.IGNORECASE)
    if tablespace:
        part.tablespace = tablespace.group(1)
    return part


def parse_create_table(statement: str, source: str = "") -> Optional[TableDefinition]:
    """Build a TableDefinition from one CREATE TABLE statement, or None."""
    sql = strip_comments(statement).strip()
    m = _CREATE_TABLE.match(sql)
    if not m:
        return None
    schema, name, pos = read_qualified_name(sql, m.end())
    if not name:
        return None
    while pos < len(sql) and sql[pos].isspace():
        pos += 1
    if pos >= len(sql) or sql[pos] != "(":
        # CREATE TABLE ... LIKE / AS SELECT
        return None
    close = find_closing_paren(sql, pos)
    if close < 0:
        log.debug("create_table_unbalanced", table=name, file=source)
        return None

    table = TableDefinition(name=name, schema=schema, source=source)
    for clause in split_top_level(sql[pos + 1:close]):
        try:
            _parse_clause(table, clause)
        except ValueError as exc:
            log.debug("clause_skipped", table=name, file=source, reason=str(exc))

    tail = sql[close + 1:]
    masked_tail = mask_literals(tail)
    partition = re.search(r"\bPARTITION\s+BY\b", masked_tail, re.IGNORECASE)
    options = masked_tail[:partition.start()] if partition else masked_tail
    for attr, pattern in _TABLE_OPTIONS.items():
        found = pattern.search(options)
        if found:
            # masking keeps offsets, so the quoted value is read back from the raw tail
            value = tail[found.start(1):found.end(1)]
            setattr(table, attr, value.lower() if attr in ("charset", "collation") else value)
    if partition:
        _parse_partitions(table, tail[partition.start():])
    return table


def extract_tables(text: str, source: str = "") -> List[TableDefinition]:
    """All tables declared by CREATE TABLE statements in ``text``."""
    tables = []
    for statement, line in iter_statements(text):
        words = leading_words(statement, 2)
        if len(words) < 2 or words[0] != "CREATE" or words[1] not in ("TABLE", "TEMPORARY"):
            continue
        table = parse_create_table(statement, source)
        if table is not None:
            tables.append(table)
        else:
            log.debug("create_table_without_body", file=source, line=line)
    return tables


class SchemaRegistry:
    """Tables seen during one run, keyed by lower-cased unqualified name."""

    def __init__(self):
        self._by_name: Dict[str, List[TableDefinition]] = {}
        self._order: List[TableDefinition] = []
        self.deferred_inserts: list = []
        self.four_byte_inserts: list = []

    def register(self, table: TableDefinition) -> List[TableDefinition]:
        """Add a declaration; returns the declarations seen before it."""
        earlier = self._by_name.setdefault(table.name.lower(), [])
        previous = list(earlier)
        earlier.append(table)
        self._order.append(table)
        return previous

    def get(self, name: str) -> Optional[TableDefinition]:
        found = self._by_name.get(name.lower())
        return found[0] if found else None

    def declarations(self, name: str) -> List[TableDefinition]:
        return list(self._by_name.get(name.lower(), []))

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._by_name

    def __iter__(self) -> Iterator[TableDefinition]:
        return iter(list(self._order))

    def __len__(self) -> int:
        return len(self._order)
