"""Second pass: checks that need the complete table registry."""
import re
from typing import List, Optional, Tuple

import structlog

from dumpcheck.constants import (
    CHARSET_BYTES_PER_CHAR,
    ENUM_ELEMENT_MAX_LENGTH,
    INNODB_COMPACT_MAX_KEY_LENGTH,
    INNODB_MAX_KEY_LENGTH,
    MYISAM_MAX_KEY_LENGTH,
    NON_NATIVE_PARTITION_ENGINES,
    REMOVED_ENGINES,
    SHARED_TABLESPACES,
)
from dumpcheck.rules import RULES, FixContext, get_rule
from dumpcheck.scanners import check_insert_charset, scan_insert
from dumpcheck.schema import (
    ColumnDefinition,
    IndexDefinition,
    SchemaRegistry,
    TableDefinition,
)

log = structlog.get_logger()

_CHAR_TYPES = ("CHAR", "VARCHAR", "NCHAR", "NVARCHAR", "NATIONAL", "CHARACTER")
_BYTE_TYPES = ("BINARY", "VARBINARY")
_TEXT_TYPES = ("TINYTEXT", "TEXT", "MEDIUMTEXT", "LONGTEXT")
_BLOB_TYPES = ("TINYBLOB", "BLOB", "MEDIUMBLOB", "LONGBLOB")
_TEMPORAL_TYPES = ("DATE", "DATETIME", "TIMESTAMP")
_ZERO_DEFAULT = re.compile(r"^'0000-00-00")


def _location(table: TableDefinition, column: Optional[str] = None) -> str:
    if column:
        return f"{table.source} - Table: {table.name}, Column: {column}"
    return f"{table.source} - Table: {table.name}"


def bytes_per_char(charset: str) -> int:
    return CHARSET_BYTES_PER_CHAR.get(charset.lower(), 4)


def max_key_length(table: TableDefinition) -> int:
    if table.effective_engine.lower() == "myisam":
        return MYISAM_MAX_KEY_LENGTH
    if (table.row_format or "").upper() in ("REDUNDANT", "COMPACT"):
        return INNODB_COMPACT_MAX_KEY_LENGTH
    return INNODB_MAX_KEY_LENGTH


def _part_bytes(table: TableDefinition, column: ColumnDefinition,
                prefix: Optional[int]) -> Tuple[int, int]:
    """(bytes, multiplier) one key part contributes."""
    base = column.base_type
    if base in _CHAR_TYPES or (base in _TEXT_TYPES and prefix):
        multiplier = bytes_per_char(table.charset_of(column))
        width = prefix or column.length or (1 if base in _CHAR_TYPES else 0)
        return width * multiplier, multiplier
    if base in _BYTE_TYPES or (base in _BLOB_TYPES and prefix):
        return prefix or column.length or 1, 1
    return 0, 1


def index_byte_size(table: TableDefinition,
                    index: IndexDefinition) -> Tuple[int, List[Tuple[str, int, int]]]:
    """Total key size and the (column, bytes, multiplier) of each contributing part."""
    total = 0
    parts = []
    for part in index.columns:
        column = table.column(part.name)
        if column is None:
            continue
        size, multiplier = _part_bytes(table, column, part.prefix_length)
        if size:
            parts.append((column.name, size, multiplier))
            total += size
    return total, parts


def check_foreign_keys(table: TableDefinition, registry: SchemaRegistry, sink) -> None:
    for fk in table.foreign_keys:
        code = (f"CONSTRAINT `{fk.name}` FOREIGN KEY ({', '.join(fk.columns)}) "
                f"REFERENCES {fk.ref_display} ({', '.join(fk.ref_columns)})")
        targets = registry.declarations(fk.ref_table)
        if not targets:
            sink.emit(get_rule("fk_ref_table_not_found"), _location(table), code,
                      table_name=table.name,
                      description=f"Foreign key `{fk.name}` on `{table.name}` references "
                                  f"`{fk.ref_display}`, which no analysed file defines.")
            continue
        wanted = [c.lower() for c in fk.ref_columns]
        covered = any(
            index.unique
            and [c.lower() for c in index.column_names[:len(wanted)]] == wanted
            for target in targets for index in target.indexes)
        if covered:
            continue
        ref = targets[0].name
        sink.emit(get_rule("fk_non_unique_ref"), _location(table), code,
                  table_name=table.name,
                  description=f"Foreign key `{fk.name}` on `{table.name}` references "
                              f"`{ref}` ({', '.join(fk.ref_columns)}), which is not "
                              f"covered by a PRIMARY KEY or UNIQUE index.",
                  fix_context=FixContext(code=code, table_name=ref,
                                         columns=list(fk.ref_columns)))


def check_index_sizes(table: TableDefinition, sink) -> None:
    limit = max_key_length(table)
    for index in table.indexes:
        if index.kind in ("FULLTEXT", "SPATIAL"):
            continue
        total, parts = index_byte_size(table, index)
        if total <= limit:
            continue
        detail = ", ".join(f"`{name}` {size} bytes ({mult} per char)"
                           for name, size, mult in parts)
        fix_context = FixContext(code=index.name, table_name=table.name,
                                 index_name=index.name, columns=index.column_names)
        if index.kind == "INDEX" and len(parts) == 1:
            fix_context.prefix_length = limit // parts[0][2]
        sink.emit(get_rule("index_too_large_calculated"), _location(table),
                  f"INDEX `{index.name}` ({', '.join(index.column_names)})",
                  table_name=table.name,
                  description=f"Index `{index.name}` on `{table.name}` needs {total} bytes "
                              f"({detail}); the {table.effective_engine} limit is "
                              f"{limit} bytes.",
                  fix_context=fix_context)


def check_enum_elements(table: TableDefinition, sink) -> None:
    rule = get_rule("enum_element_length_exceeded")
    for column in table.columns:
        for position, element in enumerate(column.elements, 1):
            if len(element) <= ENUM_ELEMENT_MAX_LENGTH:
                continue
            preview = element[:30] + "..."
            sink.emit(rule, _location(table, column.name),
                      f"`{column.name}` {column.base_type} element {position}: '{preview}'",
                      table_name=table.name, column_name=column.name,
                      column_type=column.type, enum_values=column.elements,
                      description=f"Element {position} of {column.base_type} column "
                                  f"`{column.name}` is {len(element)} characters long; "
                                  f"the limit is {ENUM_ELEMENT_MAX_LENGTH}.")


def check_table_structure(table: TableDefinition, sink) -> None:
    engine = table.effective_engine
    if engine.upper() in REMOVED_ENGINES:
        sink.emit(get_rule("removed_engine"), _location(table), f"ENGINE={engine}",
                  table_name=table.name,
                  description=f"Table `{table.name}` uses the {engine} engine, which "
                              f"MySQL 8.4 does not provide.")
    if table.partitioned:
        engines = [engine] + [p.engine for p in table.partitions if p.engine]
        foreign = next((e for e in engines
                        if e.upper() in (x.upper() for x in NON_NATIVE_PARTITION_ENGINES)),
                       None)
        if foreign:
            sink.emit(get_rule("non_native_partition_parsed"), _location(table),
                      f"ENGINE={foreign} PARTITION BY {table.partition_method}",
                      table_name=table.name,
                      description=f"Table `{table.name}` is partitioned on the {foreign} "
                                  f"engine, which has no native partitioning handler.")
        if table.partition_method.startswith("LINEAR"):
            sink.emit(get_rule("linear_partition"), _location(table),
                      f"PARTITION BY {table.partition_method} ({table.partition_expression})",
                      table_name=table.name)
        spaces = [table.tablespace] + [p.tablespace for p in table.partitions]
        shared = next((s for s in spaces if s and s.lower() in SHARED_TABLESPACES), None)
        if shared:
            sink.emit(get_rule("partition_shared_tablespace_parsed"), _location(table),
                      f"TABLESPACE {shared} PARTITION BY {table.partition_method}",
                      table_name=table.name,
                      description=f"Partitioned table `{table.name}` is stored in the "
                                  f"shared tablespace {shared}.")
    for column in table.columns:
        if column.charset in ("utf8", "utf8mb3"):
            sink.emit(get_rule("column_utf8mb3_charset"), _location(table, column.name),
                      f"`{column.name}` {column.type} CHARACTER SET {column.charset}",
                      table_name=table.name, column_name=column.name,
                      column_type=column.type)
        if (column.base_type in _TEMPORAL_TYPES and column.default
                and _ZERO_DEFAULT.match(column.default)):
            sink.emit(get_rule("zero_date_default"), _location(table, column.name),
                      f"`{column.name}` {column.type} DEFAULT {column.default}",
                      table_name=table.name, column_name=column.name,
                      column_type=column.type)


def validate(registry: SchemaRegistry, sink, rules=RULES) -> None:
    """Run every registry-wide check, in registration order."""
    for table in registry:
        check_foreign_keys(table, registry, sink)
        check_index_sizes(table, sink)
        check_enum_elements(table, sink)
        check_table_structure(table, sink)
    for insert in registry.deferred_inserts:
        scan_insert(insert, registry, sink, rules)
    for insert in registry.four_byte_inserts:
        check_insert_charset(insert, registry, sink)
    log.debug("cross_reference_done", tables=len(registry),
              deferred=len(registry.deferred_inserts))
