"""DumpCheck rule catalog: MySQL 8.0 -> 8.4 compatibility rules."""
import re
from dataclasses import asdict, dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Pattern, Tuple

from dumpcheck.constants import (
    AUTH_PLUGIN_RECOMMENDED,
    CATEGORY_LABELS,
    CHANGED_FUNCTIONS_IN_GENERATED_COLUMNS,
    DEPRECATED_ENGINES,
    DEPRECATED_FUNCTIONS_84,
    DOC_CHARSET,
    DOC_ENGINES,
    DOC_FOREIGN_KEYS,
    DOC_IDENTIFIERS,
    DOC_INNODB_LIMITS,
    DOC_KEYWORDS,
    DOC_NATIVE_AUTH,
    DOC_PARTITIONING,
    DOC_PRIVILEGES,
    DOC_REMOVED,
    DOC_WEBAUTHN,
    ENUM_ELEMENT_MAX_LENGTH,
    FOREIGN_KEY_NAME_MAX_LENGTH,
    FTS_TABLE_PREFIXES,
    MYSQL_SCHEMA_TABLES,
    NEW_RESERVED_KEYWORDS_84,
    NON_NATIVE_PARTITION_ENGINES,
    OBSOLETE_SQL_MODES,
    REMOVED_ENGINES,
    REMOVED_FUNCTIONS_84,
    REMOVED_PRIVILEGES_84,
    REMOVED_SYS_VARS_84,
    SHARED_TABLESPACES,
    SUPER_REPLACEMENT_PRIVILEGES,
    SYS_VARS_NEW_DEFAULTS_84,
    TIMESTAMP_MAX_YEAR,
    TIMESTAMP_MIN_YEAR,
)
from dumpcheck.errors import RuleCatalogError

SEVERITIES = ("error", "warning", "info")
SEV_RANK = {"info": 1, "warning": 2, "error": 3}
CATEGORIES = tuple(CATEGORY_LABELS)
# registry rules are raised by the structural validators, not by text matching
KINDS = ("schema", "query", "config", "data", "registry")
TEXT_KINDS = ("schema", "query", "config")

# Data rules whose detection lives inside the data scanner itself.
EMBEDDED_DATA_RULES = ("data_4byte_chars", "data_null_byte")


@dataclass
class FixContext:
    """What a remediation template may use to build its statement."""
    code: str = ""
    matched_text: str = ""
    statement: str = ""
    table_name: Optional[str] = None
    column_name: Optional[str] = None
    column_type: Optional[str] = None
    enum_values: Optional[List[str]] = None
    user_name: Optional[str] = None
    host: Optional[str] = None
    variable_name: Optional[str] = None
    index_name: Optional[str] = None
    columns: List[str] = field(default_factory=list)
    prefix_length: Optional[int] = None


@dataclass(frozen=True)
class Rule:
    id: str
    kind: str
    category: str
    severity: str
    title: str
    description: str
    suggestion: str
    pattern: Optional[Pattern] = None
    predicate: Optional[Callable[[str, str], bool]] = None
    fix: Optional[Callable[[FixContext], Optional[str]]] = None
    check_id: Optional[str] = None
    doc_link: Optional[str] = None


@dataclass
class Finding:
    rule_id: str
    category: str
    severity: str
    title: str
    description: str
    suggestion: str
    location: str
    code: str = ""
    matched_text: Optional[str] = None
    table_name: Optional[str] = None
    column_name: Optional[str] = None
    column_type: Optional[str] = None
    enum_values: Optional[List[str]] = None
    user_name: Optional[str] = None
    fix_query: Optional[str] = None
    check_id: Optional[str] = None
    doc_link: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.rule_id, self.location, self.code)

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Remediation helpers
# ---------------------------------------------------------------------------

_CREATE_TABLE_NAME = re.compile(
    r"CREATE\s+(?:TEMPORARY\s+)?TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?"
    r"(?:`?\w+`?\s*\.\s*)?`?(\w+)`?", re.IGNORECASE)
_ACCOUNT = re.compile(
    r"\b(?:TO|FROM|USER(?:\s+IF\s+(?:NOT\s+)?EXISTS)?)\s+"
    r"['\"`]?([^'\"`@\s,;()]+)['\"`]?(?:\s*@\s*['\"`]?([^'\"`\s,;()]+)['\"`]?)?",
    re.IGNORECASE)


def _table_of(ctx: FixContext) -> Optional[str]:
    if ctx.table_name:
        return ctx.table_name
    for text in (ctx.statement, ctx.code):
        m = _CREATE_TABLE_NAME.search(text or "")
        if m:
            return m.group(1)
    return None


def _account_of(ctx: FixContext) -> Optional[str]:
    """Return ``'user'@'host'`` from the context, or None."""
    if ctx.user_name:
        return f"'{ctx.user_name}'@'{ctx.host or '%'}'"
    for text in (ctx.statement, ctx.code):
        m = _ACCOUNT.search(text or "")
        if m:
            return f"'{m.group(1)}'@'{m.group(2) or '%'}'"
    return None


def _fix_engine(ctx: FixContext) -> Optional[str]:
    table = _table_of(ctx)
    return f"ALTER TABLE `{table}` ENGINE=InnoDB;" if table else None


def _fix_convert_utf8mb4(ctx: FixContext) -> Optional[str]:
    table = _table_of(ctx)
    if not table:
        return None
    return (f"ALTER TABLE `{table}` CONVERT TO CHARACTER SET utf8mb4 "
            f"COLLATE utf8mb4_0900_ai_ci;")


def _fix_auth_plugin(ctx: FixContext) -> Optional[str]:
    account = _account_of(ctx)
    if not account:
        return None
    return (f"ALTER USER {account} IDENTIFIED WITH {AUTH_PLUGIN_RECOMMENDED} "
            f"BY 'new_password';")


def _fix_revoke_super(ctx: FixContext) -> Optional[str]:
    account = _account_of(ctx)
    if not account:
        return None
    return "\n".join([
        "-- Replace SUPER with the dynamic privileges the account really needs",
        f"REVOKE SUPER ON *.* FROM {account};",
        f"-- GRANT SYSTEM_VARIABLES_ADMIN ON *.* TO {account};",
        f"-- GRANT CONNECTION_ADMIN ON *.* TO {account};",
    ])


def _fix_replace_super(ctx: FixContext) -> Optional[str]:
    account = _account_of(ctx)
    if not account:
        return None
    return "\n".join([
        f"REVOKE SUPER ON *.* FROM {account};",
        f"GRANT SYSTEM_VARIABLES_ADMIN, BINLOG_ADMIN ON *.* TO {account};",
    ])


def _fix_super_replacement(ctx: FixContext) -> Optional[str]:
    account = _account_of(ctx)
    if not account:
        return None
    return "\n".join([
        "-- Dynamic privileges that replace SUPER:",
        f"-- {', '.join(SUPER_REPLACEMENT_PRIVILEGES)}",
        f"REVOKE SUPER ON *.* FROM {account};",
        f"GRANT SYSTEM_VARIABLES_ADMIN, CONNECTION_ADMIN, REPLICATION_SLAVE_ADMIN "
        f"ON *.* TO {account};",
    ])


def _fix_removed_sys_var(ctx: FixContext) -> Optional[str]:
    if not ctx.variable_name:
        return None
    return f"-- Remove this option from my.cnf:\n-- {ctx.variable_name}"


def _fix_default_auth_plugin(ctx: FixContext) -> Optional[str]:
    return ("-- Remove default_authentication_plugin from my.cnf and set:\n"
            "-- authentication_policy=caching_sha2_password")


def _fix_year2(ctx: FixContext) -> Optional[str]:
    table = _table_of(ctx)
    column = ctx.column_name
    if not column:
        m = re.search(r"`?(\w+)`?\s+YEAR\(2\)", ctx.code, re.IGNORECASE)
        column = m.group(1) if m else None
    if table and column:
        return f"ALTER TABLE `{table}` MODIFY COLUMN `{column}` YEAR;"
    return None


def _fix_zerofill(ctx: FixContext) -> Optional[str]:
    table = _table_of(ctx)
    m = re.search(r"`?(\w+)`?\s+(\w+(?:\(\d+\))?)\s+(?:UNSIGNED\s+)?ZEROFILL",
                  ctx.code, re.IGNORECASE)
    if table and m:
        base = re.sub(r"\(\d+\)", "", m.group(2))
        return f"ALTER TABLE `{table}` MODIFY COLUMN `{m.group(1)}` {base.upper()};"
    return None


def _fix_float_precision(ctx: FixContext) -> Optional[str]:
    table = _table_of(ctx)
    m = re.search(r"`?(\w+)`?\s+(?:FLOAT|DOUBLE)\((\d+),\s*(\d+)\)", ctx.code,
                  re.IGNORECASE)
    if table and m:
        return (f"ALTER TABLE `{table}` MODIFY COLUMN `{m.group(1)}` "
                f"DECIMAL({m.group(2)},{m.group(3)});")
    return None


def _fix_shared_tablespace(ctx: FixContext) -> Optional[str]:
    table = _table_of(ctx)
    if not table:
        return None
    return "\n".join([
        f"ALTER TABLE `{table}` TABLESPACE = innodb_file_per_table;",
        f"-- or drop partitioning: ALTER TABLE `{table}` REMOVE PARTITIONING;",
    ])


def _fix_found_rows(ctx: FixContext) -> Optional[str]:
    return "\n".join([
        "-- Instead of SQL_CALC_FOUND_ROWS / FOUND_ROWS():",
        "-- SELECT ... FROM t WHERE ... LIMIT 10;",
        "-- SELECT COUNT(*) FROM t WHERE ...;",
    ])


def _fix_groupby_order(ctx: FixContext) -> Optional[str]:
    return ("-- Move the sort order into ORDER BY:\n"
            "-- SELECT ... FROM ... GROUP BY col ORDER BY col DESC")


def _fix_zero_date(zero: str) -> Callable[[FixContext], Optional[str]]:
    def fix(ctx: FixContext) -> Optional[str]:
        if not (ctx.table_name and ctx.column_name):
            return None
        t, c = ctx.table_name, ctx.column_name
        return "\n".join([
            f"UPDATE `{t}` SET `{c}` = NULL WHERE `{c}` = '{zero}';",
            f"-- or: UPDATE `{t}` SET `{c}` = '1970-01-01' WHERE `{c}` = '{zero}';",
        ])
    return fix


def _fix_enum_empty(ctx: FixContext) -> Optional[str]:
    if not (ctx.table_name and ctx.column_name and ctx.enum_values):
        return None
    t, c = ctx.table_name, ctx.column_name
    first = ctx.enum_values[0].replace("'", "''")
    return "\n".join([
        f"UPDATE `{t}` SET `{c}` = '{first}' WHERE `{c}` = '';",
        f"-- or allow NULL: ALTER TABLE `{t}` MODIFY COLUMN `{c}` {ctx.column_type} NULL;",
    ])


def _fix_table_utf8mb4(ctx: FixContext) -> Optional[str]:
    if not ctx.table_name:
        return None
    return _fix_convert_utf8mb4(ctx)


def _fix_null_byte(ctx: FixContext) -> Optional[str]:
    if not (ctx.table_name and ctx.column_name):
        return None
    t, c = ctx.table_name, ctx.column_name
    return (f"UPDATE `{t}` SET `{c}` = REPLACE(`{c}`, CHAR(0), '') "
            f"WHERE LOCATE(CHAR(0), `{c}`) > 0;")


def _fix_timestamp_range(ctx: FixContext) -> Optional[str]:
    if not (ctx.table_name and ctx.column_name):
        return None
    return f"ALTER TABLE `{ctx.table_name}` MODIFY COLUMN `{ctx.column_name}` DATETIME;"


def _fix_unique_index(ctx: FixContext) -> Optional[str]:
    if not (ctx.table_name and ctx.columns):
        return None
    name = ("uk_" + "_".join([ctx.table_name] + ctx.columns))[:FOREIGN_KEY_NAME_MAX_LENGTH]
    cols = ", ".join(f"`{c}`" for c in ctx.columns)
    return f"ALTER TABLE `{ctx.table_name}` ADD UNIQUE INDEX `{name}` ({cols});"


def _fix_index_prefix(ctx: FixContext) -> Optional[str]:
    if not (ctx.table_name and ctx.index_name and ctx.prefix_length
            and len(ctx.columns) == 1):
        return None
    t, i = ctx.table_name, ctx.index_name
    return (f"ALTER TABLE `{t}` DROP INDEX `{i}`, "
            f"ADD INDEX `{i}` (`{ctx.columns[0]}`({ctx.prefix_length}));")


def _fix_column_utf8mb4(ctx: FixContext) -> Optional[str]:
    if not (ctx.table_name and ctx.column_name and ctx.column_type):
        return None
    return (f"ALTER TABLE `{ctx.table_name}` MODIFY COLUMN `{ctx.column_name}` "
            f"{ctx.column_type} CHARACTER SET utf8mb4 COLLATE utf8mb4_0900_ai_ci;")


def _fix_drop_default(ctx: FixContext) -> Optional[str]:
    if not (ctx.table_name and ctx.column_name):
        return None
    return f"ALTER TABLE `{ctx.table_name}` ALTER COLUMN `{ctx.column_name}` DROP DEFAULT;"


# ---------------------------------------------------------------------------
# Row-value predicates
# ---------------------------------------------------------------------------

_ZERO_DATE = re.compile(r"^['\"]0000-00-00['\"]$")
_ZERO_DATETIME = re.compile(r"^['\"]0000-00-00[ T]00:00:00(?:\.0+)?['\"]$")
_QUOTED_YEAR = re.compile(r"^['\"](\d{4})-\d{1,2}-\d{1,2}")


def _is_enum(column_type: str) -> bool:
    return column_type.strip().upper().startswith("ENUM")


def is_zero_date(value: str, column_type: str) -> bool:
    return bool(_ZERO_DATE.match(value))


def is_zero_datetime(value: str, column_type: str) -> bool:
    return bool(_ZERO_DATETIME.match(value))


def is_enum_empty(value: str, column_type: str) -> bool:
    return _is_enum(column_type) and value in ("''", '""')


def is_enum_numeric(value: str, column_type: str) -> bool:
    return _is_enum(column_type) and value.isdigit()


def is_timestamp_out_of_range(value: str, column_type: str) -> bool:
    if not column_type.strip().upper().startswith("TIMESTAMP"):
        return False
    m = _QUOTED_YEAR.match(value)
    if not m:
        return False
    year = int(m.group(1))
    # zero dates are reported by the zero-date rules
    return year != 0 and not TIMESTAMP_MIN_YEAR <= year <= TIMESTAMP_MAX_YEAR


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def _words(words: Iterable[str]) -> str:
    return "|".join(re.escape(w) for w in words)


def define_rule(rule_id: str, kind: str, category: str, severity: str, title: str,
                description: str, suggestion: str, pattern: Optional[str] = None,
                **kwargs) -> Rule:
    compiled = None
    if pattern is not None:
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            raise RuleCatalogError(f"rule {rule_id}: bad pattern: {exc}") from exc
    return Rule(id=rule_id, kind=kind, category=category, severity=severity,
                title=title, description=description, suggestion=suggestion,
                pattern=compiled, **kwargs)


_KEYWORDS = _words(NEW_RESERVED_KEYWORDS_84)
_KEYWORD_LIST = ", ".join(NEW_RESERVED_KEYWORDS_84)

_SYSVAR_RULES: List[Rule] = [
    define_rule("removed_sys_var", "config", "removed_sys_vars", "error",
                "Removed system variable",
                "The option file sets a system variable that no longer exists in "
                "MySQL 8.4; the server refuses to start with it.",
                "Remove the variable from the option file or use its replacement.",
                rf"^({_words(REMOVED_SYS_VARS_84)})\s*(?:=|$)",
                fix=_fix_removed_sys_var, check_id="removedSysVars", doc_link=DOC_REMOVED),
    define_rule("removed_sys_var_usage", "query", "removed_sys_vars", "error",
                "Removed system variable referenced in SQL",
                "A statement sets or reads a system variable removed in MySQL 8.4.",
                "Drop the reference or switch to the replacement variable.",
                r"(?:\bSET\s+(?:GLOBAL|PERSIST|PERSIST_ONLY)\s+|"
                r"@@(?:GLOBAL\.|SESSION\.|PERSIST\.)?)"
                rf"({_words(REMOVED_SYS_VARS_84)})\b(?!\.)",
                check_id="removedSysVars", doc_link=DOC_REMOVED),
]

for _var, (_old, _new, _what) in SYS_VARS_NEW_DEFAULTS_84.items():
    if _old is None:
        continue
    _SYSVAR_RULES.append(define_rule(
        f"sys_var_new_default_{_var}", "config", "new_default_vars", "warning",
        f"{_var} default changed",
        f"The default of {_var} ({_what}) changes from {_old} in 8.0 to {_new} in 8.4.",
        f"Keeping {_var} = {_old} pins the 8.0 behaviour; consider adopting the new default.",
        rf"^{re.escape(_var)}\s*=\s*{re.escape(str(_old))}\b",
        check_id="sysVarsNewDefaults"))

_SYSVAR_RULES += [
    define_rule("invalid_date_zero", "data", "new_default_vars", "error",
                "Zero date value 0000-00-00",
                "NO_ZERO_DATE is part of the default SQL mode, so 0000-00-00 is rejected on load.",
                "Replace the value with NULL or a real date.",
                predicate=is_zero_date, fix=_fix_zero_date("0000-00-00"), check_id="zeroDates"),
    define_rule("invalid_datetime_zero", "data", "new_default_vars", "error",
                "Zero datetime value 0000-00-00 00:00:00",
                "NO_ZERO_DATE is part of the default SQL mode, so 0000-00-00 00:00:00 "
                "is rejected on load.",
                "Replace the value with NULL or a real datetime.",
                predicate=is_zero_datetime, fix=_fix_zero_date("0000-00-00 00:00:00"),
                check_id="zeroDates"),
]

_KEYWORD_RULES = [
    define_rule("reserved_keyword_84", "schema", "reserved_keywords", "error",
                "Object name is a new reserved word",
                f"The object name clashes with a word reserved in 8.4 ({_KEYWORD_LIST}).",
                "Quote the name with backticks everywhere or rename the object.",
                r"(?:CREATE\s+TABLE|ALTER\s+TABLE|CREATE\s+(?:UNIQUE\s+)?INDEX)\s+`?"
                rf"({_KEYWORDS})`?\b",
                check_id="reservedKeywords", doc_link=DOC_KEYWORDS),
    define_rule("reserved_keyword_column", "schema", "reserved_keywords", "error",
                "Column name is a new reserved word",
                f"The column name clashes with a word reserved in 8.4 ({_KEYWORD_LIST}).",
                "Quote the column with backticks everywhere or rename it.",
                rf"`?\b({_KEYWORDS})`?\s+(?:INT|VARCHAR|TEXT|CHAR|DECIMAL|FLOAT|DOUBLE|DATE|"
                r"TIME|DATETIME|TIMESTAMP|BLOB|ENUM|SET|BOOLEAN|BOOL|TINYINT|SMALLINT|"
                r"MEDIUMINT|BIGINT)\b",
                check_id="reservedKeywords"),
    define_rule("routine_syntax_keyword", "schema", "reserved_keywords", "error",
                "Routine name is a new reserved word",
                "A stored procedure or function name clashes with a reserved word.",
                "Quote the routine name with backticks or rename it.",
                rf"CREATE\s+(?:PROCEDURE|FUNCTION)\s+`?({_KEYWORDS})`?\s*\(",
                check_id="routineSyntax"),
    define_rule("invalid_57_name_dollar_start", "schema", "invalid_objects", "error",
                "Identifier starts with $",
                "Unquoted identifiers starting with $ were accepted by 5.7 but are invalid now.",
                "Rename the object or drop the leading $.",
                r"CREATE\s+(?:TABLE|DATABASE|VIEW|PROCEDURE|FUNCTION)\s+\$\w+",
                check_id="invalid57Names", doc_link=DOC_IDENTIFIERS),
    define_rule("invalid_57_name_multiple_dots", "schema", "invalid_objects", "error",
                "Identifier contains consecutive dots",
                "The identifier contains '..', which is not a valid name.",
                "Rename the object.",
                r"CREATE\s+(?:TABLE|DATABASE|VIEW)\s+`?[\w.]*\.\.[\w.]*`?",
                check_id="invalid57Names"),
    define_rule("invalid_57_name_trailing_space", "schema", "invalid_objects", "error",
                "Identifier ends with a space",
                "A quoted identifier ends with whitespace, which is not a valid name.",
                "Remove the trailing whitespace.",
                r"CREATE\s+(?:TABLE|DATABASE|VIEW)\s+`[^`]*\s`",
                check_id="invalid57Names"),
]

_AUTH_RULES = [
    define_rule("mysql_native_password", "query", "authentication", "warning",
                "mysql_native_password authentication",
                "mysql_native_password is disabled by default in 8.4; accounts using it "
                "cannot log in unless the plugin is loaded explicitly.",
                "Move the account to caching_sha2_password.",
                r"(?:IDENTIFIED\s+WITH\s+['\"`]?mysql_native_password|"
                r"plugin\s*=\s*['\"]?mysql_native_password)",
                fix=_fix_auth_plugin, check_id="authMethodUsage", doc_link=DOC_NATIVE_AUTH),
    define_rule("sha256_password", "query", "authentication", "warning",
                "sha256_password authentication (deprecated)",
                "sha256_password is deprecated; caching_sha2_password replaces it.",
                "Move the account to caching_sha2_password.",
                r"(?:IDENTIFIED\s+WITH\s+['\"`]?sha256_password|"
                r"plugin\s*=\s*['\"]?sha256_password)",
                fix=_fix_auth_plugin, check_id="deprecatedDefaultAuth"),
    define_rule("authentication_fido", "query", "authentication", "error",
                "authentication_fido plugin removed",
                "The authentication_fido plugin no longer exists in 8.4.",
                "Move the account to authentication_webauthn or another plugin.",
                r"(?:IDENTIFIED\s+WITH\s+['\"`]?authentication_fido|"
                r"plugin\s*=\s*['\"]?authentication_fido)",
                fix=_fix_auth_plugin, check_id="pluginUsage", doc_link=DOC_WEBAUTHN),
    define_rule("default_authentication_plugin_var", "config", "authentication", "error",
                "default_authentication_plugin removed",
                "default_authentication_plugin was removed in 8.4.",
                "Use authentication_policy instead.",
                r"^default_authentication_plugin\s*=",
                fix=_fix_default_auth_plugin, check_id="defaultAuthenticationPlugin"),
    define_rule("auth_plugin_disabled", "query", "authentication", "warning",
                "mysql_native_password disabled by default",
                "The mysql_native_password plugin is not loaded by default in 8.4.",
                "Switch to caching_sha2_password or enable mysql_native_password explicitly.",
                r"IDENTIFIED\s+(?:BY|WITH)\s+['\"`]?mysql_native_password['\"`]?",
                fix=_fix_auth_plugin, check_id="authMethodUsage", doc_link=DOC_NATIVE_AUTH),
    define_rule("auth_plugin_removed", "query", "authentication", "error",
                "authentication_fido plugins removed",
                "authentication_fido and authentication_fido_client were removed in 8.4.",
                "Move the account to authentication_webauthn or another plugin.",
                r"IDENTIFIED\s+(?:BY|WITH)\s+['\"`]?authentication_fido(?:_client)?['\"`]?",
                fix=_fix_auth_plugin, check_id="pluginUsage", doc_link=DOC_WEBAUTHN),
]

_PRIVILEGE_RULES = [
    define_rule("super_privilege", "query", "invalid_privileges", "warning",
                "SUPER privilege granted",
                "SUPER is superseded by fine-grained dynamic privileges.",
                "Grant only the dynamic privileges the account needs "
                "(SYSTEM_VARIABLES_ADMIN, BINLOG_ADMIN, ...).",
                r"GRANT\s+[^;]*?\bSUPER\b",
                fix=_fix_revoke_super, check_id="invalidPrivileges",
                doc_link=DOC_PRIVILEGES + "#privileges-provided-dynamic"),
    define_rule("removed_privilege_84", "query", "invalid_privileges", "error",
                "Removed privilege granted",
                f"These privileges are removed in 8.4: {', '.join(REMOVED_PRIVILEGES_84)}.",
                "Replace them with dynamic privileges.",
                rf"GRANT\s+[^;]*?\b({_words(REMOVED_PRIVILEGES_84)})\b[^;]*?\bON\b",
                fix=_fix_replace_super, check_id="invalidPrivileges", doc_link=DOC_PRIVILEGES),
    define_rule("super_privilege_replacement", "query", "invalid_privileges", "warning",
                "SUPER should become dynamic privileges",
                f"SUPER is replaced by {len(SUPER_REPLACEMENT_PRIVILEGES)} dynamic privileges, "
                f"such as {', '.join(SUPER_REPLACEMENT_PRIVILEGES[:5])}.",
                "Grant only the dynamic privileges that match the account's use.",
                r"GRANT\s+[^;]*?\bSUPER\b[^;]*?\bTO\b",
                fix=_fix_super_replacement, check_id="invalidPrivileges",
                doc_link=DOC_PRIVILEGES + "#privileges-provided-dynamic"),
]

_STORAGE_RULES = [
    define_rule("myisam_engine", "schema", "invalid_objects", "warning",
                "MyISAM storage engine",
                "InnoDB is strongly recommended over MyISAM.",
                "Convert the table with ENGINE=InnoDB.",
                r"ENGINE\s*=\s*MyISAM\b",
                fix=_fix_engine, check_id="myisamEngine"),
    define_rule("deprecated_engine", "schema", "invalid_objects", "warning",
                "Deprecated storage engine",
                "These storage engines are deprecated or of limited support: "
                + ", ".join(e for e in DEPRECATED_ENGINES if e != "MyISAM") + ".",
                "Use InnoDB.",
                r"ENGINE\s*=\s*("
                + _words(e for e in DEPRECATED_ENGINES if e != "MyISAM") + r")\b",
                fix=_fix_engine, check_id="myisamEngine", doc_link=DOC_ENGINES),
    define_rule("non_native_partition", "schema", "invalid_objects", "warning",
                "Non-native partitioning",
                "Partitioning on MyISAM, MERGE or CSV tables is not supported.",
                "Convert the table to InnoDB before partitioning it.",
                r"ENGINE\s*=\s*(?:MyISAM|MERGE|CSV)\b[^;]*PARTITION\s+BY",
                check_id="nonNativePartitioning"),
    define_rule("invalid_engine_fk", "schema", "invalid_objects", "error",
                "Foreign key on a non-InnoDB table",
                "MyISAM, MEMORY and ARCHIVE tables do not support foreign keys.",
                "Convert the table to InnoDB.",
                r"FOREIGN\s+KEY[^;]*ENGINE\s*=\s*(?:MyISAM|MEMORY|ARCHIVE)\b",
                check_id="invalidEngineForeignKey"),
    define_rule("partitioned_tables_in_shared_tablespaces", "schema", "invalid_objects", "error",
                "Partitioned table in a shared tablespace",
                f"A partitioned table is placed in a shared tablespace "
                f"({', '.join(SHARED_TABLESPACES)}), which 8.4 does not support.",
                "Move the table to file-per-table tablespaces or remove the TABLESPACE clause.",
                rf"TABLESPACE\s*=?\s*['\"`]?\s*({_words(SHARED_TABLESPACES)})"
                r"['\"`]?[^;]*PARTITION\s+BY",
                fix=_fix_shared_tablespace, check_id="partitionedTablesInSharedTablespaces",
                doc_link=DOC_PARTITIONING),
    define_rule("non_native_partition_engine", "schema", "invalid_objects", "warning",
                "Partition uses a non-native engine",
                f"Partitions on {', '.join(NON_NATIVE_PARTITION_ENGINES)} are not supported.",
                "Change the partitions to InnoDB.",
                rf"PARTITION\s+BY[^;]*ENGINE\s*=\s*({_words(NON_NATIVE_PARTITION_ENGINES)})\b",
                fix=_fix_engine, check_id="nonNativePartitioning", doc_link=DOC_PARTITIONING),
]

_OBJECT_RULES = [
    define_rule("year2", "schema", "invalid_objects", "error",
                "YEAR(2) data type",
                "YEAR(2) is no longer supported and is converted to YEAR(4).",
                "Change the column to YEAR.",
                r"\bYEAR\(2\)",
                fix=_fix_year2, check_id="oldTemporal"),
    define_rule("utf8_charset", "schema", "invalid_objects", "warning",
                "utf8 (utf8mb3) character set",
                "utf8 is an alias of the deprecated utf8mb3 character set.",
                "Convert the table to utf8mb4.",
                r"CHARSET\s*=\s*utf8(?!\w)",
                fix=_fix_convert_utf8mb4, check_id="utf8mb3", doc_link=DOC_CHARSET),
    define_rule("utf8mb3_explicit", "schema", "invalid_objects", "warning",
                "utf8mb3 character set",
                "utf8mb3 stores at most 3 bytes per character and cannot hold emoji.",
                "Convert the table to utf8mb4.",
                r"CHARSET\s*=\s*utf8mb3\b",
                fix=_fix_convert_utf8mb4, check_id="utf8mb3", doc_link=DOC_CHARSET),
    define_rule("zerofill", "schema", "invalid_objects", "warning",
                "ZEROFILL attribute",
                "ZEROFILL is deprecated since 8.0.17.",
                "Pad numbers in the application instead.",
                r"`?\w+`?\s+\w+(?:\(\d+\))?\s+(?:UNSIGNED\s+)?ZEROFILL\b",
                fix=_fix_zerofill, check_id="zerofill"),
    define_rule("float_precision", "schema", "invalid_objects", "warning",
                "FLOAT(M,D) / DOUBLE(M,D)",
                "The FLOAT(M,D) and DOUBLE(M,D) syntax is deprecated.",
                "Use DECIMAL(M,D).",
                r"\b(?:FLOAT|DOUBLE)\(\d+,\s*\d+\)",
                fix=_fix_float_precision, check_id="floatPrecision"),
    define_rule("int_display_width", "schema", "invalid_objects", "info",
                "Integer display width",
                "Integer display widths are deprecated since 8.0.17.",
                "Write INT instead of INT(11).",
                r"\b(?:TINYINT|SMALLINT|MEDIUMINT|INT|INTEGER|BIGINT)\(\d+\)"
                r"(?!\s*(?:UNSIGNED\s+)?ZEROFILL)",
                check_id="intDisplayWidth"),
    define_rule("latin1", "schema", "invalid_objects", "warning",
                "latin1 or other legacy character set",
                "The 8.4 default character set is utf8mb4.",
                "Consider converting to utf8mb4.",
                r"CHARSET\s*=\s*latin1\b",
                fix=_fix_convert_utf8mb4, check_id="latin1Charset"),
    define_rule("removed_function", "query", "invalid_objects", "error",
                "Removed function",
                f"These functions were removed: {', '.join(REMOVED_FUNCTIONS_84)}.",
                "Use replacements: PASSWORD() -> SHA2(), ENCRYPT() -> AES_ENCRYPT().",
                rf"\b({_words(REMOVED_FUNCTIONS_84)})\s*\(",
                check_id="removedFunctions", doc_link=DOC_REMOVED),
    define_rule("sql_calc_found_rows", "query", "invalid_objects", "warning",
                "SQL_CALC_FOUND_ROWS",
                "SQL_CALC_FOUND_ROWS is deprecated since 8.0.17.",
                "Run a separate COUNT(*) query.",
                r"\bSQL_CALC_FOUND_ROWS\b",
                check_id="removedFunctions"),
    define_rule("deprecated_function_84", "query", "invalid_objects", "warning",
                "Deprecated function",
                f"These functions are deprecated: {', '.join(DEPRECATED_FUNCTIONS_84)}.",
                "Run a separate COUNT(*) query instead of FOUND_ROWS().",
                rf"\b({_words(DEPRECATED_FUNCTIONS_84)})\s*\(",
                fix=_fix_found_rows, check_id="removedFunctions"),
    define_rule("obsolete_sql_mode", "config", "invalid_objects", "error",
                "Obsolete SQL mode",
                f"These SQL modes were removed: {', '.join(OBSOLETE_SQL_MODES)}.",
                "Remove them from sql_mode.",
                rf"^sql_mode\s*=.*\b({_words(OBSOLETE_SQL_MODES)})\b",
                check_id="obsoleteSqlModeFlags"),
    define_rule("maxdb_sql_mode", "config", "invalid_objects", "error",
                "MAXDB SQL mode",
                "The MAXDB SQL mode was removed in 8.0.",
                "Remove MAXDB from sql_mode.",
                r"^sql_mode\s*=.*\bMAXDB\b",
                check_id="maxdbSqlModeFlags"),
    define_rule("groupby_asc_desc", "query", "invalid_objects", "error",
                "GROUP BY ... ASC/DESC",
                "Sorting inside GROUP BY was removed in 8.0.",
                "Put the sort order in ORDER BY.",
                r"GROUP\s+BY\s+[^;()]*?\b(?:ASC|DESC)\b(?!\s*\))",
                fix=_fix_groupby_order, check_id="groupbyAscSyntax"),
    define_rule("mysql_schema_conflict", "schema", "invalid_objects", "error",
                "Table name clashes with the mysql schema",
                "The table name matches a data dictionary table in the mysql schema.",
                "Rename the table.",
                rf"CREATE\s+TABLE\s+(?:`?mysql`?\.)?`?({_words(MYSQL_SCHEMA_TABLES)})`?\s*\(",
                check_id="mysqlSchema"),
    define_rule("fk_name_length", "schema", "invalid_objects", "error",
                "Foreign key name too long",
                f"Foreign key names are limited to {FOREIGN_KEY_NAME_MAX_LENGTH} characters.",
                "Shorten the constraint name.",
                rf"CONSTRAINT\s+`?(\w{{{FOREIGN_KEY_NAME_MAX_LENGTH + 1},}})`?\s+FOREIGN\s+KEY",
                check_id="foreignKeyLength"),
    define_rule("enum_element_length", "schema", "invalid_objects", "info",
                "ENUM element length",
                f"Each ENUM element is limited to {ENUM_ELEMENT_MAX_LENGTH} characters.",
                f"Keep ENUM elements within {ENUM_ELEMENT_MAX_LENGTH} characters.",
                r"\bENUM\s*\('[^)]{" + str(ENUM_ELEMENT_MAX_LENGTH) + r",}",
                check_id="enumSetElementLength"),
    define_rule("fts_tablename", "schema", "invalid_objects", "warning",
                "Table name uses the FTS_ prefix",
                "FTS_ names are reserved for InnoDB full-text auxiliary tables.",
                "Rename the table.",
                rf"CREATE\s+TABLE\s+`?(?:{_words(FTS_TABLE_PREFIXES)})",
                check_id="ftsInTablename"),
    define_rule("old_geometry_type", "schema", "invalid_objects", "info",
                "GEOMETRYCOLLECTION spelling",
                "GEOMETRYCOLLECTION is the legacy spelling of GeometryCollection.",
                "Use GeometryCollection.",
                r"\bGEOMETRYCOLLECTION\b(?!\s*EMPTY)",
                check_id="oldGeometryTypes"),
    define_rule("generated_column_function", "schema", "invalid_objects", "warning",
                "Generated column uses a function whose result type changed",
                "These functions infer result types differently in generated columns: "
                + ", ".join(CHANGED_FUNCTIONS_IN_GENERATED_COLUMNS) + ".",
                "Run CHECK TABLE ... FOR UPGRADE and rebuild the column if needed.",
                r"(?:GENERATED\s+ALWAYS\s+)?\bAS\s*\([^;]*?\b("
                + _words(CHANGED_FUNCTIONS_IN_GENERATED_COLUMNS) + r")\s*\(",
                check_id="changedFunctionsInGeneratedColumns"),
    define_rule("blob_text_default", "schema", "invalid_objects", "error",
                "BLOB/TEXT/GEOMETRY/JSON column with a literal default",
                "BLOB, TEXT, GEOMETRY and JSON columns cannot have literal defaults.",
                "Remove the DEFAULT clause or use an expression default.",
                r"\b(?:TINYBLOB|MEDIUMBLOB|LONGBLOB|BLOB|TINYTEXT|MEDIUMTEXT|LONGTEXT|TEXT|"
                r"GEOMETRY|POINT|LINESTRING|POLYGON|JSON)\s+"
                r"(?:NOT\s+NULL\s+)?DEFAULT\s+(?!NULL\b|\()",
                check_id="columnsWhichCannotHaveDefaults"),
    define_rule("dollar_sign_name", "schema", "invalid_objects", "warning",
                "Object name starts with $",
                "Identifiers starting with $ may be restricted in future versions.",
                "Use a name without a leading $.",
                r"CREATE\s+(?:TABLE|VIEW|PROCEDURE|FUNCTION|TRIGGER)\s+`\$\w*`",
                check_id="dollarSignName"),
    define_rule("partition_shared_tablespace", "schema", "invalid_objects", "error",
                "Partition in a shared tablespace",
                "Partitions cannot be stored in the mysql, innodb_system or "
                "innodb_temporary tablespaces.",
                "Use file-per-table or a general tablespace.",
                r"\bPARTITION\b[^;]*TABLESPACE\s*=\s*`?(?:mysql|innodb_system|innodb_temporary)\b",
                check_id="partitionedTablesInSharedTablespaces"),
    define_rule("index_too_large", "schema", "invalid_objects", "info",
                "Index key size needs checking",
                "InnoDB limits index keys to 3072 bytes; under utf8mb4 a full VARCHAR(769) "
                "or wider column cannot be indexed.",
                "Use a prefix index or narrow the column.",
                r"\b(?:VARCHAR|CHAR)\((?:769|7[7-9]\d|[89]\d\d|\d{4,})\)[^;]*?"
                r"\b(?:PRIMARY\s+KEY|UNIQUE|INDEX|KEY)\b",
                check_id="indexTooLarge", doc_link=DOC_INNODB_LIMITS),
    define_rule("empty_dot_table_syntax", "query", "invalid_objects", "warning",
                "._tableName_ syntax",
                "A routine uses the deprecated .table syntax without a schema name.",
                "Qualify the table with its schema name.",
                r"(?:FROM|JOIN|INTO|UPDATE)\s+\.\s*`?\w+`?",
                check_id="emptyDotTableSyntax"),
    define_rule("deprecated_temporal_delimiter", "schema", "invalid_objects", "warning",
                "Deprecated temporal delimiter in partitioning",
                "The partition expression uses a deprecated date delimiter form.",
                "Use standard date functions or INTERVAL.",
                r"PARTITION\s+BY\s+RANGE\s*\(\s*(?:YEAR|MONTH|DAY|TO_DAYS|TO_SECONDS)\s*"
                r"\([^)]+\)\s*/\s*\d+",
                check_id="deprecatedTemporalDelimiter"),
    define_rule("innodb_row_format", "schema", "invalid_objects", "info",
                "REDUNDANT/COMPACT row format",
                "DYNAMIC or COMPRESSED row formats are recommended; REDUNDANT and COMPACT "
                "limit index prefixes to 767 bytes.",
                "Use ROW_FORMAT=DYNAMIC.",
                r"ROW_FORMAT\s*=\s*(?:REDUNDANT|COMPACT)\b",
                check_id="innodbRowFormat"),
    define_rule("partition_prefix_key", "schema", "invalid_objects", "error",
                "Partition key on a prefix-indexed column",
                "Partitioning by KEY on columns with prefix indexes was deprecated in "
                "8.0.21 and is removed.",
                "Partition by columns without prefix indexes.",
                r"PARTITION\s+BY\s+(?:LINEAR\s+)?KEY\s*\([^)]*\(\d+\)[^)]*\)",
                check_id="partitionsWithPrefixKeys"),
    define_rule("fk_non_unique_index", "schema", "invalid_objects", "info",
                "Foreign key reference needs checking",
                "A foreign key must reference a PRIMARY KEY or UNIQUE index.",
                "Make sure the referenced columns carry such an index.",
                r"FOREIGN\s+KEY\s*\([^)]+\)\s*REFERENCES\s+[^(;]+\([^)]+\)",
                check_id="foreignKeyReferences", doc_link=DOC_FOREIGN_KEYS),
]

_DATA_RULES = [
    define_rule("enum_empty_value", "data", "data_integrity", "error",
                "Empty string in ENUM column",
                "An ENUM column holds an empty string, which strict mode rejects.",
                "Use a defined ENUM value or make the column nullable.",
                predicate=is_enum_empty, fix=_fix_enum_empty),
    define_rule("enum_numeric_index", "data", "data_integrity", "warning",
                "ENUM value stored by index",
                "A numeric literal stored in an ENUM column is read as an element "
                "index and changes meaning if the element order changes.",
                "Store ENUM values as strings.",
                predicate=is_enum_numeric),
    define_rule("data_4byte_chars", "data", "data_integrity", "warning",
                "4-byte UTF-8 characters",
                "The data contains emoji or other 4-byte UTF-8 characters that "
                "utf8mb3 cannot store.",
                "Convert the table to utf8mb4.",
                fix=_fix_table_utf8mb4, doc_link=DOC_CHARSET),
    define_rule("data_null_byte", "data", "data_integrity", "error",
                "NUL byte in data",
                "A value contains a NUL byte (\\0).",
                "Strip the NUL bytes or store the value in a BLOB column.",
                fix=_fix_null_byte),
    define_rule("timestamp_out_of_range", "data", "data_integrity", "error",
                "TIMESTAMP out of range",
                "TIMESTAMP holds only 1970-01-01 00:00:01 to 2038-01-19 03:14:07 UTC.",
                "Change the column to DATETIME.",
                predicate=is_timestamp_out_of_range, fix=_fix_timestamp_range),
]

_REGISTRY_RULES = [
    define_rule("fk_non_unique_ref", "registry", "invalid_objects", "error",
                "Foreign key references columns without a unique index",
                "The referenced columns are not the leading columns of a PRIMARY KEY "
                "or UNIQUE index; 8.4 rejects such foreign keys by default.",
                "Add a UNIQUE index on the referenced columns.",
                fix=_fix_unique_index, check_id="foreignKeyReferences", doc_link=DOC_FOREIGN_KEYS),
    define_rule("fk_ref_table_not_found", "registry", "invalid_objects", "info",
                "Referenced table not found in this export",
                "The foreign key references a table that none of the analysed files define.",
                "Check that the referenced table exists on the target server.",
                check_id="foreignKeyReferences"),
    define_rule("index_too_large_calculated", "registry", "invalid_objects", "error",
                "Index key exceeds the maximum key length",
                "The computed index key size exceeds the engine's maximum key length.",
                "Use prefix lengths or narrower columns.",
                fix=_fix_index_prefix, check_id="indexTooLarge", doc_link=DOC_INNODB_LIMITS),
    define_rule("enum_element_length_exceeded", "registry", "invalid_objects", "error",
                "ENUM/SET element longer than 255 characters",
                f"ENUM and SET elements are limited to {ENUM_ELEMENT_MAX_LENGTH} characters.",
                "Shorten the element or use a lookup table.",
                check_id="enumSetElementLength"),
    define_rule("non_native_partition_parsed", "registry", "invalid_objects", "warning",
                "Partitioned table on a non-native engine",
                "The table is partitioned with an engine that has no native partitioning.",
                "Convert the table to InnoDB.",
                fix=_fix_engine, check_id="nonNativePartitioning", doc_link=DOC_PARTITIONING),
    define_rule("linear_partition", "registry", "invalid_objects", "info",
                "LINEAR partitioning",
                "LINEAR HASH/KEY partitioning distributes rows unevenly and is rarely intended.",
                "Review whether plain HASH/KEY partitioning fits better.",
                doc_link=DOC_PARTITIONING),
    define_rule("removed_engine", "registry", "invalid_objects", "error",
                "Storage engine no longer exists",
                f"The table uses a removed engine ({', '.join(REMOVED_ENGINES)}).",
                "Recreate the table with ENGINE=InnoDB.",
                fix=_fix_engine, check_id="engineMixup", doc_link=DOC_ENGINES),
    define_rule("column_utf8mb3_charset", "registry", "invalid_objects", "warning",
                "Column uses utf8 (utf8mb3)",
                "The column overrides the table character set with utf8mb3.",
                "Convert the column to utf8mb4.",
                fix=_fix_column_utf8mb4, check_id="utf8mb3", doc_link=DOC_CHARSET),
    define_rule("zero_date_default", "registry", "new_default_vars", "error",
                "Zero date column default",
                "A temporal column defaults to a zero date, which NO_ZERO_DATE rejects.",
                "Drop the default or use a real date.",
                fix=_fix_drop_default, check_id="zeroDates"),
    define_rule("partition_shared_tablespace_parsed", "registry", "invalid_objects", "error",
                "Partitioned table stored in a shared tablespace",
                "Partitions may not live in the mysql, innodb_system or innodb_temporary "
                "tablespaces.",
                "Move the partitions to file-per-table tablespaces.",
                fix=_fix_shared_tablespace, check_id="partitionedTablesInSharedTablespaces",
                doc_link=DOC_PARTITIONING),
    define_rule("table_redeclared", "registry", "invalid_objects", "info",
                "Table declared more than once",
                "The same table name is declared again with a different engine or "
                "character set; only the first declaration drives column types.",
                "Check which definition is the one being migrated."),
    define_rule("sysvar_new_default", "registry", "new_default_vars", "warning",
                "Server still runs on an 8.0 default",
                "The variable is at its 8.0 default, which changes after the upgrade.",
                "Set the variable explicitly if the 8.0 behaviour must be kept.",
                check_id="sysVarsNewDefaults"),
]


def build_catalog(rules: Iterable[Rule]) -> Tuple[Rule, ...]:
    """Validate and freeze a rule list."""
    seen = set()
    catalog = []
    for rule in rules:
        if rule.id in seen:
            raise RuleCatalogError(f"duplicate rule id: {rule.id}")
        seen.add(rule.id)
        if rule.kind not in KINDS:
            raise RuleCatalogError(f"rule {rule.id}: unknown kind {rule.kind!r}")
        if rule.category not in CATEGORIES:
            raise RuleCatalogError(f"rule {rule.id}: unknown category {rule.category!r}")
        if rule.severity not in SEVERITIES:
            raise RuleCatalogError(f"rule {rule.id}: unknown severity {rule.severity!r}")
        if rule.kind in TEXT_KINDS and rule.pattern is None:
            raise RuleCatalogError(f"rule {rule.id}: text rules need a pattern")
        if (rule.kind == "data" and rule.predicate is None
                and rule.id not in EMBEDDED_DATA_RULES):
            raise RuleCatalogError(f"rule {rule.id}: data rules need a predicate")
        catalog.append(rule)
    return tuple(catalog)


RULES: Tuple[Rule, ...] = build_catalog(
    _SYSVAR_RULES + _KEYWORD_RULES + _AUTH_RULES + _PRIVILEGE_RULES
    + _STORAGE_RULES + _OBJECT_RULES + _DATA_RULES + _REGISTRY_RULES)
RULES_BY_ID: Dict[str, Rule] = {r.id: r for r in RULES}


def get_rule(rule_id: str) -> Rule:
    return RULES_BY_ID[rule_id]


def rules_for(kinds: Iterable[str], rules: Iterable[Rule] = RULES) -> List[Rule]:
    """Rules applicable to the given kinds, in catalog order."""
    wanted = set(kinds)
    return [r for r in rules if r.kind in wanted]
