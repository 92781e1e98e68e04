"""MySQL 8.0 -> 8.4 version knowledge used by the rule catalog and validators.

Reference: https://dev.mysql.com/doc/mysql-shell/8.4/en/mysql-shell-utilities-upgrade.html
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

TARGET_VERSION = "8.4"
SOURCE_VERSION = "8.0.x"

# Engine tunables
CONTEXT_WINDOW = 300
CODE_SNIPPET_LIMIT = 200
DATA_SCAN_LINE_LIMIT = 1000
ENUM_ELEMENT_MAX_LENGTH = 255
FOREIGN_KEY_NAME_MAX_LENGTH = 64
INNODB_MAX_KEY_LENGTH = 3072
INNODB_COMPACT_MAX_KEY_LENGTH = 767
MYISAM_MAX_KEY_LENGTH = 1000
DEFAULT_CHARSET = "utf8mb4"
TIMESTAMP_MIN_YEAR = 1970
TIMESTAMP_MAX_YEAR = 2038

SKIP_FILE_PREFIXES = ("load-progress", "dump-progress")
SKIP_FILE_NAMES = ("@.done.json",)
CONFIG_SUFFIXES = (".cnf", ".ini")
DATA_SUFFIXES = (".tsv", ".txt")

REMOVED_SYS_VARS_84: List[str] = [
    "avoid_temporal_upgrade",
    "binlog_transaction_dependency_tracking",
    "daemon_memcached_enable_binlog",
    "daemon_memcached_engine_lib_name",
    "daemon_memcached_engine_lib_path",
    "daemon_memcached_option",
    "daemon_memcached_r_batch_size",
    "daemon_memcached_w_batch_size",
    "default_authentication_plugin",
    "expire_logs_days",
    "group_replication_ip_whitelist",
    "group_replication_primary_member",
    "group_replication_recovery_complete_at",
    "have_openssl",
    "have_ssl",
    "innodb_api_bk_commit_interval",
    "innodb_api_disable_rowlock",
    "innodb_api_enable_binlog",
    "innodb_api_enable_mdl",
    "innodb_api_trx_level",
    "keyring_encrypted_file_data",
    "keyring_encrypted_file_password",
    "keyring_file_data",
    "keyring_oci_ca_certificate",
    "keyring_oci_compartment",
    "keyring_oci_encryption_endpoint",
    "keyring_oci_key_file",
    "keyring_oci_key_fingerprint",
    "keyring_oci_management_endpoint",
    "keyring_oci_master_key",
    "keyring_oci_secrets_endpoint",
    "keyring_oci_tenancy",
    "keyring_oci_user",
    "keyring_oci_vaults_endpoint",
    "keyring_oci_virtual_vault",
    "language",
    "log_bin_use_v1_row_events",
    "master_info_repository",
    "new",
    "old",
    "old_style_user_limits",
    "relay_log_info_repository",
    "show_old_temporals",
    "slave_rows_search_algorithms",
    "transaction_write_set_extraction",
    "authentication_fido_rp_id",
    "innodb_log_file_size",
    "innodb_log_files_in_group",
]

# variable -> (8.0 default, 8.4 default, what it controls)
SYS_VARS_NEW_DEFAULTS_84: Dict[str, Tuple[Optional[object], object, str]] = {
    "replica_parallel_workers": (0, 4, "parallel replication workers"),
    "innodb_adaptive_hash_index": ("ON", "OFF", "adaptive hash index"),
    "innodb_doublewrite_pages": (None, 128, "doublewrite pages"),
    "innodb_flush_method": ("fsync", "O_DIRECT", "InnoDB flush method"),
    "innodb_io_capacity": (200, 10000, "I/O capacity"),
    "innodb_io_capacity_max": (2000, 20000, "maximum I/O capacity"),
    "innodb_log_buffer_size": (16777216, 67108864, "log buffer size"),
    "innodb_redo_log_capacity": (104857600, 419430400, "redo log capacity"),
    "innodb_change_buffering": ("all", "none", "change buffering"),
    "binlog_transaction_dependency_tracking": ("COMMIT_ORDER", "WRITESET",
                                               "transaction dependency tracking"),
}

NEW_RESERVED_KEYWORDS_84 = ["MANUAL", "PARALLEL", "QUALIFY", "TABLESAMPLE"]

AUTH_PLUGINS_DISABLED = ["mysql_native_password"]
AUTH_PLUGINS_REMOVED = ["authentication_fido", "authentication_fido_client"]
AUTH_PLUGINS_DEPRECATED = ["sha256_password"]
AUTH_PLUGIN_RECOMMENDED = "caching_sha2_password"

REMOVED_FUNCTIONS_84 = ["PASSWORD", "ENCRYPT", "ENCODE", "DECODE",
                        "DES_ENCRYPT", "DES_DECRYPT"]
DEPRECATED_FUNCTIONS_84 = ["FOUND_ROWS", "SQL_CALC_FOUND_ROWS"]

OBSOLETE_SQL_MODES = [
    "DB2", "MAXDB", "MSSQL", "MYSQL323", "MYSQL40", "ORACLE", "POSTGRESQL",
    "NO_FIELD_OPTIONS", "NO_KEY_OPTIONS", "NO_TABLE_OPTIONS",
]

REMOVED_PRIVILEGES_84 = ["SUPER"]

SUPER_REPLACEMENT_PRIVILEGES = [
    "SYSTEM_VARIABLES_ADMIN",
    "BINLOG_ADMIN",
    "CONNECTION_ADMIN",
    "ENCRYPTION_KEY_ADMIN",
    "GROUP_REPLICATION_ADMIN",
    "REPLICATION_SLAVE_ADMIN",
    "ROLE_ADMIN",
    "SET_USER_ID",
    "XA_RECOVER_ADMIN",
    "SYSTEM_USER",
    "PERSIST_RO_VARIABLES_ADMIN",
    "CLONE_ADMIN",
    "BACKUP_ADMIN",
    "RESOURCE_GROUP_ADMIN",
    "RESOURCE_GROUP_USER",
    "APPLICATION_PASSWORD_ADMIN",
    "AUDIT_ADMIN",
    "INNODB_REDO_LOG_ARCHIVE",
    "INNODB_REDO_LOG_ENABLE",
]

DEPRECATED_ENGINES = ["MyISAM", "ARCHIVE", "BLACKHOLE", "MERGE", "FEDERATED",
                      "EXAMPLE", "NDB"]
REMOVED_ENGINES = ["ISAM", "BDB", "BERKELEYDB", "INNOBASE", "MRG_ISAM"]
NON_NATIVE_PARTITION_ENGINES = ["MyISAM", "MERGE", "CSV"]
SHARED_TABLESPACES = ["mysql", "innodb_system", "innodb_temporary"]
FTS_TABLE_PREFIXES = ["FTS_", "fts_"]

CHANGED_FUNCTIONS_IN_GENERATED_COLUMNS = [
    "IF", "IFNULL", "NULLIF", "CASE", "COALESCE", "GREATEST", "LEAST",
    "BIT_AND", "BIT_OR", "BIT_XOR",
]

MYSQL_SCHEMA_TABLES = [
    "catalogs", "check_constraints", "collations", "columns",
    "column_statistics", "dd_properties", "events", "foreign_key_column_usage",
    "foreign_keys", "index_column_usage", "index_partitions", "indexes",
    "innodb_ddl_log", "innodb_dynamic_metadata", "parameter_type_elements",
    "parameters", "resource_groups", "routines", "schemata",
    "st_spatial_reference_systems", "table_partition_values",
    "table_partitions", "table_stats", "tables", "tablespace_files",
    "tablespaces", "triggers", "view_routine_usage", "view_table_usage",
    "column_type_elements",
]

# Maximum bytes per character. Anything missing here is sized at 4.
CHARSET_BYTES_PER_CHAR: Dict[str, int] = {
    "utf8mb4": 4,
    "utf16": 4,
    "utf16le": 4,
    "utf32": 4,
    "utf8": 3,
    "utf8mb3": 3,
    "ucs2": 2,
    "big5": 2,
    "gbk": 2,
    "euckr": 2,
    "gb2312": 2,
    "sjis": 2,
    "cp932": 2,
    "eucjpms": 3,
    "ujis": 3,
    "gb18030": 4,
    "latin1": 1,
    "latin2": 1,
    "latin5": 1,
    "latin7": 1,
    "ascii": 1,
    "binary": 1,
    "cp1250": 1,
    "cp1251": 1,
    "cp1256": 1,
    "cp1257": 1,
    "cp850": 1,
    "cp852": 1,
    "cp866": 1,
    "dec8": 1,
    "greek": 1,
    "hebrew": 1,
    "hp8": 1,
    "keybcs2": 1,
    "koi8r": 1,
    "koi8u": 1,
    "macce": 1,
    "macroman": 1,
    "swe7": 1,
    "tis620": 1,
    "armscii8": 1,
    "geostd8": 1,
}
FOUR_BYTE_CHARSETS = frozenset(
    name for name, size in CHARSET_BYTES_PER_CHAR.items() if size == 4)

CATEGORY_LABELS = {
    "removed_sys_vars": "Removed System Variables",
    "new_default_vars": "New Default Values",
    "reserved_keywords": "Reserved Keywords",
    "authentication": "Authentication",
    "invalid_privileges": "Invalid Privileges",
    "invalid_objects": "Invalid Objects",
    "data_integrity": "Data Integrity",
}

DOC_REMOVED = "https://dev.mysql.com/doc/refman/8.4/en/added-deprecated-removed.html"
DOC_KEYWORDS = "https://dev.mysql.com/doc/refman/8.4/en/keywords.html"
DOC_IDENTIFIERS = "https://dev.mysql.com/doc/refman/8.4/en/identifiers.html"
DOC_NATIVE_AUTH = "https://dev.mysql.com/doc/refman/8.4/en/native-pluggable-authentication.html"
DOC_WEBAUTHN = "https://dev.mysql.com/doc/refman/8.4/en/webauthn-pluggable-authentication.html"
DOC_PRIVILEGES = "https://dev.mysql.com/doc/refman/8.4/en/privileges-provided.html"
DOC_ENGINES = "https://dev.mysql.com/doc/refman/8.4/en/storage-engines.html"
DOC_PARTITIONING = "https://dev.mysql.com/doc/refman/8.4/en/partitioning-limitations.html"
DOC_INNODB_LIMITS = "https://dev.mysql.com/doc/refman/8.4/en/innodb-limits.html"
DOC_FOREIGN_KEYS = "https://dev.mysql.com/doc/refman/8.4/en/create-table-foreign-keys.html"
DOC_CHARSET = "https://dev.mysql.com/doc/refman/8.4/en/charset-unicode-utf8mb4.html"


@dataclass(frozen=True)
class ServerCheck:
    """A check that cannot be answered from dump files alone."""
    id: str
    name: str
    description: str
    query: str
    how_to_read: str


SERVER_REQUIRED_CHECKS: List[ServerCheck] = [
    ServerCheck(
        "circularDirectory", "Circular directory references",
        "Tablespace files stored outside the data directory.",
        "SELECT TABLESPACE_NAME, FILE_NAME, FILE_TYPE\n"
        "FROM INFORMATION_SCHEMA.FILES\n"
        "WHERE FILE_NAME NOT LIKE CONCAT(@@datadir, '%')\n"
        "  AND ENGINE = 'InnoDB';",
        "Any row is a tablespace file outside the data directory."),
    ServerCheck(
        "engineMixup", "Engine mix-up",
        "Tables whose reported engine differs from the expected one.",
        "SELECT TABLE_SCHEMA, TABLE_NAME, ENGINE, CREATE_OPTIONS\n"
        "FROM INFORMATION_SCHEMA.TABLES\n"
        "WHERE TABLE_SCHEMA NOT IN ('mysql', 'information_schema',"
        " 'performance_schema', 'sys')\n"
        "  AND TABLE_TYPE = 'BASE TABLE';",
        "An ENGINE that is NULL or unexpected needs investigation."),
    ServerCheck(
        "checkTableCommand", "CHECK TABLE FOR UPGRADE",
        "Table integrity as reported by the server.",
        "CHECK TABLE your_database.your_table FOR UPGRADE;\n"
        "-- or: mysqlcheck -u root -p --all-databases --check-upgrade",
        "Any status other than OK must be fixed before upgrading."),
    ServerCheck(
        "authMethodUsage", "Account authentication plugins",
        "Accounts still using mysql_native_password, sha256_password or FIDO.",
        "SELECT User, Host, plugin FROM mysql.user\n"
        "WHERE plugin IN ('mysql_native_password', 'sha256_password',\n"
        "                 'authentication_fido', 'authentication_fido_client');",
        "Save the result and run: dumpcheck check-result authMethodUsage FILE"),
    ServerCheck(
        "sysVarsNewDefaults", "Variables still on 8.0 defaults",
        "Global variables whose default changes in 8.4.",
        "SELECT VARIABLE_NAME, VARIABLE_VALUE\n"
        "FROM performance_schema.global_variables\n"
        "WHERE VARIABLE_NAME IN (" + ", ".join(
            f"'{name}'" for name in SYS_VARS_NEW_DEFAULTS_84) + ");",
        "Save the result and run: dumpcheck check-result sysVarsNewDefaults FILE"),
    ServerCheck(
        "orphanedObjects", "Orphaned routines and triggers",
        "Routines and triggers referencing tables that no longer exist.",
        "SELECT TRIGGER_SCHEMA, TRIGGER_NAME, EVENT_OBJECT_TABLE\n"
        "FROM INFORMATION_SCHEMA.TRIGGERS\n"
        "WHERE TRIGGER_SCHEMA NOT IN ('mysql', 'information_schema',"
        " 'performance_schema', 'sys');",
        "Compare EVENT_OBJECT_TABLE against the tables present."),
]
