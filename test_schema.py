"""Tests for CREATE TABLE extraction and the table registry."""
from dumpcheck.schema import (
    ColumnDefinition,
    SchemaRegistry,
    TableDefinition,
    charset_from_collation,
    extract_tables,
    parse_create_table,
)

ORDERS = """CREATE TABLE `orders` (
  `id` int NOT NULL AUTO_INCREMENT,
  `note` varchar(255) CHARACTER SET utf8mb3 DEFAULT 'a, b',
  `status` enum('new','done') NOT NULL DEFAULT 'new',
  `user_id` int,
  PRIMARY KEY (`id`),
  KEY `idx_note` (`note`(100)),
  CONSTRAINT `fk_user` FOREIGN KEY (`user_id`) REFERENCES `users` (`id`) ON DELETE CASCADE
) ENGINE=InnoDB DEFAULT CHARSET=latin1;"""


def test_columns_parsed():
    table = parse_create_table(ORDERS, "dump.sql")
    assert table.name == "orders"
    assert table.source == "dump.sql"
    assert [c.name for c in table.columns] == ["id", "note", "status", "user_id"]
    id_col = table.column("ID")
    assert not id_col.nullable
    assert "AUTO_INCREMENT" in id_col.extra
    note = table.column("note")
    assert note.type == "varchar(255)"
    assert note.length == 255
    assert note.charset == "utf8mb3"
    assert note.default == "'a, b'"
    assert table.column("status").elements == ["new", "done"]


def test_indexes_and_foreign_keys():
    table = parse_create_table(ORDERS)
    assert [(i.name, i.kind) for i in table.indexes] == [("PRIMARY", "PRIMARY"),
                                                          ("idx_note", "INDEX")]
    assert table.indexes[0].unique
    assert table.indexes[1].columns[0].prefix_length == 100
    fk = table.foreign_keys[0]
    assert fk.name == "fk_user"
    assert fk.columns == ["user_id"]
    assert fk.ref_table == "users"
    assert fk.ref_columns == ["id"]
    assert fk.on_delete == "CASCADE"


def test_table_options():
    table = parse_create_table(ORDERS)
    assert table.engine == "InnoDB"
    assert table.charset == "latin1"
    assert table.charset_of(table.column("status")) == "latin1"
    assert table.charset_of(table.column("note")) == "utf8mb3"


def test_quoted_table_options():
    table = parse_create_table(
        "CREATE TABLE q (c VARCHAR(10)) ENGINE=InnoDB DEFAULT CHARSET='utf8mb4' "
        "COLLATE='utf8mb4_bin' COMMENT='CHARSET=latin1 TABLESPACE=x'")
    assert table.charset == "utf8mb4"
    assert table.collation == "utf8mb4_bin"
    assert table.tablespace is None


def test_unnamed_foreign_key_gets_server_name():
    table = parse_create_table(
        "CREATE TABLE child (pid INT, FOREIGN KEY (pid) REFERENCES shop.parent (id))")
    assert table.foreign_keys[0].name == "child_ibfk_1"
    assert table.foreign_keys[0].ref_display == "shop.parent"


def test_inline_keys():
    table = parse_create_table("CREATE TABLE u (id INT PRIMARY KEY, email VARCHAR(80) UNIQUE)")
    assert [(i.name, i.kind) for i in table.indexes] == [("PRIMARY", "PRIMARY"),
                                                          ("email", "UNIQUE")]


def test_linear_hash_partitions():
    table = parse_create_table(
        "CREATE TABLE h (id INT) ENGINE=InnoDB PARTITION BY LINEAR HASH (id) PARTITIONS 3;")
    assert table.partitioned
    assert table.partition_method == "LINEAR HASH"
    assert table.partition_expression == "id"
    assert [p.name for p in table.partitions] == ["p0", "p1", "p2"]


def test_range_partitions_in_version_comment():
    table = parse_create_table(
        "CREATE TABLE r (d INT)\n/*!50100 PARTITION BY RANGE (d)\n"
        "(PARTITION p0 VALUES LESS THAN (10) ENGINE = MyISAM,\n"
        " PARTITION pmax VALUES LESS THAN MAXVALUE ENGINE = MyISAM) */")
    assert table.engine is None
    assert table.partition_method == "RANGE"
    assert [(p.name, p.values, p.engine) for p in table.partitions] == [
        ("p0", "LESS THAN (10)", "MyISAM"),
        ("pmax", "LESS THAN MAXVALUE", "MyISAM"),
    ]


def test_malformed_clause_is_skipped():
    table = parse_create_table("CREATE TABLE m (id INT, KEY k, name VARCHAR(10))")
    assert [c.name for c in table.columns] == ["id", "name"]
    assert table.indexes == []


def test_create_table_like_is_ignored():
    assert parse_create_table("CREATE TABLE b LIKE a") is None
    assert parse_create_table("CREATE VIEW v AS SELECT 1") is None


def test_extract_tables():
    tables = extract_tables(ORDERS + "\nCREATE TABLE IF NOT EXISTS `db`.`x` (a INT);")
    assert [(t.schema, t.name) for t in tables] == [(None, "orders"), ("db", "x")]


def test_charset_resolution():
    assert charset_from_collation("utf8mb4_0900_ai_ci") == "utf8mb4"
    assert charset_from_collation(None) is None
    table = TableDefinition(name="t", collation="utf8mb3_general_ci")
    assert table.table_charset() == "utf8mb3"
    assert TableDefinition(name="t").table_charset() == "utf8mb4"
    bin_col = ColumnDefinition(name="c", type="varchar(10)", collation="utf8mb4_bin")
    assert table.charset_of(bin_col) == "utf8mb4"
    nchar = ColumnDefinition(name="n", type="nchar(10)")
    assert TableDefinition(name="t", charset="latin1").charset_of(nchar) == "utf8mb3"


def test_registry_first_declaration_wins():
    registry = SchemaRegistry()
    first = TableDefinition(name="Users", engine="InnoDB", source="a.sql")
    second = TableDefinition(name="users", engine="MyISAM", source="b.sql")
    assert registry.register(first) == []
    assert registry.register(second) == [first]
    assert registry.get("USERS") is first
    assert registry.declarations("users") == [first, second]
    assert "users" in registry
    assert "ghost" not in registry
    assert registry.get("ghost") is None
    assert list(registry) == [first, second]
    assert len(registry) == 2
