"""Tests for the registry-wide checks."""
from dumpcheck.analyzer import Analyzer, ExportFile
from dumpcheck.crossref import bytes_per_char, index_byte_size, max_key_length
from dumpcheck.schema import TableDefinition, parse_create_table


def lint(*files):
    return Analyzer().run([ExportFile(name, text) for name, text in files]).findings


def by_rule(findings, rule_id):
    return [f for f in findings if f.rule_id == rule_id]


def test_index_at_the_limit_passes():
    findings = lint(("dump.sql", "CREATE TABLE t (c VARCHAR(768), KEY k (c)) "
                                 "DEFAULT CHARSET=utf8mb4;"))
    assert by_rule(findings, "index_too_large_calculated") == []


def test_index_over_the_limit():
    findings = lint(("dump.sql", "CREATE TABLE t (c VARCHAR(800), KEY k (c)) "
                                 "DEFAULT CHARSET=utf8mb4;"))
    hits = by_rule(findings, "index_too_large_calculated")
    assert len(hits) == 1
    assert hits[0].severity == "error"
    assert "3200" in hits[0].description
    assert hits[0].fix_query == "ALTER TABLE `t` DROP INDEX `k`, ADD INDEX `k` (`c`(768));"


def test_composite_index_names_every_column():
    findings = lint(("dump.sql", "CREATE TABLE t (a VARCHAR(400), b VARCHAR(400), "
                                 "UNIQUE KEY uk (a, b)) DEFAULT CHARSET=utf8mb4;"))
    hits = by_rule(findings, "index_too_large_calculated")
    assert len(hits) == 1
    assert "`a`" in hits[0].description and "`b`" in hits[0].description
    assert hits[0].fix_query is None


def test_prefix_length_shrinks_key():
    findings = lint(("dump.sql", "CREATE TABLE t (c VARCHAR(2000), KEY k (c(191))) "
                                 "DEFAULT CHARSET=utf8mb4;"))
    assert by_rule(findings, "index_too_large_calculated") == []


def test_latin1_index_is_smaller():
    findings = lint(("dump.sql", "CREATE TABLE t (c VARCHAR(2000), KEY k (c)) "
                                 "DEFAULT CHARSET=latin1;"))
    assert by_rule(findings, "index_too_large_calculated") == []


def test_key_length_limits():
    assert max_key_length(TableDefinition(name="t")) == 3072
    assert max_key_length(TableDefinition(name="t", engine="MyISAM")) == 1000
    assert max_key_length(TableDefinition(name="t", row_format="COMPACT")) == 767
    assert bytes_per_char("latin1") == 1
    assert bytes_per_char("mystery") == 4


def test_index_byte_size_parts():
    table = parse_create_table(
        "CREATE TABLE t (id INT, name VARCHAR(50), body TEXT, KEY k (id, name, body(10))) "
        "CHARSET=utf8mb3")
    total, parts = index_byte_size(table, table.indexes[0])
    assert parts == [("name", 150, 3), ("body", 30, 3)]
    assert total == 180


PARENT = "CREATE TABLE parent (id INT PRIMARY KEY, code VARCHAR(10));"


def test_fk_to_primary_key_is_fine():
    findings = lint(("a.sql", PARENT),
                    ("b.sql", "CREATE TABLE child (pid INT, "
                              "FOREIGN KEY (pid) REFERENCES parent (id));"))
    assert by_rule(findings, "fk_non_unique_ref") == []
    assert by_rule(findings, "fk_ref_table_not_found") == []


def test_fk_to_non_unique_column():
    findings = lint(("a.sql", PARENT),
                    ("b.sql", "CREATE TABLE child (pcode VARCHAR(10), "
                              "FOREIGN KEY (pcode) REFERENCES parent (code));"))
    hits = by_rule(findings, "fk_non_unique_ref")
    assert len(hits) == 1
    assert hits[0].location == "b.sql - Table: child"
    assert hits[0].fix_query == \
        "ALTER TABLE `parent` ADD UNIQUE INDEX `uk_parent_code` (`code`);"


def test_fk_resolved_regardless_of_file_order():
    findings = lint(("b.sql", "CREATE TABLE child (pid INT, "
                              "FOREIGN KEY (pid) REFERENCES parent (id));"),
                    ("a.sql", PARENT))
    assert by_rule(findings, "fk_ref_table_not_found") == []


def test_fk_to_missing_table():
    findings = lint(("b.sql", "CREATE TABLE child (pid INT, "
                              "FOREIGN KEY (pid) REFERENCES ghost (id));"))
    hits = by_rule(findings, "fk_ref_table_not_found")
    assert len(hits) == 1
    assert hits[0].severity == "info"
    assert "ghost" in hits[0].description


def test_long_enum_element():
    long_value = "x" * 260
    findings = lint(("dump.sql", f"CREATE TABLE e (v ENUM('{long_value}','b'));"))
    hits = by_rule(findings, "enum_element_length_exceeded")
    assert len(hits) == 1
    assert "260" in hits[0].description


def test_emoji_into_utf8_table_across_files():
    schema = ("schema.sql", "CREATE TABLE msg (body VARCHAR(100)) DEFAULT CHARSET=utf8;")
    data = ("data.sql", "INSERT INTO msg VALUES ('hi \U0001f600');")
    for files in ((schema, data), (data, schema)):
        hits = by_rule(lint(*files), "data_4byte_chars")
        assert len(hits) == 1
        assert hits[0].location == "data.sql - Table: msg, Column: body"
        assert "utf8" in hits[0].description
        assert hits[0].fix_query.startswith("ALTER TABLE `msg` CONVERT TO CHARACTER SET utf8mb4")


def test_emoji_charset_check_waits_for_every_declaration():
    narrow = ("a.sql", "CREATE TABLE msg (body VARCHAR(100)) DEFAULT CHARSET=utf8;")
    wide = ("b.sql", "CREATE TABLE msg (body VARCHAR(100)) DEFAULT CHARSET=utf8mb4;")
    data = ("c.sql", "INSERT INTO msg VALUES ('hi \U0001f600');")
    for files in ((narrow, wide, data), (narrow, data, wide), (data, narrow, wide)):
        assert by_rule(lint(*files), "data_4byte_chars") == []


def test_emoji_into_utf8mb4_table():
    findings = lint(("schema.sql", "CREATE TABLE msg (body VARCHAR(100)) "
                                   "DEFAULT CHARSET=utf8mb4;"),
                    ("data.sql", "INSERT INTO msg VALUES ('hi \U0001f600');"))
    assert by_rule(findings, "data_4byte_chars") == []


def test_emoji_into_unknown_table():
    findings = lint(("data.sql", "INSERT INTO ghost VALUES ('\U0001f600');"))
    hits = by_rule(findings, "data_4byte_chars")
    assert len(hits) == 1
    assert "could not be verified" in hits[0].description


def test_myisam_partitioning():
    findings = lint(("dump.sql", "CREATE TABLE p (id INT) ENGINE=MyISAM "
                                 "PARTITION BY HASH (id) PARTITIONS 4;"))
    hits = by_rule(findings, "non_native_partition_parsed")
    assert len(hits) == 1
    assert "MyISAM" in hits[0].description
    assert hits[0].fix_query == "ALTER TABLE `p` ENGINE=InnoDB;"


def test_linear_partitioning():
    findings = lint(("dump.sql", "CREATE TABLE p (id INT) "
                                 "PARTITION BY LINEAR KEY (id) PARTITIONS 2;"))
    assert len(by_rule(findings, "linear_partition")) == 1
    assert by_rule(findings, "non_native_partition_parsed") == []


def test_partition_in_shared_tablespace():
    findings = lint(("dump.sql", "CREATE TABLE p (id INT) TABLESPACE innodb_system "
                                 "PARTITION BY HASH (id) PARTITIONS 2;"))
    assert len(by_rule(findings, "partition_shared_tablespace_parsed")) == 1


def test_removed_engine():
    findings = lint(("dump.sql", "CREATE TABLE old_t (id INT) ENGINE=ISAM;"))
    assert len(by_rule(findings, "removed_engine")) == 1


def test_column_level_checks():
    findings = lint(("dump.sql", "CREATE TABLE z (n VARCHAR(10) CHARACTER SET utf8mb3, "
                                 "d DATE NOT NULL DEFAULT '0000-00-00');"))
    utf8 = by_rule(findings, "column_utf8mb3_charset")
    assert len(utf8) == 1
    assert utf8[0].location == "dump.sql - Table: z, Column: n"
    zero = by_rule(findings, "zero_date_default")
    assert len(zero) == 1
    assert zero[0].fix_query == "ALTER TABLE `z` ALTER COLUMN `d` DROP DEFAULT;"
