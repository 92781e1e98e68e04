"""Tests for the dumpcheck rule catalog and pattern rules."""
import pytest

from dumpcheck.analyzer import Analyzer, ExportFile
from dumpcheck.errors import RuleCatalogError
from dumpcheck.rules import (
    RULES,
    RULES_BY_ID,
    Rule,
    build_catalog,
    define_rule,
    get_rule,
    is_enum_empty,
    is_enum_numeric,
    is_timestamp_out_of_range,
    is_zero_date,
    is_zero_datetime,
)


def lint_sql(sql, name="dump.sql"):
    return Analyzer().run([ExportFile(name, sql)]).findings


def test_rule_ids_are_unique():
    assert len(RULES_BY_ID) == len(RULES)


def test_catalog_covers_every_kind():
    kinds = {r.kind for r in RULES}
    assert kinds == {"schema", "query", "config", "data", "registry"}


def test_duplicate_rule_id_rejected():
    rule = get_rule("year2")
    with pytest.raises(RuleCatalogError):
        build_catalog([rule, rule])


def test_bad_pattern_rejected():
    with pytest.raises(RuleCatalogError, match="rule broken"):
        define_rule("broken", "schema", "invalid_objects", "error", "t", "d", "s", r"(")


def test_define_rule_keywords():
    rule = define_rule(rule_id="kw", kind="schema", category="invalid_objects",
                       severity="warning", title="t", description="d", suggestion="s",
                       pattern=r"\bFOO\b")
    assert rule.id == "kw"
    assert rule.pattern.search("select foo")


def test_text_rule_needs_pattern():
    rule = Rule(id="nopattern", kind="schema", category="invalid_objects",
                severity="error", title="t", description="d", suggestion="s")
    with pytest.raises(RuleCatalogError):
        build_catalog([rule])


def test_data_rule_needs_predicate_unless_embedded():
    bare = Rule(id="nopredicate", kind="data", category="data_integrity",
                severity="error", title="t", description="d", suggestion="s")
    with pytest.raises(RuleCatalogError):
        build_catalog([bare])
    assert build_catalog([get_rule("data_null_byte"), get_rule("data_4byte_chars")])


def test_registry_rules_need_no_detector():
    rule = get_rule("fk_non_unique_ref")
    assert rule.pattern is None and rule.predicate is None
    assert build_catalog([rule]) == (rule,)


def test_zero_date_predicates():
    assert is_zero_date("'0000-00-00'", "")
    assert not is_zero_date("'2024-01-01'", "date")
    assert is_zero_datetime("'0000-00-00 00:00:00'", "")
    assert not is_zero_datetime("'0000-00-00'", "")


def test_enum_predicates_need_enum_type():
    assert is_enum_empty("''", "enum('a','b')")
    assert not is_enum_empty("''", "")
    assert not is_enum_empty("''", "varchar(10)")
    assert is_enum_numeric("2", "ENUM('a','b')")
    assert not is_enum_numeric("'2'", "ENUM('a','b')")


def test_timestamp_range_predicate():
    assert is_timestamp_out_of_range("'2040-01-01 00:00:00'", "timestamp")
    assert is_timestamp_out_of_range("'1969-12-31 23:59:59'", "TIMESTAMP")
    assert not is_timestamp_out_of_range("'1999-05-01 10:00:00'", "timestamp")
    assert not is_timestamp_out_of_range("'0000-00-00 00:00:00'", "timestamp")
    assert not is_timestamp_out_of_range("'2040-01-01 00:00:00'", "datetime")


def test_year2_two_columns_one_finding():
    findings = lint_sql("CREATE TABLE t (a YEAR(2), b YEAR(2));")
    year2 = [f for f in findings if f.rule_id == "year2"]
    assert len(year2) == 1
    assert year2[0].fix_query == "ALTER TABLE `t` MODIFY COLUMN `a` YEAR;"


def test_myisam_engine_fix():
    findings = lint_sql("CREATE TABLE logs (id INT) ENGINE=MyISAM;")
    myisam = [f for f in findings if f.rule_id == "myisam_engine"]
    assert len(myisam) == 1
    assert myisam[0].fix_query == "ALTER TABLE `logs` ENGINE=InnoDB;"


def test_reserved_keyword_table():
    findings = lint_sql("CREATE TABLE manual (id INT);")
    assert any(f.rule_id == "reserved_keyword_84" for f in findings)


def test_quoted_ordinary_name_is_not_reserved():
    findings = lint_sql("CREATE TABLE `manuals` (id INT);")
    assert not any(f.rule_id == "reserved_keyword_84" for f in findings)


def test_removed_function_call():
    findings = lint_sql("SELECT PASSWORD('secret');")
    assert any(f.rule_id == "removed_function" for f in findings)


def test_column_named_password_is_not_a_function():
    findings = lint_sql("CREATE TABLE u (id INT, password VARCHAR(64));")
    assert not any(f.rule_id == "removed_function" for f in findings)


def test_removed_variable_in_set_global():
    findings = lint_sql("SET GLOBAL expire_logs_days = 7;")
    assert any(f.rule_id == "removed_sys_var_usage" for f in findings)


def test_trigger_set_new_is_not_a_variable():
    findings = lint_sql("SET NEW.total = 1;")
    assert not any(f.rule_id == "removed_sys_var_usage" for f in findings)


def test_groupby_desc():
    findings = lint_sql("SELECT a, COUNT(*) FROM t GROUP BY a DESC;")
    assert any(f.rule_id == "groupby_asc_desc" for f in findings)


def test_utf8_charset_but_not_utf8mb4():
    findings = lint_sql("CREATE TABLE t (a INT) DEFAULT CHARSET=utf8;")
    utf8 = [f for f in findings if f.rule_id == "utf8_charset"]
    assert len(utf8) == 1
    assert "CONVERT TO CHARACTER SET utf8mb4" in utf8[0].fix_query
    findings = lint_sql("CREATE TABLE t (a INT) DEFAULT CHARSET=utf8mb4;")
    assert not any(f.rule_id == "utf8_charset" for f in findings)


def test_grant_super_fix_revokes():
    findings = lint_sql("GRANT SUPER ON *.* TO 'admin'@'%';")
    supers = [f for f in findings if f.rule_id == "super_privilege"]
    assert supers
    assert all("REVOKE SUPER ON *.* FROM 'admin'@'%';" in f.fix_query for f in supers)


def test_native_password_fix():
    sql = "CREATE USER 'app'@'localhost' IDENTIFIED WITH mysql_native_password BY 'x';"
    findings = lint_sql(sql)
    native = [f for f in findings if f.rule_id == "mysql_native_password"]
    assert native
    assert all("IDENTIFIED WITH caching_sha2_password" in f.fix_query for f in native)


def test_clean_schema_has_no_errors():
    sql = """CREATE TABLE users (
      id BIGINT NOT NULL AUTO_INCREMENT,
      email VARCHAR(191) NOT NULL,
      PRIMARY KEY (id),
      UNIQUE KEY uk_email (email)
    ) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci;"""
    findings = lint_sql(sql)
    assert not any(f.severity == "error" for f in findings)
