"""Tests for saved server query results."""
import pytest

from dumpcheck.errors import ResultFormatError
from dumpcheck.server_results import analyze_server_result, parse_server_result

AUTH_JSON = """{"columns": ["User", "Host", "plugin"],
 "rows": [["app", "%", "mysql_native_password"],
          ["svc", "10.0.0.1", "caching_sha2_password"],
          ["key", "localhost", "authentication_fido"]]}"""


def test_json_rows_as_arrays():
    result = parse_server_result(AUTH_JSON)
    assert result.columns == ["User", "Host", "plugin"]
    assert result.rows[0] == {"User": "app", "Host": "%", "plugin": "mysql_native_password"}


def test_json_list_of_objects():
    result = parse_server_result('[{"Variable_name": "innodb_io_capacity", "Value": 200}]')
    assert result.columns == ["Variable_name", "Value"]
    assert result.rows[0]["Value"] == 200


def test_tsv_conversion():
    result = parse_server_result("Variable_name\tValue\nmax_connections\t151\n"
                                 "ratio\t0.5\nfoo\tNULL\nname\tfsync\n")
    assert result.columns == ["Variable_name", "Value"]
    assert [r["Value"] for r in result.rows] == [151, 0.5, None, "fsync"]


@pytest.mark.parametrize("text", ["", "   \n", "{not json", "[1, 2]", '{"rows": 3}'])
def test_bad_results_rejected(text):
    with pytest.raises(ResultFormatError):
        parse_server_result(text)


def test_auth_method_usage():
    findings = analyze_server_result("authMethodUsage", parse_server_result(AUTH_JSON))
    assert [(f.rule_id, f.user_name) for f in findings] == [
        ("authentication_fido", "key"), ("mysql_native_password", "app")]
    native = findings[1]
    assert native.location == "server:authMethodUsage - User: 'app'@'%'"
    assert native.fix_query.startswith(
        "ALTER USER 'app'@'%' IDENTIFIED WITH caching_sha2_password")


def test_sys_vars_at_old_default():
    text = ("VARIABLE_NAME\tVARIABLE_VALUE\n"
            "innodb_io_capacity\t200\n"
            "innodb_adaptive_hash_index\tOFF\n"
            "innodb_flush_method\tfsync\n"
            "max_connections\t151\n")
    findings = analyze_server_result("sysVarsNewDefaults", parse_server_result(text))
    assert [f.code for f in findings] == ["innodb_io_capacity = 200",
                                          "innodb_flush_method = fsync"]
    assert all(f.rule_id == "sysvar_new_default" for f in findings)
    assert "10000" in findings[0].description


def test_unknown_check_gives_nothing():
    assert analyze_server_result("noSuchCheck", parse_server_result(AUTH_JSON)) == []
