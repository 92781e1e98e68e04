"""Tests for the dumpcheck command line."""
import json

from typer.testing import CliRunner

from dumpcheck.cli import app

runner = CliRunner()

PROBLEMS = "CREATE TABLE logs (id INT, y YEAR(2)) ENGINE=MyISAM;\n"
CLEAN = ("CREATE TABLE users (id BIGINT NOT NULL AUTO_INCREMENT, PRIMARY KEY (id)) "
         "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;\n")


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_lint_json_and_exit_code(tmp_path):
    write(tmp_path, "schema.sql", PROBLEMS)
    write(tmp_path, "notes.md", "ENGINE=MyISAM")
    result = runner.invoke(app, ["lint", str(tmp_path), "--format", "json"])
    assert result.exit_code == 1
    data = json.loads(result.stdout)
    assert data["metadata"]["total_files"] == 1
    assert any(f["rule_id"] == "year2" for f in data["findings"])


def test_fail_on_none(tmp_path):
    path = write(tmp_path, "schema.sql", PROBLEMS)
    result = runner.invoke(app, ["lint", str(path), "-f", "json", "--fail-on", "none"])
    assert result.exit_code == 0


def test_fail_on_warning(tmp_path):
    path = write(tmp_path, "schema.sql", "CREATE TABLE t (id INT) DEFAULT CHARSET=utf8;\n")
    assert runner.invoke(app, ["lint", str(path), "-f", "json"]).exit_code == 0
    result = runner.invoke(app, ["lint", str(path), "-f", "json", "--fail-on", "warning"])
    assert result.exit_code == 1


def test_clean_dump_text_output(tmp_path):
    path = write(tmp_path, "schema.sql", CLEAN)
    result = runner.invoke(app, ["lint", str(path)])
    assert result.exit_code == 0
    assert "no upgrade issues" in result.output


def test_fixes_and_csv_formats(tmp_path):
    path = write(tmp_path, "schema.sql", PROBLEMS)
    fixes = runner.invoke(app, ["lint", str(path), "-f", "fixes"])
    assert fixes.stdout.startswith("-- MySQL 8.0.x -> 8.4 upgrade fix queries")
    assert "ALTER TABLE `logs` ENGINE=InnoDB;" in fixes.stdout
    rows = runner.invoke(app, ["lint", str(path), "-f", "csv"]).stdout.splitlines()
    assert rows[0].startswith("Category,Severity,Title")


def test_non_utf8_file_does_not_stop_the_run(tmp_path):
    (tmp_path / "a_latin1.sql").write_bytes(b"INSERT INTO t VALUES ('caf\xe9');\n")
    write(tmp_path, "b_schema.sql", PROBLEMS)
    result = runner.invoke(app, ["lint", str(tmp_path)])
    assert result.exit_code == 1
    assert "year2" in result.output
    assert "in 2 files" in result.output


def test_missing_path(tmp_path):
    result = runner.invoke(app, ["lint", str(tmp_path / "nope.sql")])
    assert result.exit_code == 1


def test_unknown_format(tmp_path):
    path = write(tmp_path, "schema.sql", CLEAN)
    result = runner.invoke(app, ["lint", str(path), "-f", "xml"])
    assert result.exit_code == 2


def test_directory_without_dumps(tmp_path):
    write(tmp_path, "notes.md", "hello")
    result = runner.invoke(app, ["lint", str(tmp_path)])
    assert result.exit_code == 0
    assert "No dump files found" in result.output


def test_rules_listing():
    result = runner.invoke(app, ["rules", "--category", "invalid_objects"])
    assert result.exit_code == 0
    assert "year2" in result.output


def test_server_checks_listing():
    result = runner.invoke(app, ["server-checks"])
    assert result.exit_code == 0
    assert "authMethodUsage" in result.output


def test_check_result_json(tmp_path):
    path = write(tmp_path, "auth.tsv",
                 "User\tHost\tplugin\napp\t%\tmysql_native_password\n")
    result = runner.invoke(app, ["check-result", "authMethodUsage", str(path), "-f", "json"])
    assert result.exit_code == 0
    findings = json.loads(result.stdout)
    assert [f["rule_id"] for f in findings] == ["mysql_native_password"]


def test_check_result_error_exit(tmp_path):
    path = write(tmp_path, "auth.tsv",
                 "User\tHost\tplugin\nkey\t%\tauthentication_fido\n")
    result = runner.invoke(app, ["check-result", "authMethodUsage", str(path)])
    assert result.exit_code == 1


def test_check_result_bad_format(tmp_path):
    path = write(tmp_path, "auth.json", "{not json")
    result = runner.invoke(app, ["check-result", "authMethodUsage", str(path)])
    assert result.exit_code == 2
