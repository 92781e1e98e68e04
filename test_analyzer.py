"""Tests for the analysis engine: routing, aggregation and run metadata."""
import dumpcheck.analyzer as analyzer_mod
from dumpcheck.analyzer import Analyzer, ExportFile, FindingAggregator, classify_file
from dumpcheck.constants import CATEGORY_LABELS
from dumpcheck.rules import SEVERITIES, get_rule

MIXED = [
    ExportFile("schema.sql", "CREATE TABLE t (a YEAR(2), b VARCHAR(10)) "
                             "ENGINE=MyISAM DEFAULT CHARSET=utf8;\n"
                             "GRANT SUPER ON *.* TO 'ops'@'%';"),
    ExportFile("my.cnf", "[mysqld]\nexpire_logs_days = 7\n"),
    ExportFile("data.sql", "INSERT INTO t VALUES ('0000-00-00', 'x');"),
]


def test_classify_file():
    assert classify_file("dump/schema.sql") == "sql"
    assert classify_file("my.cnf") == "config"
    assert classify_file("server.ini") == "config"
    assert classify_file("mysqld") == "config"
    assert classify_file("@.json") == "metadata"
    assert classify_file("shop@.json") == "metadata"
    assert classify_file("@.done.json") == "skip"
    assert classify_file("load-progress.1234.json") == "skip"
    assert classify_file("shop@orders@@0.tsv") == "data"
    assert classify_file("notes.json") == "unknown"
    assert classify_file("README.md") == "unknown"


def test_runs_are_idempotent():
    first = Analyzer().run(MIXED)
    analyzer = Analyzer()
    analyzer.run(MIXED)
    second = analyzer.run(MIXED)
    assert [f.key for f in first.findings] == [f.key for f in second.findings]
    assert first.stats == second.stats


def test_findings_are_unique_and_ordered():
    result = Analyzer().run(MIXED)
    keys = [f.key for f in result.findings]
    assert len(keys) == len(set(keys))
    categories = list(CATEGORY_LABELS)
    order = [(categories.index(f.category), SEVERITIES.index(f.severity))
             for f in result.findings]
    assert order == sorted(order)


def test_stats_match_findings():
    result = Analyzer().run(MIXED)
    assert set(result.stats) == {"error", "warning", "info"}
    assert sum(result.stats.values()) == len(result.findings)
    assert sum(result.category_stats.values()) == len(result.findings)
    assert result.metadata["total_files"] == 3
    assert result.metadata["file_types"] == {"sql": 2, "config": 1}
    assert result.metadata["failed_files"] == []


def test_iter_findings_yields_each_finding_once():
    analyzer = Analyzer()
    streamed = list(analyzer.iter_findings(MIXED))
    assert sorted(f.key for f in streamed) == sorted(f.key for f in analyzer.result().findings)


def test_empty_run():
    result = Analyzer().run([])
    assert result.findings == []
    assert result.metadata["total_files"] == 0


def test_rule_subset():
    analyzer = Analyzer(rules=[get_rule("year2")])
    result = analyzer.run([ExportFile("dump.sql",
                                      "CREATE TABLE t (a YEAR(2)) ENGINE=MyISAM;")])
    assert {f.rule_id for f in result.findings} == {"year2"}


def test_rule_subset_covers_cross_checks():
    analyzer = Analyzer(rules=[get_rule("year2")])
    result = analyzer.run([
        ExportFile("a.sql", "CREATE TABLE t (a YEAR(2), p INT, "
                            "FOREIGN KEY (p) REFERENCES ghost (id)) ENGINE=InnoDB;\n"
                            "GRANT SUPER ON *.* TO 'ops'@'%';\n"
                            "INSERT INTO nowhere VALUES ('\U0001f600');"),
        ExportFile("b.sql", "CREATE TABLE t (a INT) ENGINE=MyISAM;"),
        ExportFile("shop@t@@0.tsv", "\U0001f600\n"),
    ])
    assert {f.rule_id for f in result.findings} == {"year2"}
    assert result.stats["info"] == 0


def test_failed_file_is_recorded(monkeypatch):
    real = analyzer_mod.scan_patterns

    def flaky(text, source, *args, **kwargs):
        if source == "bad.sql":
            raise RuntimeError("boom")
        return real(text, source, *args, **kwargs)

    monkeypatch.setattr(analyzer_mod, "scan_patterns", flaky)
    result = Analyzer().run([ExportFile("bad.sql", "SELECT 1;"),
                             ExportFile("good.sql", "CREATE TABLE t (a YEAR(2));")])
    assert result.metadata["failed_files"] == ["bad.sql"]
    assert any(f.rule_id == "year2" for f in result.findings)


def test_metadata_charset():
    result = Analyzer().run([ExportFile("@.json",
                                        '{"options": {"defaultCharacterSet": "utf8"}}')])
    assert [(f.rule_id, f.location) for f in result.findings] == [("utf8_charset", "@.json")]
    result = Analyzer().run([ExportFile("@.json",
                                        '{"options": {"defaultCharacterSet": "latin1"}}')])
    assert [f.rule_id for f in result.findings] == ["latin1"]
    result = Analyzer().run([ExportFile("@.json",
                                        '{"options": {"defaultCharacterSet": "utf8mb4"}}')])
    assert result.findings == []


def test_bad_metadata_is_not_a_failure():
    result = Analyzer().run([ExportFile("@.json", "{not json")])
    assert result.findings == []
    assert result.metadata["failed_files"] == []


def test_skipped_and_unknown_files_yield_nothing():
    result = Analyzer().run([ExportFile("@.done.json", "ENGINE=MyISAM"),
                             ExportFile("notes.md", "ENGINE=MyISAM")])
    assert result.findings == []


def test_table_redeclared_with_other_engine():
    result = Analyzer().run([ExportFile("a.sql", "CREATE TABLE t (id INT) ENGINE=InnoDB;"),
                             ExportFile("b.sql", "CREATE TABLE t (id INT) ENGINE=MyISAM;")])
    hits = [f for f in result.findings if f.rule_id == "table_redeclared"]
    assert len(hits) == 1
    assert hits[0].location == "b.sql - Table: t"
    assert "a.sql" in hits[0].description


def test_identical_redeclaration_is_quiet():
    result = Analyzer().run([ExportFile("a.sql", "CREATE TABLE t (id INT);"),
                             ExportFile("b.sql", "CREATE TABLE t (id INT);")])
    assert not any(f.rule_id == "table_redeclared" for f in result.findings)


def test_aggregator_drops_duplicates():
    sink = FindingAggregator()
    rule = get_rule("myisam_engine")
    assert sink.emit(rule, "a.sql", "ENGINE=MyISAM") is not None
    assert sink.emit(rule, "a.sql", "ENGINE=MyISAM") is None
    assert sink.emit(rule, "b.sql", "ENGINE=MyISAM") is not None
    assert len(sink) == 2
    assert sink.stats["warning"] == 2
    assert sink.category_stats["invalid_objects"] == 2


def test_description_override():
    sink = FindingAggregator()
    finding = sink.emit(get_rule("latin1"), "x.sql", "latin1", description="custom")
    assert finding.description == "custom"
    assert finding.title == get_rule("latin1").title
