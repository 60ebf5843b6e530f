from __future__ import annotations

import logging

import pytest

from postgres_mcp.errors import QueryValidationError
from postgres_mcp.sql_safety import QueryValidator, classify
from postgres_mcp.sql_safety.scanner import SqlScanError, TokenKind, scan


# ---- scanner -----------------------------------------------------------------
def test_scan_skips_literals_and_comments() -> None:
    sql = "SELECT 'a;b', \"we;ird\", $$x;y$$ -- tail;\n/* c; */ FROM t"
    kinds = [tok.kind for tok in scan(sql)]
    assert TokenKind.SEMICOLON not in kinds
    assert kinds.count(TokenKind.STRING) == 2
    assert kinds.count(TokenKind.QUOTED_IDENTIFIER) == 1


def test_scan_nested_block_comment() -> None:
    tokens = scan("/* outer /* inner */ still comment */ SELECT 1")
    assert [t.text for t in tokens] == ["SELECT", "1"]


def test_scan_tagged_dollar_quote_and_parameters() -> None:
    tokens = scan("SELECT $fn$ it's $$ fine $fn$, $1, $2::int")
    assert tokens[1].kind is TokenKind.STRING
    params = [t.text for t in tokens if t.kind is TokenKind.PARAMETER]
    assert params == ["$1", "$2"]


def test_scan_escape_string() -> None:
    tokens = scan(r"SELECT E'it\'s; fine'")
    assert [t.kind for t in tokens] == [TokenKind.WORD, TokenKind.STRING]


def test_scan_doubled_quotes() -> None:
    tokens = scan("SELECT 'it''s', \"a\"\"b\"")
    assert [t.text for t in tokens] == ["SELECT", "'it''s'", ",", '"a""b"']


def test_scan_spans_index_source() -> None:
    sql = "SELECT  'x' ,\n  $1"
    for tok in scan(sql):
        assert sql[tok.start : tok.end] == tok.text


def test_scan_splits_multi_word_keywords() -> None:
    tokens = scan("SELECT a FROM t GROUP BY a ORDER BY a")
    words = [t.upper for t in tokens if t.kind is TokenKind.WORD]
    assert words == ["SELECT", "A", "FROM", "T", "GROUP", "BY", "A", "ORDER", "BY", "A"]


def test_scan_keeps_command_arguments_as_tokens() -> None:
    tokens = scan("SHOW search_path; DROP TABLE t")
    assert [t.text for t in tokens] == ["SHOW", "search_path", ";", "DROP", "TABLE", "t"]
    assert [t.upper for t in scan("EXPLAIN ANALYZE DELETE FROM t")] == [
        "EXPLAIN",
        "ANALYZE",
        "DELETE",
        "FROM",
        "T",
    ]


@pytest.mark.parametrize("sql", ["SELECT 'abc", 'SELECT "abc', "SELECT $$abc", "SELECT $q$abc$$"])
def test_scan_unterminated(sql: str) -> None:
    with pytest.raises(SqlScanError, match="cannot tokenize statement"):
        scan(sql)


# ---- read-only mode ------------------------------------------------------------
@pytest.mark.parametrize(
    "sql",
    [
        "SELECT 1",
        "select * from t where name = 'x'",
        "SELECT 1;",
        "  SELECT 1 ;  ",
        "(SELECT 1) UNION (SELECT 2)",
        "WITH x AS (SELECT 1) SELECT * FROM x",
        "WITH x AS (SELECT * FROM t FOR UPDATE) SELECT * FROM x",
        "WITH x AS (SELECT * FROM t FOR NO KEY UPDATE) SELECT * FROM x",
        "EXPLAIN SELECT * FROM t",
        "EXPLAIN UPDATE t SET a = 1",
        "SHOW search_path",
        "-- leading comment\nSELECT 1",
        "SELECT 1 -- ; DROP TABLE t",
        "/* nested /* DROP TABLE t; */ still */ SELECT 1",
        "SELECT 'DELETE FROM t; DROP TABLE t'",
        "SELECT $$; DROP TABLE t$$",
    ],
)
def test_read_only_allows(sql: str) -> None:
    result = classify(sql, allow_write_ops=False)
    assert result.allowed, result.reason


@pytest.mark.parametrize(
    "sql",
    [
        "INSERT INTO t VALUES (1)",
        "UPDATE t SET a = 1",
        "DELETE FROM t",
        "CREATE TABLE x (a int)",
        "DROP TABLE t",
        "TRUNCATE t",
        "GRANT SELECT ON t TO bob",
        "SET search_path = evil",
        "COPY t TO '/tmp/out'",
        "CALL do_things()",
    ],
)
def test_read_only_rejects_non_whitelisted(sql: str) -> None:
    result = classify(sql, allow_write_ops=False)
    assert not result.allowed
    assert result.reason == "write operations are disabled"


@pytest.mark.parametrize(
    "sql",
    [
        "WITH gone AS (DELETE FROM t RETURNING *) SELECT * FROM gone",
        "WITH x AS (INSERT INTO t VALUES (1) RETURNING id) SELECT * FROM x",
        "with x as (update t set a = 1 returning *) select 1",
    ],
)
def test_read_only_rejects_writable_cte(sql: str) -> None:
    result = classify(sql, allow_write_ops=False)
    assert not result.allowed
    assert "WITH clause contains a data-modifying statement" in (result.reason or "")


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * INTO t2 FROM t",
        "WITH x AS (SELECT 1 AS n) SELECT n INTO t2 FROM x",
    ],
)
def test_read_only_rejects_select_into(sql: str) -> None:
    result = classify(sql, allow_write_ops=False)
    assert not result.allowed
    assert result.reason == "write operations are disabled: SELECT INTO creates a table"


@pytest.mark.parametrize(
    "sql",
    [
        "EXPLAIN ANALYZE DELETE FROM t",
        "EXPLAIN (ANALYSE) UPDATE t SET a = 1",
        "EXPLAIN ANALYZE CREATE TABLE t2 AS SELECT 1",
        "EXPLAIN ANALYZE SELECT 1 INTO t2",
        "EXPLAIN (ANALYZE, VERBOSE) SELECT * INTO t2 FROM t",
        "EXPLAIN ANALYZE",
    ],
)
def test_read_only_rejects_explain_analyze_of_write(sql: str) -> None:
    result = classify(sql, allow_write_ops=False)
    assert not result.allowed
    assert result.keyword == "EXPLAIN"
    assert (result.reason or "").startswith("EXPLAIN ANALYZE would execute")


def test_read_only_allows_explain_analyze_of_read() -> None:
    assert classify("EXPLAIN ANALYZE SELECT * FROM t", allow_write_ops=False).allowed
    assert classify("EXPLAIN (ANALYZE, BUFFERS) SELECT 1", allow_write_ops=False).allowed
    sql = "EXPLAIN VERBOSE WITH x AS (SELECT 1) SELECT * FROM x"
    assert classify(sql, allow_write_ops=False).allowed


def test_read_only_allows_cte_without_writes() -> None:
    result = classify("WITH x AS (SELECT 1 AS n) SELECT n FROM x", allow_write_ops=False)
    assert result.allowed
    assert result.keyword == "WITH"


# ---- structural rules (both modes) ------------------------------------------
@pytest.mark.parametrize("write_mode", [False, True])
@pytest.mark.parametrize(
    "sql",
    [
        "SELECT 1; DROP TABLE t",
        "SELECT 1;;",
        "SELECT 1; SELECT 2",
        "SELECT 1; -- trailing\nDELETE FROM t",
    ],
)
def test_multiple_statements_rejected(sql: str, write_mode: bool) -> None:  # noqa: FBT001
    result = classify(sql, allow_write_ops=write_mode)
    assert not result.allowed
    assert result.reason == "multiple statements not permitted"


@pytest.mark.parametrize("write_mode", [False, True])
@pytest.mark.parametrize("sql", ["", "   ", "-- only a comment", "/* nothing */", ";"])
def test_empty_rejected(sql: str, write_mode: bool) -> None:  # noqa: FBT001
    result = classify(sql, allow_write_ops=write_mode)
    assert not result.allowed
    assert result.reason == "empty statement"


@pytest.mark.parametrize("write_mode", [False, True])
def test_unterminated_input_rejected(write_mode: bool) -> None:  # noqa: FBT001
    result = classify("SELECT 'abc; DROP TABLE t", allow_write_ops=write_mode)
    assert not result.allowed
    assert "cannot tokenize statement" in (result.reason or "")


def test_non_word_start_is_unrecognized() -> None:
    result = classify("1 + 1", allow_write_ops=True)
    assert not result.allowed
    assert result.reason == "unrecognized statement"


def test_comment_cannot_hide_second_statement() -> None:
    assert not classify("SELECT 1 /* x */; DELETE FROM t", allow_write_ops=True).allowed


# ---- write mode ---------------------------------------------------------------
@pytest.mark.parametrize(
    "sql",
    [
        "INSERT INTO t (a) VALUES (1)",
        "UPDATE t SET a = 2 WHERE id = 1",
        "DELETE FROM t WHERE id = 1",
        "WITH gone AS (DELETE FROM t RETURNING *) SELECT * FROM gone",
        "SELECT * FROM t FOR UPDATE",
        "SET LOCAL statement_timeout = 1000",
        "SET TRANSACTION ISOLATION LEVEL SERIALIZABLE",
        "RESET search_path",
        "EXPLAIN ANALYZE DELETE FROM t WHERE id = 1",
        "SELECT 1",
    ],
)
def test_write_mode_allows(sql: str) -> None:
    result = classify(sql, allow_write_ops=True)
    assert result.allowed, result.reason


@pytest.mark.parametrize(
    ("sql", "keyword"),
    [
        ("DROP TABLE t", "DROP"),
        ("drop table t", "DROP"),
        ("TRUNCATE t", "TRUNCATE"),
        ("ALTER TABLE t ADD COLUMN b int", "ALTER"),
        ("GRANT ALL ON t TO bob", "GRANT"),
        ("REVOKE ALL ON t FROM bob", "REVOKE"),
        ("VACUUM FULL", "VACUUM"),
        ("COPY t FROM PROGRAM 'id'", "COPY"),
        ("DO $$ BEGIN END $$", "DO"),
        ("/* sneaky */ DROP TABLE t", "DROP"),
        ("COMMENT ON TABLE t IS 'x'", "COMMENT"),
        ("IMPORT FOREIGN SCHEMA s FROM SERVER srv INTO public", "IMPORT"),
        ("PRAGMA query_only = ON", "PRAGMA"),
        ("ATTACH DATABASE 'other.db' AS other", "ATTACH"),
    ],
)
def test_write_mode_blacklist(sql: str, keyword: str) -> None:
    result = classify(sql, allow_write_ops=True)
    assert not result.allowed
    assert result.keyword == keyword
    assert result.reason == f"{keyword} statements are not permitted"


@pytest.mark.parametrize(
    "sql",
    [
        "CREATE TABLE x (a int)",
        "CREATE TEMP TABLE scratch (a int)",
        "CREATE OR REPLACE VIEW v AS SELECT 1",
        "CREATE INDEX i ON t (a)",
        "CREATE SCHEMA s",
        "CREATE FUNCTION f() RETURNS void AS $$ DROP TABLE t $$ LANGUAGE sql",
        "CREATE OR REPLACE PROCEDURE p() LANGUAGE sql AS $body$ DROP TABLE t $body$",
        "CREATE EVENT TRIGGER et ON ddl_command_start EXECUTE FUNCTION f()",
        "CREATE TRIGGER tr AFTER INSERT ON t FOR EACH ROW EXECUTE FUNCTION f()",
        "CREATE RULE r AS ON INSERT TO t DO INSTEAD NOTHING",
        "CREATE SUBSCRIPTION s CONNECTION 'host=elsewhere' PUBLICATION p",
        "CREATE PUBLICATION p FOR ALL TABLES",
        "CREATE SERVER srv FOREIGN DATA WRAPPER postgres_fdw",
        "CREATE LANGUAGE plperlu",
        "CREATE CAST (text AS int) WITH INOUT",
        "/* quiet */ create table x (a int)",
    ],
)
def test_write_mode_rejects_schema_changes(sql: str) -> None:
    result = classify(sql, allow_write_ops=True)
    assert not result.allowed
    assert result.keyword == "CREATE"
    assert (result.reason or "").startswith("CREATE")
    assert (result.reason or "").endswith("statements are not permitted")


def test_create_reason_names_the_object_kind() -> None:
    result = classify("CREATE TABLE x (a int)", allow_write_ops=True)
    assert result.reason == "CREATE TABLE statements are not permitted"


@pytest.mark.parametrize(
    "sql",
    [
        "SET search_path = evil",
        "SET statement_timeout = 0",
        "set session statement_timeout to 0",
    ],
)
def test_write_mode_rejects_session_level_set(sql: str) -> None:
    result = classify(sql, allow_write_ops=True)
    assert not result.allowed
    assert result.reason == "session-level SET is not permitted; use SET LOCAL"


@pytest.mark.parametrize("write_mode", [False, True])
def test_backslash_in_string_cannot_end_statement_early(write_mode: bool) -> None:  # noqa: FBT001
    assert classify(r"SELECT E'\';DROP TABLE t'", allow_write_ops=write_mode).allowed
    assert not classify(r"SELECT 'a\'; DROP TABLE t", allow_write_ops=write_mode).allowed


@pytest.mark.parametrize(
    "sql",
    [
        "CREATE ROLE bob",
        "CREATE USER bob",
        "CREATE DATABASE other",
        "CREATE EXTENSION plpython3u",
        "SET ROLE postgres",
        "SET SESSION AUTHORIZATION postgres",
        "RESET ROLE",
        "SET LOCAL ROLE admin",
    ],
)
def test_write_mode_rejects_privilege_changes(sql: str) -> None:
    assert not classify(sql, allow_write_ops=True).allowed


# ---- QueryValidator -------------------------------------------------------------
def test_validator_raises_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test.validator")
    validator = QueryValidator(allow_write_ops=False, logger=logger)

    assert validator.validate("SELECT 1").keyword == "SELECT"
    with caplog.at_level(logging.WARNING, logger="test.validator"):
        with pytest.raises(QueryValidationError, match="write operations are disabled"):
            validator.validate("DELETE FROM t")
    assert "Rejected statement" in caplog.text
