"""Statement safety classifier.

Decides whether a client-supplied SQL text may run under the current write
mode without executing it. The classifier is a syntactic gate over the token
stream produced by :mod:`postgres_mcp.sql_safety.scanner`, with sqlglot's
parser consulted where structure matters:

- comments are ignored, so they cannot hide keywords or a second statement
- more than one statement is always rejected
- read-only mode admits only SELECT / WITH / EXPLAIN / SHOW, and rejects
  writable CTEs and SELECT INTO
- write mode admits single statements except schema changes, privilege and
  server administration commands, and session-level SET
- EXPLAIN ANALYZE is judged by the statement it would execute

Anything the classifier cannot make sense of is rejected.
"""

from __future__ import annotations

from functools import lru_cache
import logging
from typing import Final

from fastmcp.utilities.logging import get_logger
import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from postgres_mcp.errors import QueryValidationError

from .models import ClassificationResult
from .scanner import SqlScanError, Token, TokenKind, scan

READ_ONLY_KEYWORDS: Final[frozenset[str]] = frozenset({"SELECT", "WITH", "EXPLAIN", "SHOW"})
DATA_MODIFYING_KEYWORDS: Final[frozenset[str]] = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE"})
DATA_MODIFYING_NODES: Final[tuple[type[exp.Expression], ...]] = (
    exp.Insert,
    exp.Update,
    exp.Delete,
    exp.Merge,
)

# Never permitted, whatever the write mode.
FORBIDDEN_KEYWORDS: Final[frozenset[str]] = frozenset(
    {
        "CREATE",
        "DROP",
        "TRUNCATE",
        "ALTER",
        "COMMENT",
        "IMPORT",
        "GRANT",
        "REVOKE",
        "VACUUM",
        "REINDEX",
        "CLUSTER",
        "REASSIGN",
        "SECURITY",
        "LOAD",
        "DO",
        "CHECKPOINT",
        "COPY",
        # SQLite connection and file administration
        "PRAGMA",
        "ATTACH",
        "DETACH",
    }
)
# Words that make SET / RESET change the session's identity.
_ROLE_WORDS: Final[frozenset[str]] = frozenset({"ROLE", "AUTHORIZATION"})
# SET forms whose effect ends with the current transaction.
_TRANSACTION_SCOPED_SET: Final[frozenset[str]] = frozenset({"LOCAL", "TRANSACTION", "CONSTRAINTS"})
# "FOR UPDATE" / "FOR NO KEY UPDATE" are row-locking clauses, not writes.
_LOCKING_PREFIXES: Final[frozenset[str]] = frozenset({"FOR", "KEY"})
_EXPLAIN_OPTIONS: Final[frozenset[str]] = frozenset({"ANALYZE", "ANALYSE", "VERBOSE"})

EMPTY_STATEMENT: Final[str] = "empty statement"
MULTIPLE_STATEMENTS: Final[str] = "multiple statements not permitted"
UNRECOGNIZED_STATEMENT: Final[str] = "unrecognized statement"
WRITES_DISABLED: Final[str] = "write operations are disabled"


def classify(sql: str, allow_write_ops: bool) -> ClassificationResult:  # noqa: FBT001
    """Classify ``sql`` as allowed or rejected for the given write mode."""
    try:
        tokens = scan(sql)
    except SqlScanError as exc:
        return ClassificationResult.reject(str(exc))

    if not tokens:
        return ClassificationResult.reject(EMPTY_STATEMENT)

    statement = _single_statement(tokens)
    if statement is None:
        return ClassificationResult.reject(MULTIPLE_STATEMENTS)
    if not statement:
        return ClassificationResult.reject(EMPTY_STATEMENT)

    return _classify_statement(sql, statement, allow_write_ops)


class QueryValidator:
    """Raise-style wrapper around :func:`classify` bound to one write mode."""

    def __init__(self, allow_write_ops: bool, logger: logging.Logger | None = None) -> None:  # noqa: FBT001
        self.allow_write_ops = allow_write_ops
        self._logger = logger or get_logger(__name__)

    def validate(self, sql: str) -> ClassificationResult:
        """Return the allowed classification or raise QueryValidationError."""
        result = classify(sql, self.allow_write_ops)
        if not result.allowed:
            self._logger.warning(
                "Rejected statement (keyword=%s, write_mode=%s): %s",
                result.keyword,
                self.allow_write_ops,
                result.reason,
            )
            raise QueryValidationError(result.reason or UNRECOGNIZED_STATEMENT)
        self._logger.debug("Allowed %s statement", result.keyword)
        return result


# ---- internals -------------------------------------------------------------
@lru_cache(maxsize=256)
def _cached_parse(sql: str) -> exp.Expression | None:
    """Parse one statement; None when sqlglot cannot represent it faithfully."""
    try:
        tree = sqlglot.parse_one(sql, read="postgres")
    except SqlglotError:
        return None
    # Unsupported syntax degrades to an opaque Command node.
    if tree is None or tree.find(exp.Command) is not None:
        return None
    return tree


def _statement_text(sql: str, statement: list[Token]) -> str:
    return sql[statement[0].start : statement[-1].end]


def _single_statement(tokens: list[Token]) -> list[Token] | None:
    """Return the statement's tokens, or None when a second statement follows."""
    for idx, tok in enumerate(tokens):
        if tok.kind is TokenKind.SEMICOLON:
            if idx == len(tokens) - 1:
                return tokens[:idx]
            return None
    return tokens


def _leading_keyword(statement: list[Token]) -> str | None:
    for tok in statement:
        if tok.kind is TokenKind.PUNCT and tok.text == "(":
            continue
        if tok.kind is TokenKind.WORD:
            return tok.upper
        return None
    return None


def _words(statement: list[Token]) -> list[Token]:
    return [tok for tok in statement if tok.kind is TokenKind.WORD]


def _contains_data_modifying(statement: list[Token]) -> bool:
    previous: Token | None = None
    for tok in statement:
        if tok.kind is TokenKind.WORD and tok.upper in DATA_MODIFYING_KEYWORDS:
            if previous is None or not previous.is_word(*_LOCKING_PREFIXES):
                return True
        previous = tok
    return False


def _with_writes(sql: str, statement: list[Token]) -> bool:
    """True when a WITH statement contains, or may contain, a writable CTE."""
    if not _contains_data_modifying(statement):
        return False
    tree = _cached_parse(_statement_text(sql, statement))
    if tree is None:
        return True
    return tree.find(*DATA_MODIFYING_NODES) is not None


def _explained(statement: list[Token]) -> list[Token]:
    """Return the statement under EXPLAIN, past its options."""
    rest = statement[1:]
    if rest and rest[0].kind is TokenKind.PUNCT and rest[0].text == "(":
        depth = 0
        for idx, tok in enumerate(rest):
            if tok.kind is not TokenKind.PUNCT:
                continue
            if tok.text == "(":
                depth += 1
            elif tok.text == ")":
                depth -= 1
                if depth == 0:
                    rest = rest[idx + 1 :]
                    break
        else:
            return []
    while rest and rest[0].is_word(*_EXPLAIN_OPTIONS):
        rest = rest[1:]
    return rest


def _classify_statement(
    sql: str, statement: list[Token], allow_write_ops: bool  # noqa: FBT001
) -> ClassificationResult:
    keyword = _leading_keyword(statement)
    if keyword is None:
        return ClassificationResult.reject(UNRECOGNIZED_STATEMENT)

    if allow_write_ops:
        result = _classify_write_mode(sql, keyword, statement)
    else:
        result = _classify_read_only(sql, keyword, statement)

    if result.allowed and keyword == "EXPLAIN" and any(
        tok.is_word("ANALYZE", "ANALYSE") for tok in statement
    ):
        inner = _classify_statement(sql, _explained(statement), allow_write_ops)
        if not inner.allowed:
            return ClassificationResult.reject(
                f"EXPLAIN ANALYZE would execute a statement that is not permitted: {inner.reason}",
                keyword,
            )
    return result


def _classify_read_only(sql: str, keyword: str, statement: list[Token]) -> ClassificationResult:
    if keyword not in READ_ONLY_KEYWORDS:
        return ClassificationResult.reject(WRITES_DISABLED, keyword)

    if keyword == "WITH" and _with_writes(sql, statement):
        return ClassificationResult.reject(
            f"{WRITES_DISABLED}: WITH clause contains a data-modifying statement", keyword
        )

    if keyword in {"SELECT", "WITH"} and any(tok.is_word("INTO") for tok in statement):
        return ClassificationResult.reject(
            f"{WRITES_DISABLED}: SELECT INTO creates a table", keyword
        )

    return ClassificationResult.allow(keyword)


def _classify_write_mode(sql: str, keyword: str, statement: list[Token]) -> ClassificationResult:
    if keyword == "CREATE":
        return ClassificationResult.reject(_create_reason(sql, statement), keyword)

    if keyword in FORBIDDEN_KEYWORDS:
        return ClassificationResult.reject(f"{keyword} statements are not permitted", keyword)

    words = _words(statement)
    if keyword in {"SET", "RESET"} and any(tok.upper in _ROLE_WORDS for tok in words[1:4]):
        return ClassificationResult.reject(
            f"{keyword} of the session role or authorization is not permitted", keyword
        )

    if keyword == "SET" and not (len(words) > 1 and words[1].upper in _TRANSACTION_SCOPED_SET):
        return ClassificationResult.reject(
            "session-level SET is not permitted; use SET LOCAL", keyword
        )

    return ClassificationResult.allow(keyword)


def _create_reason(sql: str, statement: list[Token]) -> str:
    tree = _cached_parse(_statement_text(sql, statement))
    kind = tree.args.get("kind") if isinstance(tree, exp.Create) else None
    noun = f"CREATE {str(kind).upper()}" if kind else "CREATE"
    return f"{noun} statements are not permitted"
