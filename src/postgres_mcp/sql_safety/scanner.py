"""Token stream for PostgreSQL statement text.

Lexing is done by sqlglot's PostgreSQL tokenizer, which already tells code
apart from non-code: ``--`` and (nested) ``/* */`` comments are attached to
neighbouring tokens instead of being emitted, and single-quoted strings (with
``E''`` escapes), quoted identifiers and dollar-quoted bodies each arrive as a
single token. This module narrows sqlglot's token types down to the few kinds
the classifier and the parameter binder look at, keeping raw source offsets.

It is not a parser. Callers inspect the token stream to make conservative,
syntactic decisions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
import re
from typing import Final

from sqlglot.dialects.postgres import Postgres
from sqlglot.errors import TokenError
from sqlglot.tokens import TokenType

_WORD: Final[re.Pattern[str]] = re.compile(
    r"[A-Za-z_\u0080-\uffff][A-Za-z0-9_$\u0080-\uffff]*"
)
_PARAMETER: Final[re.Pattern[str]] = re.compile(r"\$\d+")
_NON_SPACE: Final[re.Pattern[str]] = re.compile(r"\S+")

_STRING_TYPES: Final[frozenset[TokenType]] = frozenset(
    {
        TokenType.STRING,
        TokenType.BYTE_STRING,
        TokenType.NATIONAL_STRING,
        TokenType.HEREDOC_STRING,
        TokenType.RAW_STRING,
        TokenType.BIT_STRING,
        TokenType.HEX_STRING,
        TokenType.UNICODE_STRING,
    }
)


class TokenKind(Enum):
    """Kinds of tokens produced by the scanner."""

    WORD = auto()
    STRING = auto()
    QUOTED_IDENTIFIER = auto()
    NUMBER = auto()
    PARAMETER = auto()
    SEMICOLON = auto()
    PUNCT = auto()


@dataclass(frozen=True, slots=True)
class Token:
    """A lexical token and its half-open span ``[start, end)`` in the source."""

    kind: TokenKind
    text: str
    start: int
    end: int

    @property
    def upper(self) -> str:
        """Upper-cased text, used for case-insensitive keyword checks."""
        return self.text.upper()

    def is_word(self, *words: str) -> bool:
        """Return True when this is an unquoted word matching one of ``words``."""
        return self.kind is TokenKind.WORD and self.upper in words


class SqlScanError(ValueError):
    """Raised when the text cannot be tokenized (e.g. an unterminated literal)."""


class _StatementTokenizer(Postgres.Tokenizer):
    # EXPLAIN, SHOW, CALL and similar commands normally fold the rest of the
    # statement into one string token; keep their arguments as tokens.
    COMMANDS = set()  # noqa: RUF012


def scan(sql: str) -> list[Token]:
    """Tokenize ``sql``; comments do not appear in the result.

    Raises:
        SqlScanError: On unterminated strings, quoted identifiers or
            dollar-quoted bodies
    """
    try:
        raw = _StatementTokenizer(dialect="postgres").tokenize(sql)
    except TokenError as exc:
        msg = f"cannot tokenize statement: {exc}"
        raise SqlScanError(msg) from exc

    tokens: list[Token] = []
    idx = 0
    while idx < len(raw):
        tok = raw[idx]
        start, end = tok.start, tok.end + 1
        text = sql[start:end]
        token_type = tok.token_type
        idx += 1

        if token_type is TokenType.SEMICOLON:
            tokens.append(Token(TokenKind.SEMICOLON, text, start, end))
        elif token_type in _STRING_TYPES:
            tokens.append(Token(TokenKind.STRING, text, start, end))
        elif token_type is TokenType.IDENTIFIER:
            tokens.append(Token(TokenKind.QUOTED_IDENTIFIER, text, start, end))
        elif token_type is TokenType.NUMBER:
            tokens.append(Token(TokenKind.NUMBER, text, start, end))
        elif text.startswith("$"):
            # Postgres positional parameters come out as "$" followed by a number.
            nxt = raw[idx] if idx < len(raw) else None
            if (
                text == "$"
                and nxt is not None
                and nxt.token_type is TokenType.NUMBER
                and nxt.start == end
            ):
                end = nxt.end + 1
                text = sql[start:end]
                idx += 1
            kind = TokenKind.PARAMETER if _PARAMETER.fullmatch(text) else TokenKind.PUNCT
            tokens.append(Token(kind, text, start, end))
        else:
            tokens.extend(_words_or_punct(text, start))

    return tokens


def _words_or_punct(text: str, start: int) -> list[Token]:
    """Split keyword tokens such as ``ORDER BY`` into one WORD per word."""
    parts = list(_NON_SPACE.finditer(text))
    if parts and all(_WORD.fullmatch(part.group(0)) for part in parts):
        return [
            Token(TokenKind.WORD, part.group(0), start + part.start(), start + part.end())
            for part in parts
        ]
    return [Token(TokenKind.PUNCT, text, start, start + len(text))]
