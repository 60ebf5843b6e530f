"""Positional parameter binding for trusted SQL templates.

Templates use PostgreSQL-style ``$1 .. $n`` placeholders. They are rewritten
into SQLAlchemy named binds so that values travel to the driver out-of-band
and are never interpolated into the statement text. Every other colon in
the template is escaped, so ``::`` casts survive the rewrite.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import sqlalchemy as sa
from sqlalchemy.sql.elements import TextClause

from postgres_mcp.errors import QueryValidationError

from .scanner import SqlScanError, TokenKind, scan

_BIND_PREFIX = "p"


def bind_positional(sql: str, parameters: Sequence[Any]) -> tuple[TextClause, dict[str, Any]]:
    """Rewrite ``$n`` placeholders in ``sql`` and pair them with ``parameters``.

    Args:
        sql: Statement template with ``$1``-style placeholders
        parameters: Values for the placeholders, ``parameters[0]`` binds ``$1``

    Returns:
        The executable text clause and its bind mapping

    Raises:
        QueryValidationError: If a placeholder has no value, a value has no
            placeholder, or the template cannot be scanned
    """
    try:
        tokens = scan(sql)
    except SqlScanError as exc:
        msg = f"Invalid statement template: {exc}"
        raise QueryValidationError(msg) from exc

    pieces: list[str] = []
    cursor = 0
    used: set[int] = set()
    for tok in tokens:
        if tok.kind is not TokenKind.PARAMETER:
            continue
        index = int(tok.text[1:])
        if index < 1 or index > len(parameters):
            msg = f"Placeholder {tok.text} has no bound value ({len(parameters)} given)"
            raise QueryValidationError(msg)
        used.add(index)
        pieces.append(_escape_colons(sql[cursor : tok.start]))
        pieces.append(f":{_BIND_PREFIX}{index}")
        cursor = tok.end
    pieces.append(_escape_colons(sql[cursor:]))

    unused = set(range(1, len(parameters) + 1)) - used
    if unused:
        msg = f"Parameters without placeholders: {sorted(unused)}"
        raise QueryValidationError(msg)

    binds = {f"{_BIND_PREFIX}{i}": value for i, value in enumerate(parameters, start=1)}
    return sa.text("".join(pieces)), binds


def _escape_colons(segment: str) -> str:
    # Literal colons (casts, string contents) must not be read as named binds.
    return segment.replace(":", "\\:")
