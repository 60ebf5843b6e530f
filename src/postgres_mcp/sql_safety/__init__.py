"""SQL safety package.

Provides the statement classifier that gates client-supplied SQL, the scanner
it is built on, and positional parameter binding for trusted templates.
All functions are pure and safe to call concurrently.
"""

from __future__ import annotations

from .binding import bind_positional
from .classifier import (
    DATA_MODIFYING_KEYWORDS,
    FORBIDDEN_KEYWORDS,
    MULTIPLE_STATEMENTS,
    READ_ONLY_KEYWORDS,
    WRITES_DISABLED,
    QueryValidator,
    classify,
)
from .models import ClassificationResult
from .scanner import SqlScanError, Token, TokenKind, scan

__all__ = [
    "DATA_MODIFYING_KEYWORDS",
    "FORBIDDEN_KEYWORDS",
    "MULTIPLE_STATEMENTS",
    "READ_ONLY_KEYWORDS",
    "WRITES_DISABLED",
    "ClassificationResult",
    "QueryValidator",
    "SqlScanError",
    "Token",
    "TokenKind",
    "bind_positional",
    "classify",
    "scan",
]
