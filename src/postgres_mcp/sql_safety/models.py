"""Result types for statement classification."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Outcome of classifying one SQL text.

    Attributes:
        allowed: True when the statement may be executed
        reason: Human-readable rejection reason, None when allowed
        keyword: Leading keyword of the statement when one was found
    """

    allowed: bool
    reason: str | None = None
    keyword: str | None = None

    @classmethod
    def allow(cls, keyword: str | None = None) -> ClassificationResult:
        return cls(allowed=True, keyword=keyword)

    @classmethod
    def reject(cls, reason: str, keyword: str | None = None) -> ClassificationResult:
        return cls(allowed=False, reason=reason, keyword=keyword)
