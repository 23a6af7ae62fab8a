"""
Compliance checker for dialer notes.

Flags absolutist language ("guarantee", "promise", ...) that dialers are not
allowed to use with sellers. The checker never blocks; callers decide policy.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

PROHIBITED_PHRASES = (
    "guarantee",
    "guaranteed",
    "definitely",
    "final offer",
    "promise",
    "promised",
    "assure",
    "assured",
    "certain",
    "certainly",
)


@dataclass
class ComplianceResult:
    """Result of a compliance scan."""
    has_violations: bool = False
    violations: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"has_violations": self.has_violations, "violations": self.violations}


class ComplianceChecker:
    """
    Stateless keyword scan of free text.

    Matching is a case-insensitive substring test, so "guaranteed" also
    reports "guarantee". Each phrase is reported at most once, in list order.
    """

    def __init__(self, phrases: Optional[Sequence[str]] = None):
        self.phrases = tuple(p.lower() for p in (phrases or PROHIBITED_PHRASES))

    def check(self, text: Optional[str]) -> ComplianceResult:
        if not text or not isinstance(text, str):
            return ComplianceResult()

        lowered = text.lower()
        violations = [phrase for phrase in self.phrases if phrase in lowered]
        if violations:
            logger.debug(f"Compliance phrases found: {violations}")
        return ComplianceResult(has_violations=bool(violations), violations=violations)


def check_compliance(text: Optional[str]) -> ComplianceResult:
    """Module-level shortcut using the default phrase list."""
    return ComplianceChecker().check(text)
