"""Data classes for the detection pipeline."""

from dataclasses import dataclass, field
from typing import Optional

# Risk levels, most severe first
RISK_LEVELS = ("CRITICAL", "HIGH", "MEDIUM", "LOW")
SEVERITY_RANK = {level: rank for rank, level in enumerate(RISK_LEVELS)}

# Policy bodies
GOVERNMENT = "GOVERNMENT"
INSTITUTION = "INSTITUTION"

# Acceptance status
STATUS_OK = "OK"
STATUS_REMOVE = "REMOVE"
STATUS_CONDITIONAL = "CONDITIONAL"

# Detection types
MISSING_CLAUSE = "MISSING_CLAUSE"
PROBLEMATIC_TEXT = "PROBLEMATIC_TEXT"


@dataclass(frozen=True)
class PolicyRule:
    id: str
    source: str                        # GOVERNMENT or INSTITUTION
    category: str
    risk: str = "MEDIUM"
    requirement_text: str = ""
    prohibited_patterns: tuple[str, ...] = ()   # lowercase
    acceptance_status: str = STATUS_CONDITIONAL
    references: tuple[str, ...] = ()
    acceptance_criteria: str = ""
    request_to_sponsor: str = ""
    responses: tuple[str, ...] = ()    # aligned with prohibited_patterns, may be ""

    def response_for(self, pattern: str) -> str:
        """Suggested reply to the sponsor for one prohibited pattern."""
        try:
            idx = self.prohibited_patterns.index(pattern)
        except ValueError:
            return ""
        return self.responses[idx] if idx < len(self.responses) else ""


@dataclass(frozen=True)
class ClauseCandidate:
    text: str
    type: str           # label from clause_finder.CLAUSE_TYPES
    confidence: float
    start_index: int    # paragraph offsets in the full document
    end_index: int


@dataclass(frozen=True)
class ClauseDetection:
    id: str
    type: str           # MISSING_CLAUSE or PROBLEMATIC_TEXT
    severity: str
    category: str
    confidence: float
    exact_text: Optional[str] = None
    start_index: Optional[int] = None
    end_index: Optional[int] = None
    page_number: Optional[int] = None
    reference: str = ""
    explanation: str = ""
    preferred_language: str = ""

    def __post_init__(self):
        if self.start_index is not None and self.end_index is not None:
            if self.start_index >= self.end_index:
                raise ValueError(
                    f"Detection {self.id}: start_index {self.start_index} "
                    f">= end_index {self.end_index}"
                )


@dataclass(frozen=True)
class FuzzyMatch:
    matched: bool
    exact_text: str
    start_index: int
    end_index: int
    score: float        # 0.0 = perfect, 1.0 = unrelated

    @classmethod
    def missing(cls, score: float = 1.0) -> "FuzzyMatch":
        return cls(False, MISSING_CLAUSE, -1, -1, score)


@dataclass(frozen=True)
class PageOffsetRange:
    start: int
    end: int


@dataclass(frozen=True)
class PageSpan:
    page_number: int    # 1-based
    start: int          # page-local offsets
    end: int


@dataclass
class IngestReport:
    """Row counters for one policy table."""
    table: str
    rows_read: int = 0
    rules_kept: int = 0
    rows_skipped: int = 0   # "no issue" / marker rows
    rows_dropped: int = 0   # rows that could not yield a usable rule
    notes: list[str] = field(default_factory=list)
