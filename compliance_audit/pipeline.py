"""Main orchestration pipeline: rule-based and AI-assisted clause detection."""

import time
from typing import Callable, Optional, Sequence

from .clause_finder import ClauseFinder, get_clause_finder, map_clause_type_to_category
from .config import (
    USE_AI, AI_MIN_CONFIDENCE, FUZZY_THRESHOLD, MISSING_CLAUSE_CONFIDENCE,
    CLASSIFIER_MODEL,
)
from .matching import fuzzy_search
from .models import (
    ClauseCandidate, ClauseDetection, PolicyRule,
    MISSING_CLAUSE, PROBLEMATIC_TEXT, SEVERITY_RANK, STATUS_OK,
)
from .output import generate_summary
from .pages import join_pages, resolve_pages
from .policy import load_rules

ProgressCallback = Callable[[int, int, str], None]


def _check_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1 (got {value})")


def _related(category: str, rule: PolicyRule) -> bool:
    a, b = category.lower(), rule.category.lower()
    if not a or not b:
        return False
    return a in b or b in a


def _detect(
    document_text: str,
    rules: Sequence[PolicyRule],
    use_ai: bool,
    min_confidence: float,
    fuzzy_threshold: float,
    clause_finder: Optional[ClauseFinder],
    progress: ProgressCallback,
) -> tuple[list[ClauseDetection], list[ClauseCandidate]]:
    detections: list[ClauseDetection] = []
    seen: set[tuple[str, str]] = set()   # (exact_text, category)

    def add_problem(**fields) -> None:
        key = (fields["exact_text"], fields["category"])
        if key in seen:
            return
        seen.add(key)
        detections.append(ClauseDetection(type=PROBLEMATIC_TEXT, **fields))

    # Prohibited language present, required language absent
    progress(2, 4, f"[Step 2/4] Matching {len(rules)} rules...")
    for rule in rules:
        reference = ", ".join(rule.references)

        for pattern in rule.prohibited_patterns:
            match = fuzzy_search(document_text, pattern, fuzzy_threshold)
            if not match.matched:
                continue
            add_problem(
                id=f"{rule.id}-{len(detections)}",
                severity=rule.risk,
                category=rule.category,
                exact_text=match.exact_text,
                start_index=match.start_index,
                end_index=match.end_index,
                reference=reference,
                explanation=(
                    rule.request_to_sponsor
                    or rule.response_for(pattern)
                    or f"Prohibited pattern found: {pattern}"
                ),
                preferred_language=rule.requirement_text,
                confidence=1.0 - match.score,
            )

        if rule.requirement_text and rule.acceptance_status != STATUS_OK:
            match = fuzzy_search(document_text, rule.requirement_text, fuzzy_threshold)
            if not match.matched and rule.risk in ("CRITICAL", "HIGH"):
                detections.append(ClauseDetection(
                    id=f"{rule.id}-missing",
                    type=MISSING_CLAUSE,
                    severity=rule.risk,
                    category=rule.category,
                    reference=reference,
                    explanation=f"Missing required clause: {rule.category}",
                    preferred_language=rule.requirement_text,
                    confidence=MISSING_CLAUSE_CONFIDENCE,
                ))

    # AI candidates narrow the search to classified paragraphs
    candidates: list[ClauseCandidate] = []
    if use_ai:
        progress(3, 4, "[Step 3/4] Classifying paragraphs...")
        try:
            finder = clause_finder or get_clause_finder()
            candidates = finder.find_clauses(document_text, min_confidence)
        except Exception as e:
            print(f"  Warning: AI clause finding failed, using rule matching only: {e}")
            candidates = []
        print(f"  Clause candidates: {len(candidates)}")
    else:
        progress(3, 4, "[Step 3/4] Skipping clause classifier...")

    for candidate in candidates:
        category = map_clause_type_to_category(candidate.type)
        for rule in rules:
            if not _related(category, rule):
                continue
            for pattern in rule.prohibited_patterns:
                match = fuzzy_search(candidate.text, pattern, fuzzy_threshold)
                if not match.matched:
                    continue
                add_problem(
                    id=f"AI-{rule.id}-{len(detections)}",
                    severity=rule.risk,
                    category=rule.category,
                    exact_text=match.exact_text,
                    start_index=candidate.start_index + match.start_index,
                    end_index=candidate.start_index + match.end_index,
                    reference=", ".join(rule.references),
                    explanation=f"AI detected {candidate.type} clause with prohibited language",
                    preferred_language=rule.requirement_text,
                    confidence=candidate.confidence * (1.0 - match.score),
                )

    # sorted() is stable: ties keep insertion order
    progress(4, 4, "[Step 4/4] Ranking detections...")
    detections = sorted(detections, key=lambda d: SEVERITY_RANK.get(d.severity, len(SEVERITY_RANK)))
    return detections, candidates


def run_detections(
    document_text: str,
    rules: Optional[Sequence[PolicyRule]] = None,
    use_ai: bool = USE_AI,
    min_confidence: float = AI_MIN_CONFIDENCE,
    fuzzy_threshold: float = FUZZY_THRESHOLD,
    clause_finder: Optional[ClauseFinder] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> list[ClauseDetection]:
    """
    Audit a contract against the policy rules.

    Returns detections ordered CRITICAL, HIGH, MEDIUM, LOW. An empty list is
    a clean result. Classifier problems degrade the run to rule matching;
    only rule loading (missing policy files) raises.
    """
    detections, _ = _run(
        document_text, rules, use_ai, min_confidence, fuzzy_threshold,
        clause_finder, progress_callback,
    )
    return detections


def _run(document_text, rules, use_ai, min_confidence, fuzzy_threshold, clause_finder, progress_callback):
    _check_unit("min_confidence", min_confidence)
    _check_unit("fuzzy_threshold", fuzzy_threshold)

    def progress(step, total, msg):
        if progress_callback:
            progress_callback(step, total, msg)
        else:
            print(msg)

    progress(1, 4, "[Step 1/4] Loading rules...")
    if rules is None:
        rules = load_rules()
    return _detect(
        document_text, list(rules), use_ai, min_confidence, fuzzy_threshold,
        clause_finder, progress,
    )


def detect_document(
    pages: Sequence[str],
    rules: Optional[Sequence[PolicyRule]] = None,
    **options,
) -> list[ClauseDetection]:
    """Run detections over page-extracted text and attach page numbers."""
    detections = run_detections(join_pages(pages), rules=rules, **options)
    return resolve_pages(detections, pages)


def audit_contract(
    document_text: Optional[str] = None,
    pages: Optional[Sequence[str]] = None,
    rules: Optional[Sequence[PolicyRule]] = None,
    use_ai: bool = USE_AI,
    min_confidence: float = AI_MIN_CONFIDENCE,
    fuzzy_threshold: float = FUZZY_THRESHOLD,
    clause_finder: Optional[ClauseFinder] = None,
    progress_callback: Optional[ProgressCallback] = None,
) -> dict:
    """
    Full audit run for reporting.

    Takes either the document text or its per-page text (pages win, and the
    document text is then their join). Returns a dict with metadata,
    summary, detections, and the classifier candidates.
    """
    if pages is not None:
        document_text = join_pages(pages)
    if document_text is None:
        raise ValueError("Provide document_text or pages.")

    t0 = time.time()
    if rules is None:
        rules = load_rules()
    detections, candidates = _run(
        document_text, rules, use_ai, min_confidence, fuzzy_threshold,
        clause_finder, progress_callback,
    )
    if pages is not None:
        detections = resolve_pages(detections, pages)

    metadata = {
        "tool": "Contract Compliance Audit",
        "rules_loaded": len(rules),
        "document_length": len(document_text),
        "pages": len(pages) if pages is not None else None,
        "use_ai": use_ai,
        "classifier_model": (clause_finder.model_name if clause_finder else CLASSIFIER_MODEL) if use_ai else None,
        "fuzzy_threshold": fuzzy_threshold,
        "min_confidence": min_confidence,
        "elapsed_seconds": round(time.time() - t0, 1),
    }
    return {
        "metadata": metadata,
        "summary": generate_summary(detections),
        "detections": detections,
        "candidates": candidates,
    }
