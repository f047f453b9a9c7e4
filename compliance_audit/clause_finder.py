"""Zero-shot clause classification used to widen detection recall."""

import threading
from typing import Callable, Optional

from .config import (
    CLASSIFIER_MODEL, CLASSIFIER_DEVICE, AI_MIN_CONFIDENCE, AI_MIN_PARAGRAPH_LENGTH,
)
from .matching import split_paragraphs
from .models import ClauseCandidate


CLAUSE_TYPES = [
    "dispute resolution",
    "arbitration",
    "termination",
    "indemnification",
    "liability",
    "equipment",
    "personnel",
    "records retention",
    "confidentiality",
    "intellectual property",
    "payment terms",
    "governing law",
    "warranties",
    "representations",
    "force majeure",
]

# Classifier label -> policy rule category
_CATEGORY_MAP = {
    "dispute resolution": "DisputeResolution",
    "arbitration": "DisputeResolution",
    "termination": "Termination",
    "equipment": "Equipment",
    "personnel": "Personnel",
    "records retention": "RecordsRetention",
    "confidentiality": "Confidential Information",
    "intellectual property": "IP",
    "payment terms": "Payment",
    "governing law": "Governing Law",
    "warranties": "Warranties",
    "indemnification": "Indemnification",
    "liability": "Liability",
}


def map_clause_type_to_category(clause_type: str) -> str:
    """Unmapped labels pass through unchanged."""
    return _CATEGORY_MAP.get(clause_type.lower(), clause_type)


# (text, candidate_labels, multi_label=...) -> {"labels": [...], "scores": [...]}
Classifier = Callable[..., dict]


class ClauseFinder:
    """
    Paragraph-level multi-label classifier over CLAUSE_TYPES.

    The Hugging Face zero-shot pipeline is built on first use, at most once
    per instance. Pass `classifier` to supply any callable with the same
    call contract (tests use a stub).
    """

    def __init__(
        self,
        classifier: Optional[Classifier] = None,
        model_name: str = CLASSIFIER_MODEL,
        device: int = CLASSIFIER_DEVICE,
        labels: Optional[list[str]] = None,
    ):
        self.model_name = model_name
        self.device = device
        self.labels = list(labels or CLAUSE_TYPES)
        self._classifier = classifier
        self._lock = threading.Lock()

    def _ensure_classifier(self) -> Classifier:
        if self._classifier is None:
            with self._lock:
                if self._classifier is None:
                    from transformers import pipeline

                    print(f"  Loading clause classifier: {self.model_name}...")
                    self._classifier = pipeline(
                        "zero-shot-classification",
                        model=self.model_name,
                        device=self.device,
                    )
        return self._classifier

    def find_clauses(
        self,
        document_text: str,
        min_confidence: float = AI_MIN_CONFIDENCE,
    ) -> list[ClauseCandidate]:
        """
        Classify every paragraph longer than AI_MIN_PARAGRAPH_LENGTH and keep
        each (paragraph, label) pair scoring at least `min_confidence`.

        A failure on one paragraph is reported and that paragraph skipped.
        Model load failures propagate. Sorted by confidence, highest first.
        """
        classifier = self._ensure_classifier()
        candidates: list[ClauseCandidate] = []

        for para in split_paragraphs(document_text, AI_MIN_PARAGRAPH_LENGTH):
            try:
                result = classifier(para.text, self.labels, multi_label=True)
            except Exception as e:
                print(f"  Warning: could not classify paragraph at {para.start}: {e}")
                continue

            for label, score in zip(result.get("labels", []), result.get("scores", [])):
                if score >= min_confidence:
                    candidates.append(ClauseCandidate(
                        text=para.text,
                        type=label,
                        confidence=float(score),
                        start_index=para.start,
                        end_index=para.end,
                    ))

        candidates.sort(key=lambda c: -c.confidence)
        return candidates


_default_finder: Optional[ClauseFinder] = None
_default_lock = threading.Lock()


def get_clause_finder() -> ClauseFinder:
    """Process-wide finder backed by the configured model."""
    global _default_finder
    if _default_finder is None:
        with _default_lock:
            if _default_finder is None:
                _default_finder = ClauseFinder()
    return _default_finder


def find_clauses(document_text: str, min_confidence: float = AI_MIN_CONFIDENCE) -> list[ClauseCandidate]:
    return get_clause_finder().find_clauses(document_text, min_confidence)
