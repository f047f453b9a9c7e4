"""Fuzzy clause search and exact span recovery."""

import re
from typing import Iterator, NamedTuple, Optional

from rapidfuzz import fuzz, process

from .config import FUZZY_THRESHOLD, MIN_PARAGRAPH_LENGTH
from .models import FuzzyMatch


_PARAGRAPH_BREAK_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")

# Up to three short words may sit between two significant pattern words.
_WORD_GAP = r"\s+(?:\S+\s+){0,3}"


class Paragraph(NamedTuple):
    text: str
    start: int
    end: int


class Span(NamedTuple):
    text: str
    start: int
    end: int


def split_paragraphs(text: str, min_length: int = MIN_PARAGRAPH_LENGTH) -> Iterator[Paragraph]:
    """
    Yield blank-line separated paragraphs with their offsets in `text`.

    Paragraph text is whitespace-trimmed and the offsets bound the trimmed
    text, so text[p.start:p.end] == p.text. Paragraphs of `min_length`
    characters or fewer are noise and are skipped.
    """
    pos = 0
    for brk in _PARAGRAPH_BREAK_RE.finditer(text):
        yield from _trimmed(text, pos, brk.start(), min_length)
        pos = brk.end()
    yield from _trimmed(text, pos, len(text), min_length)


def _trimmed(text: str, start: int, end: int, min_length: int) -> Iterator[Paragraph]:
    raw = text[start:end]
    body = raw.strip()
    if len(body) > min_length:
        lead = len(raw) - len(raw.lstrip())
        yield Paragraph(body, start + lead, start + lead + len(body))


def _fold(text: str) -> str:
    """Lowercase without changing the string length (offsets stay valid)."""
    lowered = text.lower()
    if len(lowered) == len(text):
        return lowered
    return "".join(c.lower() if len(c.lower()) == 1 else c for c in text)


# ---------------------------------------------------------------------------
# Span extraction
# ---------------------------------------------------------------------------

def extract_exact_span(text: str, pattern: str) -> Optional[Span]:
    """
    Pin the exact span of `pattern` inside `text`.

    Tries a case-insensitive substring first. Failing that, looks for the
    first three significant words (longer than 3 chars) of the pattern close
    together and widens the hit to its enclosing sentence. Returns None when
    neither works; the caller then only has an approximate location.
    """
    if not pattern.strip():
        return None

    idx = _fold(text).find(_fold(pattern))
    if idx != -1:
        return Span(text[idx:idx + len(pattern)], idx, idx + len(pattern))

    words = [w for w in pattern.split() if len(w) > 3][:3]
    if not words:
        return None

    m = re.search(_WORD_GAP.join(re.escape(w) for w in words), text, re.IGNORECASE)
    if not m:
        return None
    return _enclosing_sentence(text, m.start(), m.end())


def _enclosing_sentence(text: str, start: int, end: int) -> Optional[Span]:
    sentence_start = 0
    for term in _SENTENCE_END_RE.finditer(text, 0, start):
        sentence_start = term.end()

    term = _SENTENCE_END_RE.search(text, end)
    sentence_end = term.end() if term else len(text)

    raw = text[sentence_start:sentence_end]
    body = raw.strip()
    if not body:
        return None
    lead = len(raw) - len(raw.lstrip())
    begin = sentence_start + lead
    return Span(body, begin, begin + len(body))


# ---------------------------------------------------------------------------
# Fuzzy search
# ---------------------------------------------------------------------------

def _coverage_ratio(query: str, choice: str, **kwargs) -> float:
    """
    partial_ratio scaled by how much of `query` the choice can cover.

    partial_ratio slides the shorter string over the longer one, so a short
    paragraph that is a fragment of a long pattern would otherwise score 100.
    """
    ratio = fuzz.partial_ratio(query, choice)
    if choice and len(choice) < len(query):
        ratio *= len(choice) / len(query)
    return ratio


def fuzzy_search(document_text: str, pattern: str, threshold: float = FUZZY_THRESHOLD) -> FuzzyMatch:
    """
    Approximate search for `pattern` among the paragraphs of a document.

    score = 1 - ratio / 100, where ratio is partial_ratio scaled down when
    the paragraph is shorter than the pattern; 0.0 is a verbatim hit. The best
    paragraph is accepted when its score is <= threshold; the exact span is
    then recovered with extract_exact_span, falling back to the fuzzy
    alignment window. Offsets are global to `document_text`.
    """
    if not pattern.strip():
        return FuzzyMatch.missing()

    paragraphs = list(split_paragraphs(document_text))
    if not paragraphs:
        return FuzzyMatch.missing()

    query = _fold(pattern)
    best = process.extractOne(
        query,
        [_fold(p.text) for p in paragraphs],
        scorer=_coverage_ratio,
        processor=None,
    )
    if best is None:
        return FuzzyMatch.missing()

    folded_para, ratio, idx = best
    score = 1.0 - ratio / 100.0
    if score > threshold:
        return FuzzyMatch.missing(score)

    para = paragraphs[idx]
    span = extract_exact_span(para.text, pattern)
    if span:
        start, end = para.start + span.start, para.start + span.end
    else:
        alignment = fuzz.partial_ratio_alignment(query, folded_para, processor=None)
        start = para.start + alignment.dest_start
        end = para.start + alignment.dest_end
        if end <= start:
            start, end = para.start, para.end

    return FuzzyMatch(
        matched=True,
        exact_text=document_text[start:end],
        start_index=start,
        end_index=end,
        score=score,
    )


def batch_fuzzy_search(
    document_text: str,
    patterns: list[str],
    threshold: float = FUZZY_THRESHOLD,
) -> dict[str, FuzzyMatch]:
    return {p: fuzzy_search(document_text, p, threshold) for p in patterns}
