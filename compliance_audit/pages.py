"""Map global character offsets back to pages of the source document."""

from dataclasses import replace
from typing import Optional, Sequence

import numpy as np

from .models import ClauseDetection, PageOffsetRange, PageSpan


# Joins per-page text into the document text that detection offsets refer to.
# PageIndex counts exactly this separator; never join pages any other way.
PAGE_SEPARATOR = "\n\n"


def join_pages(pages: Sequence[str], separator: str = PAGE_SEPARATOR) -> str:
    return separator.join(pages)


class PageIndex:
    """
    Cumulative offset ranges over per-page text.

    Page i (0-based) owns [start, end) where the range covers the page text
    plus the separator that follows it (the last page has none). Ranges are
    contiguous, so every offset in [0, total_length) maps to exactly one page.
    """

    def __init__(self, pages: Sequence[str], separator: str = PAGE_SEPARATOR):
        self.pages = list(pages)
        self.separator = separator

        lengths = np.array([len(p) for p in self.pages], dtype=np.int64)
        if len(lengths):
            lengths[:-1] += len(separator)
        self._ends = np.cumsum(lengths)
        self._starts = self._ends - lengths
        self.total_length = int(self._ends[-1]) if len(lengths) else 0

    @property
    def ranges(self) -> list[PageOffsetRange]:
        return [PageOffsetRange(int(s), int(e)) for s, e in zip(self._starts, self._ends)]

    def page_of(self, offset: int) -> Optional[int]:
        """1-based page containing `offset`, or None when out of range."""
        if offset < 0 or offset >= self.total_length:
            return None
        # first page whose end lies beyond the offset; empty pages never qualify
        idx = int(np.searchsorted(self._ends, offset, side="right"))
        return idx + 1

    def page_span(self, start: int, end: int) -> Optional[PageSpan]:
        """Page-local span of [start, end), clipped to the text of the start page."""
        page = self.page_of(start)
        if page is None:
            return None
        page_start = int(self._starts[page - 1])
        page_len = len(self.pages[page - 1])
        local_start = min(start - page_start, page_len)
        local_end = max(local_start, min(end - page_start, page_len))
        return PageSpan(page, local_start, local_end)


def resolve_pages(
    detections: Sequence[ClauseDetection],
    pages: Sequence[str],
    separator: str = PAGE_SEPARATOR,
) -> list[ClauseDetection]:
    """
    Return the detections with page_number filled in.

    Detections without offsets (missing clauses) or with offsets outside the
    joined page text keep page_number unset.
    """
    index = PageIndex(pages, separator)
    resolved = []
    for d in detections:
        page = index.page_of(d.start_index) if d.start_index is not None else None
        resolved.append(replace(d, page_number=page) if page is not None else d)
    return resolved
