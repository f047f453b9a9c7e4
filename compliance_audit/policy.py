"""Rule repository: policy matrix ingestion and rule lookups."""

import csv
from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Optional

from .config import (
    POLICY_DIR, FAR_FILE_PREFIX, FAR_EXCLUDED_TABLES,
    INSTITUTION_FILE_PREFIX, POLICY_FILE_SUFFIXES,
)
from .models import (
    PolicyRule, IngestReport, GOVERNMENT, INSTITUTION,
    STATUS_OK, STATUS_REMOVE, STATUS_CONDITIONAL,
)

_ESCALATING_CATEGORIES = ("dispute", "termination", "indemnif")
_NEGATION_TERMS = ("shall not", "prohibited")


@dataclass(frozen=True)
class PolicySources:
    far_files: tuple[Path, ...] = ()
    institution_files: tuple[Path, ...] = ()


# ---------------------------------------------------------------------------
# Source discovery and table reading
# ---------------------------------------------------------------------------

def discover_sources(policy_dir: Optional[Path] = None) -> PolicySources:
    """Find both policy matrices in a directory by their file-name prefixes."""
    policy_dir = Path(policy_dir or POLICY_DIR)
    if not policy_dir.is_dir():
        raise FileNotFoundError(f"Policy directory not found: {policy_dir}")

    files = sorted(
        p for p in policy_dir.iterdir()
        if p.is_file() and p.suffix.lower() in POLICY_FILE_SUFFIXES
    )
    far = tuple(
        p for p in files
        if p.name.startswith(FAR_FILE_PREFIX)
        and _table_name(p, FAR_FILE_PREFIX) not in FAR_EXCLUDED_TABLES
    )
    tnc = tuple(p for p in files if p.name.startswith(INSTITUTION_FILE_PREFIX))
    return PolicySources(far_files=far, institution_files=tnc)


def _table_name(path: Path, prefix: str) -> str:
    stem = path.stem
    return stem[len(prefix):] if stem.startswith(prefix) else stem


def _cell_text(value) -> str:
    return str(value).strip() if value is not None else ""


def read_tables(path: Path, prefix: str = "") -> list[tuple[str, list[list[str]]]]:
    """
    Read a tabular policy file into (table_name, rows) pairs.

    A CSV file is one table named after the file. An XLSX workbook yields one
    table per sheet; a single-sheet workbook is named after the file.
    Fully blank rows are skipped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        with open(path, newline="", encoding="utf-8-sig") as f:
            rows = [[_cell_text(c) for c in row] for row in csv.reader(f)]
        return [(_table_name(path, prefix), [r for r in rows if any(r)])]

    if suffix == ".xlsx":
        import openpyxl

        wb = openpyxl.load_workbook(str(path), read_only=True, data_only=True)
        try:
            tables = []
            single = len(wb.sheetnames) == 1
            for sheet_name in wb.sheetnames:
                ws = wb[sheet_name]
                rows = [[_cell_text(c) for c in row] for row in ws.iter_rows(values_only=True)]
                name = _table_name(path, prefix) if single else sheet_name
                tables.append((name, [r for r in rows if any(r)]))
            return tables
        finally:
            wb.close()

    raise ValueError(f"Unsupported policy file type: {path.name}")


# ---------------------------------------------------------------------------
# Government acquisition (FAR) matrix: one row per clause
# ---------------------------------------------------------------------------

def _normalize_status(raw: str) -> str:
    status = raw.strip().rstrip("*").strip().upper()
    if status in (STATUS_OK, STATUS_REMOVE):
        return status
    return STATUS_CONDITIONAL


def _far_risk(status: str, criteria: str) -> str:
    low = criteria.lower()
    if status == STATUS_REMOVE:
        return "HIGH"
    if "critical" in low:
        return "CRITICAL"
    if "required" in low:
        return "HIGH"
    return "MEDIUM"


def parse_far_table(category: str, rows: list[list[str]], report: IngestReport) -> list[PolicyRule]:
    """Parse one FAR matrix table. The first row is the header."""
    if len(rows) < 2:
        report.notes.append("no data rows")
        return []

    header = [h.lower() for h in rows[0]]

    def find_col(*keywords):
        for i, h in enumerate(header):
            if any(kw in h for kw in keywords):
                return i
        return None

    col_clause = find_col("clause")
    col_title = find_col("title")
    col_status = find_col("status")
    col_criteria = find_col("criteria", "notes")
    col_request = find_col("request", "requirement", "required language")

    if col_clause is None or col_status is None:
        report.notes.append("missing clause/status column")
        report.rows_dropped += len(rows) - 1
        report.rows_read += len(rows) - 1
        return []

    rules: list[PolicyRule] = []
    for row in rows[1:]:
        report.rows_read += 1

        def cell(idx):
            if idx is None or idx >= len(row):
                return ""
            return row[idx]

        clause = cell(col_clause)
        if not clause or clause.upper().startswith("OLD") or clause == "KEY:":
            report.rows_skipped += 1
            continue

        raw_status = cell(col_status)
        if not raw_status or _normalize_status(raw_status) == STATUS_OK:
            report.rows_skipped += 1
            continue

        status = _normalize_status(raw_status)
        title = cell(col_title)
        criteria = cell(col_criteria)
        request = cell(col_request)

        patterns: list[str] = []
        if status == STATUS_REMOVE:
            if title:
                patterns.append(title.lower())
            if "52." in clause:
                patterns.append(f"far {clause.lower()}")
                patterns.append(f"clause {clause.lower()}")

        requirement = request or criteria
        if not patterns and not requirement:
            report.rows_dropped += 1
            continue

        rules.append(PolicyRule(
            id=f"FAR-{category}-{clause}",
            source=GOVERNMENT,
            category=category,
            risk=_far_risk(status, criteria),
            requirement_text=requirement,
            prohibited_patterns=tuple(patterns),
            acceptance_status=status,
            references=tuple(r for r in (clause, title) if r),
            acceptance_criteria=criteria,
            request_to_sponsor=request,
        ))
        report.rules_kept += 1

    return rules


# ---------------------------------------------------------------------------
# Institution preferred-terms matrix: one table per category
# ---------------------------------------------------------------------------

def _institution_risk(category: str, preferred: str) -> str:
    risk = "MEDIUM"
    if any(kw in category.lower() for kw in _ESCALATING_CATEGORIES):
        risk = "HIGH"
    if any(term in preferred.lower() for term in _NEGATION_TERMS):
        risk = "CRITICAL"
    return risk


def parse_institution_table(category: str, rows: list[list[str]], report: IngestReport) -> list[PolicyRule]:
    """
    Parse one preferred-terms table.

    Layout: a cell labelled "... Preferred Language" followed by a row holding
    the language itself, then a "Common Problems | Why | Response" header after
    which every row lists one problematic phrase.
    """
    preferred = ""
    patterns: list[str] = []
    responses: list[str] = []
    report.rows_read += len(rows)

    i = 0
    while i < len(rows):
        row = rows[i]
        first = row[0] if row else ""
        if "preferred language" in first.lower() and i + 1 < len(rows):
            preferred = rows[i + 1][0] if rows[i + 1] else ""
            i += 2
            continue
        if (
            len(row) > 1
            and first.lower() == "common problems"
            and row[1].lower() == "why"
        ):
            for problem in rows[i + 1:]:
                if problem and problem[0]:
                    patterns.append(problem[0].lower())
                    responses.append(problem[2] if len(problem) > 2 else "")
            break
        i += 1

    if not patterns and not preferred:
        report.rows_dropped += len(rows)
        report.notes.append("no preferred language or common problems")
        return []

    report.rules_kept += 1
    return [PolicyRule(
        id=f"INSTITUTION-{category}",
        source=INSTITUTION,
        category=category,
        risk=_institution_risk(category, preferred),
        requirement_text=preferred,
        prohibited_patterns=tuple(patterns),
        acceptance_status=STATUS_CONDITIONAL,
        references=(category,),
        responses=tuple(responses),
    )]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _load_files(paths: Iterable[Path], prefix: str, parser) -> tuple[list[PolicyRule], list[IngestReport]]:
    rules: list[PolicyRule] = []
    reports: list[IngestReport] = []
    for path in paths:
        for name, rows in read_tables(path, prefix):
            report = IngestReport(table=name)
            rules.extend(parser(name, rows, report))
            reports.append(report)
    return rules, reports


def load_far_rules(paths: Iterable[Path]) -> tuple[list[PolicyRule], list[IngestReport]]:
    return _load_files(paths, FAR_FILE_PREFIX, parse_far_table)


def load_institution_rules(paths: Iterable[Path]) -> tuple[list[PolicyRule], list[IngestReport]]:
    return _load_files(paths, INSTITUTION_FILE_PREFIX, parse_institution_table)


def _unique_ids(rules: list[PolicyRule]) -> list[PolicyRule]:
    """Suffix repeated ids (same clause listed twice in a table) with #2, #3, ..."""
    seen: dict[str, int] = {}
    out = []
    for rule in rules:
        n = seen.get(rule.id, 0) + 1
        seen[rule.id] = n
        out.append(rule if n == 1 else replace(rule, id=f"{rule.id}#{n}"))
    return out


@lru_cache(maxsize=8)
def _load_cached(far_files: tuple[Path, ...], tnc_files: tuple[Path, ...]):
    far_rules, far_reports = load_far_rules(far_files)
    tnc_rules, tnc_reports = load_institution_rules(tnc_files)
    rules = tuple(_unique_ids(far_rules + tnc_rules))
    reports = tuple(far_reports + tnc_reports)

    dropped = sum(r.rows_dropped for r in reports)
    if dropped:
        tables = ", ".join(r.table for r in reports if r.rows_dropped)
        print(f"  Warning: dropped {dropped} policy rows with no usable rule ({tables})")
    return rules, reports


def load_rules_with_report(sources: Optional[PolicySources] = None) -> tuple[list[PolicyRule], list[IngestReport]]:
    """Load every rule plus per-table ingestion counters (memoized per source set)."""
    if sources is None:
        sources = discover_sources()
    far = tuple(Path(p).resolve() for p in sources.far_files)
    tnc = tuple(Path(p).resolve() for p in sources.institution_files)
    rules, reports = _load_cached(far, tnc)
    return list(rules), list(reports)


def load_rules(sources: Optional[PolicySources] = None) -> list[PolicyRule]:
    """
    Load the government and institution rule sets.

    Rows marked OK are not actionable and are skipped. Rows that yield neither
    prohibited patterns nor requirement text are dropped and counted in the
    ingestion report. Raises FileNotFoundError when a source is missing.
    """
    rules, _ = load_rules_with_report(sources)
    return rules


def clear_rule_cache() -> None:
    _load_cached.cache_clear()


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_far_clause(rules: Iterable[PolicyRule], clause_number: str) -> Optional[PolicyRule]:
    for rule in rules:
        if rule.source == GOVERNMENT and clause_number in rule.references:
            return rule
    return None


def get_institution_terms(rules: Iterable[PolicyRule], category: str) -> Optional[PolicyRule]:
    wanted = category.lower()
    for rule in rules:
        if rule.source == INSTITUTION and rule.category.lower() == wanted:
            return rule
    return None
