#!/usr/bin/env python3
"""
Contract Compliance Audit

Audits a contract's extracted text against the government acquisition (FAR)
matrix and the institution's preferred-terms matrix, and writes the ranked
detections to a JSON report.

Usage:
    python main.py <contract.txt> [--pages <dir>] [--policy-dir <dir>]
                   [--threshold 0.35] [--min-confidence 0.3] [--no-ai]
                   [--output <file.json>]

With --pages, every *.txt file in <dir> (sorted by name) is one page and the
detections are annotated with page numbers; the contract argument is ignored.
"""

import sys
from pathlib import Path

from compliance_audit.config import (
    OUTPUT_PATH, FUZZY_THRESHOLD, AI_MIN_CONFIDENCE, USE_AI,
)
from compliance_audit.output import print_rich_summary, write_report
from compliance_audit.pipeline import audit_contract
from compliance_audit.policy import discover_sources, load_rules


def _usage() -> None:
    print("Usage: python main.py <contract.txt> [--pages <dir>] [--policy-dir <dir>] "
          "[--threshold X] [--min-confidence X] [--no-ai] [--output <file.json>]")
    print("\nExamples:")
    print("  python main.py contract.txt                      # rules + clause classifier")
    print("  python main.py contract.txt --no-ai              # rule matching only")
    print("  python main.py - --pages extracted_pages/        # page-aware run")


def _float_arg(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        print(f"Error: {name} must be a number (got '{value}')")
        sys.exit(1)


def main() -> None:
    args = sys.argv[1:]
    if not args or args[0] in ("-h", "--help"):
        _usage()
        sys.exit(0)

    input_arg = None
    pages_dir = None
    policy_dir = None
    output_path = OUTPUT_PATH
    threshold = FUZZY_THRESHOLD
    min_confidence = AI_MIN_CONFIDENCE
    use_ai = USE_AI

    i = 0
    while i < len(args):
        if args[i] == "--pages" and i + 1 < len(args):
            pages_dir = Path(args[i + 1])
            i += 2
        elif args[i] == "--policy-dir" and i + 1 < len(args):
            policy_dir = Path(args[i + 1])
            i += 2
        elif args[i] == "--threshold" and i + 1 < len(args):
            threshold = _float_arg("--threshold", args[i + 1])
            i += 2
        elif args[i] == "--min-confidence" and i + 1 < len(args):
            min_confidence = _float_arg("--min-confidence", args[i + 1])
            i += 2
        elif args[i] == "--output" and i + 1 < len(args):
            output_path = Path(args[i + 1])
            i += 2
        elif args[i] == "--no-ai":
            use_ai = False
            i += 1
        else:
            input_arg = args[i]
            i += 1

    pages = None
    text = None
    if pages_dir:
        if not pages_dir.is_dir():
            print(f"Error: pages directory not found: {pages_dir}")
            sys.exit(1)
        pages = [p.read_text(encoding="utf-8") for p in sorted(pages_dir.glob("*.txt"))]
        print(f"Input: {len(pages)} pages from {pages_dir}")
    elif input_arg:
        input_path = Path(input_arg)
        if not input_path.exists():
            print(f"Error: File not found: {input_path}")
            sys.exit(1)
        text = input_path.read_text(encoding="utf-8")
        print(f"Input: {input_path} ({len(text)} chars)")
    else:
        _usage()
        sys.exit(1)

    try:
        rules = load_rules(discover_sources(policy_dir))
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"  Loaded {len(rules)} rules")

    result = audit_contract(
        document_text=text,
        pages=pages,
        rules=rules,
        use_ai=use_ai,
        min_confidence=min_confidence,
        fuzzy_threshold=threshold,
    )

    path = write_report(output_path, result["metadata"], result["summary"], result["detections"])
    print(f"  detections.json written to: {path}")
    print_rich_summary(result["summary"], result["detections"], result["metadata"])


if __name__ == "__main__":
    main()
