"""Output generation: summary, JSON export, rich terminal output."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Sequence

from .models import ClauseDetection, RISK_LEVELS, MISSING_CLAUSE, PROBLEMATIC_TEXT


def detection_to_dict(detection: ClauseDetection) -> dict:
    return asdict(detection)


def generate_summary(detections: Sequence[ClauseDetection]) -> dict:
    by_severity = {level: 0 for level in RISK_LEVELS}
    by_type = {MISSING_CLAUSE: 0, PROBLEMATIC_TEXT: 0}
    by_category: dict[str, int] = {}
    for d in detections:
        by_severity[d.severity] = by_severity.get(d.severity, 0) + 1
        by_type[d.type] = by_type.get(d.type, 0) + 1
        by_category[d.category] = by_category.get(d.category, 0) + 1

    return {
        "total_detections": len(detections),
        "severity_breakdown": by_severity,
        "type_breakdown": by_type,
        "category_breakdown": by_category,
        "critical_count": by_severity["CRITICAL"],
        "missing_clause_count": by_type[MISSING_CLAUSE],
        "top_risks": [
            {"id": d.id, "category": d.category, "severity": d.severity,
             "type": d.type, "page": d.page_number,
             "summary": (d.explanation or "")[:200]}
            for d in detections[:10]
        ],
    }


def write_report(path: Path, metadata: dict, summary: dict, detections: Sequence[ClauseDetection]) -> Path:
    """Write metadata, summary, and detections as one JSON document."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    output = {
        "metadata": metadata,
        "summary": summary,
        "detections": [detection_to_dict(d) for d in detections],
    }
    with open(path, "w") as f:
        json.dump(output, f, indent=2, ensure_ascii=False)
    return path


def print_rich_summary(summary: dict, detections: Sequence[ClauseDetection], metadata: dict) -> None:
    from rich import box
    from rich.console import Console
    from rich.panel import Panel
    from rich.table import Table

    console = Console()
    console.print()
    sev = summary.get("severity_breakdown", {})
    types = summary.get("type_breakdown", {})
    summary_text = (
        f"[bold]Detections:[/bold] {summary['total_detections']}\n"
        f"[bold magenta]Critical:[/bold magenta] {sev.get('CRITICAL', 0)}  "
        f"[bold red]High:[/bold red] {sev.get('HIGH', 0)}  "
        f"[bold yellow]Medium:[/bold yellow] {sev.get('MEDIUM', 0)}  "
        f"[bold green]Low:[/bold green] {sev.get('LOW', 0)}\n"
        f"[bold]Problematic text:[/bold] {types.get(PROBLEMATIC_TEXT, 0)}  "
        f"[bold]Missing clauses:[/bold] {types.get(MISSING_CLAUSE, 0)}\n"
        f"[bold]Rules:[/bold] {metadata.get('rules_loaded', 'N/A')}  "
        f"[bold]Classifier:[/bold] {metadata.get('classifier_model') or 'off'}"
    )
    console.print(Panel(summary_text, title="Compliance Audit Summary", border_style="blue", expand=False))

    if not detections:
        console.print("[bold green]No policy violations detected.[/bold green]")
        console.print()
        return

    table = Table(title="Top Detections", box=box.ROUNDED, show_lines=True)
    table.add_column("Severity", width=9)
    table.add_column("Category", width=22)
    table.add_column("Type", width=10)
    table.add_column("Page", width=5)
    table.add_column("Conf.", width=6)
    table.add_column("Text / Explanation", width=60)
    sev_style = {"CRITICAL": "bold magenta", "HIGH": "bold red", "MEDIUM": "bold yellow", "LOW": "bold green"}
    for d in detections[:10]:
        body = d.exact_text or d.explanation
        table.add_row(
            f"[{sev_style.get(d.severity, '')}]{d.severity}[/]",
            d.category,
            "missing" if d.type == MISSING_CLAUSE else "text",
            str(d.page_number) if d.page_number else "-",
            f"{d.confidence * 100:.0f}%",
            body[:80] + "..." if len(body) > 80 else body,
        )
    console.print(table)
    console.print()
