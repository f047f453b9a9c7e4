import openpyxl
import pytest

from compliance_audit.models import (
    GOVERNMENT, INSTITUTION, STATUS_CONDITIONAL, STATUS_REMOVE, IngestReport,
)
from compliance_audit.policy import (
    PolicySources, clear_rule_cache, discover_sources, get_far_clause,
    get_institution_terms, load_rules, load_rules_with_report,
    parse_far_table, parse_institution_table, read_tables,
)


def _by_id(rules):
    return {r.id: r for r in rules}


def test_discover_sources_filters_by_prefix(policy_dir):
    sources = discover_sources(policy_dir)
    assert [p.name for p in sources.far_files] == ["2023-03-20_FARMatrix_Clauses.csv"]
    assert sorted(p.name for p in sources.institution_files) == [
        "ContractTs&CsMatrix_Empty.csv",
        "ContractTs&CsMatrix_Indemnification.csv",
        "ContractTs&CsMatrix_Payment.csv",
    ]


def test_missing_policy_dir_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        discover_sources(tmp_path / "nope")


def test_missing_policy_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_rules(PolicySources(far_files=(tmp_path / "gone.csv",)))


def test_far_remove_row(policy_dir):
    rules = _by_id(load_rules(discover_sources(policy_dir)))
    rule = rules["FAR-Clauses-52.204-21"]
    assert rule.source == GOVERNMENT
    assert rule.category == "Clauses"
    assert rule.acceptance_status == STATUS_REMOVE
    assert rule.risk == "HIGH"
    assert rule.prohibited_patterns == (
        "basic safeguarding of covered contractor information systems",
        "far 52.204-21",
        "clause 52.204-21",
    )
    assert rule.requirement_text == "Please remove this clause."
    assert rule.references == ("52.204-21", "Basic Safeguarding of Covered Contractor Information Systems")


def test_far_conditional_row_uses_criteria(policy_dir):
    rule = _by_id(load_rules(discover_sources(policy_dir)))["FAR-Clauses-52.222-50"]
    assert rule.acceptance_status == STATUS_CONDITIONAL
    assert rule.risk == "HIGH"
    assert rule.prohibited_patterns == ()
    assert rule.requirement_text == "Required for federal flow-down"


def test_ok_and_marker_rows_are_not_loaded(policy_dir):
    rules = load_rules(discover_sources(policy_dir))
    refs = {ref for r in rules for ref in r.references}
    assert "52.227-1" not in refs
    assert "OLD 52.1" not in refs
    assert not any(r.category == "Definitions" for r in rules)


def test_institution_rule(policy_dir):
    rule = _by_id(load_rules(discover_sources(policy_dir)))["INSTITUTION-Indemnification"]
    assert rule.source == INSTITUTION
    # "shall not" in the preferred language outranks the category escalation
    assert rule.risk == "CRITICAL"
    assert rule.prohibited_patterns == ("shall indemnify and hold harmless", "defend and indemnify")
    assert rule.response_for("shall indemnify and hold harmless") == "Strike the indemnity clause."
    assert rule.response_for("defend and indemnify") == ""
    assert rule.requirement_text.startswith("Auburn shall not indemnify")


def test_institution_preferred_language_only(policy_dir):
    rule = _by_id(load_rules(discover_sources(policy_dir)))["INSTITUTION-Payment"]
    assert rule.risk == "MEDIUM"
    assert rule.prohibited_patterns == ()
    assert rule.requirement_text == "Payment shall be made within 30 days of invoice."


def test_every_rule_is_actionable(policy_dir):
    rules = load_rules(discover_sources(policy_dir))
    assert len(rules) == 4
    for rule in rules:
        assert rule.prohibited_patterns or rule.requirement_text
        assert rule.acceptance_status != "OK"


def test_dropped_rows_are_counted(policy_dir, capsys):
    _, reports = load_rules_with_report(discover_sources(policy_dir))
    counts = {r.table: r for r in reports}
    assert counts["Clauses"].rows_read == 6
    assert counts["Clauses"].rules_kept == 2
    assert counts["Clauses"].rows_skipped == 3
    assert counts["Clauses"].rows_dropped == 1
    assert counts["Empty"].rows_dropped == 2
    assert counts["Indemnification"].rows_dropped == 0
    assert "dropped 3 policy rows" in capsys.readouterr().out


def test_rules_are_memoized(policy_dir):
    sources = discover_sources(policy_dir)
    first = load_rules(sources)
    (policy_dir / "2023-03-20_FARMatrix_Clauses.csv").unlink()
    assert load_rules(sources) == first

    clear_rule_cache()
    with pytest.raises(FileNotFoundError):
        load_rules(sources)


def test_duplicate_rule_ids_are_suffixed(tmp_path):
    path = tmp_path / "2023-03-20_FARMatrix_Dup.csv"
    path.write_text(
        "Clause,Title,Acceptance Status\n"
        "52.1,Some Title,REMOVE\n"
        "52.1,Some Title,REMOVE\n"
    )
    rules = load_rules(PolicySources(far_files=(path,)))
    assert [r.id for r in rules] == ["FAR-Dup-52.1", "FAR-Dup-52.1#2"]


def test_far_table_without_status_column_is_dropped():
    report = IngestReport(table="Broken")
    rules = parse_far_table("Broken", [["Clause", "Title"], ["52.1", "x"]], report)
    assert rules == []
    assert report.rows_dropped == 1


def test_institution_category_escalation():
    report = IngestReport(table="Termination")
    rows = [["Preferred Language"], ["Either party may terminate with 30 days notice."]]
    (rule,) = parse_institution_table("Termination", rows, report)
    assert rule.risk == "HIGH"


def test_read_tables_xlsx_single_sheet(tmp_path):
    path = tmp_path / "2023-03-20_FARMatrix_Research.xlsx"
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["Clause", "Title", "Acceptance Status"])
    ws.append(["52.215-2", "Audit and Records", "REMOVE"])
    ws.append([None, None, None])
    wb.save(path)

    tables = read_tables(path, "2023-03-20_FARMatrix_")
    assert tables == [("Research", [
        ["Clause", "Title", "Acceptance Status"],
        ["52.215-2", "Audit and Records", "REMOVE"],
    ])]

    rules = load_rules(PolicySources(far_files=(path,)))
    assert [r.id for r in rules] == ["FAR-Research-52.215-2"]


def test_read_tables_xlsx_sheet_per_table(tmp_path):
    path = tmp_path / "matrix.xlsx"
    wb = openpyxl.Workbook()
    wb.active.title = "Termination"
    wb.active.append(["Preferred Language"])
    extra = wb.create_sheet("Equipment")
    extra.append(["Preferred Language"])
    extra.append(["Title to equipment vests in Auburn."])
    wb.save(path)

    names = [name for name, _ in read_tables(path)]
    assert names == ["Termination", "Equipment"]


def test_read_tables_rejects_unknown_format(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text("{}")
    with pytest.raises(ValueError):
        read_tables(path)


def test_lookups(policy_dir):
    rules = load_rules(discover_sources(policy_dir))
    assert get_far_clause(rules, "52.204-21").id == "FAR-Clauses-52.204-21"
    assert get_far_clause(rules, "52.000-0") is None
    assert get_institution_terms(rules, "indemnification").id == "INSTITUTION-Indemnification"
    assert get_institution_terms(rules, "Clauses") is None
