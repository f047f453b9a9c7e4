import pytest

from compliance_audit.clause_finder import ClauseFinder
from compliance_audit.policy import clear_rule_cache


FAR_CSV = """Clause,Title,Date,Acceptance Status*,Acceptance Criteria or Additional Notes,Request to Sponsor
KEY:,,,,,
52.227-1,Authorization and Consent,DEC 2007,OK,,
52.204-21,Basic Safeguarding of Covered Contractor Information Systems,NOV 2021,REMOVE,,Please remove this clause.
52.222-50,Combating Trafficking in Persons,OCT 2020,C,Required for federal flow-down,
OLD 52.1,Old Clause,,REMOVE,,
52.999-1,,,C,,
"""

DEFINITIONS_CSV = """Term,Definition
Contractor,The party performing the work
"""

INDEMNIFICATION_CSV = """Auburn's Preferred Language,,
"Auburn shall not indemnify any party, as prohibited by state law.",,
,,
Common Problems,Why,Response
Shall indemnify and hold harmless,State entity cannot indemnify,Strike the indemnity clause.
Defend and indemnify,Same reason,
"""

PAYMENT_CSV = """Preferred Language
Payment shall be made within 30 days of invoice.
"""

EMPTY_CSV = """Notes,
nothing useful here,
"""


@pytest.fixture(autouse=True)
def _fresh_rule_cache():
    clear_rule_cache()
    yield
    clear_rule_cache()


@pytest.fixture
def policy_dir(tmp_path):
    d = tmp_path / "policy"
    d.mkdir()
    (d / "2023-03-20_FARMatrix_Clauses.csv").write_text(FAR_CSV)
    (d / "2023-03-20_FARMatrix_Definitions.csv").write_text(DEFINITIONS_CSV)
    (d / "ContractTs&CsMatrix_Indemnification.csv").write_text(INDEMNIFICATION_CSV)
    (d / "ContractTs&CsMatrix_Payment.csv").write_text(PAYMENT_CSV)
    (d / "ContractTs&CsMatrix_Empty.csv").write_text(EMPTY_CSV)
    (d / "README.txt").write_text("not a policy table")
    return d


class StubClassifier:
    """Zero-shot pipeline stand-in: labels paragraphs by keyword."""

    def __init__(self, keywords=None, fail_on=None):
        self.keywords = keywords or {}
        self.fail_on = fail_on
        self.calls = []

    def __call__(self, text, labels, multi_label=False):
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise RuntimeError("inference failed")
        scores = {label: 0.05 for label in labels}
        for keyword, (label, score) in self.keywords.items():
            if keyword in text:
                scores[label] = score
        ranked = sorted(scores.items(), key=lambda kv: -kv[1])
        return {
            "sequence": text,
            "labels": [label for label, _ in ranked],
            "scores": [score for _, score in ranked],
        }


@pytest.fixture
def stub_classifier():
    return StubClassifier


@pytest.fixture
def make_finder():
    def _make(**kwargs):
        classifier = StubClassifier(**kwargs)
        return ClauseFinder(classifier=classifier), classifier
    return _make
