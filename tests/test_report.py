import csv

import pytest

from conftest import make_pair
from regularizer.models import (
    Candidate,
    Classification,
    Decision,
    DecisionPath,
    TypeInference,
    Verdict,
    VerdictLabel,
    VehicleType,
)
from regularizer.report import (
    CSV_HEADER,
    ReportWriteError,
    render_markdown_report,
    summarize,
    write_csv_report,
    write_markdown_report,
)


@pytest.fixture
def decisions():
    volvo = make_pair("VOLVO", "XC90", years=(2011, 2022), categories={"PAU"})
    bmw = make_pair("BMW", "X3", years=(2011, 2022), categories={"PAU"})
    return [
        Decision(
            pair=make_pair("VOLV0", "XC90", years=(2023, 2024)),
            candidate=Candidate(volvo, 0.94),
            should_regularize=True,
            rationale="Classifier: spelling-variant (0.95) - typo",
            path=DecisionPath.VALIDATED,
            verdicts=(
                Verdict(VerdictLabel.NEUTRAL, 0.0, "Not in catalog", "reference"),
                Verdict(VerdictLabel.NEUTRAL, 0.7, "Short gap", "temporal"),
                Verdict(VerdictLabel.SUPPORT, 0.95, "typo", "classifier",
                        classification=Classification.SPELLING_VARIANT),
            ),
        ),
        Decision(
            pair=make_pair("BMW", "X4", years=(2023, 2024)),
            candidate=Candidate(bmw, 0.89, vetoed=True),
            should_regularize=False,
            rationale="Numeric difference in model code vs BMW X3 - likely different model",
            path=DecisionPath.NUMERIC_VETO,
        ),
        Decision(
            pair=make_pair("TESLA", "MODEL Y"),
            candidate=None,
            should_regularize=False,
            rationale="No similar reference pair found - treat as new",
            path=DecisionPath.NO_CANDIDATE,
        ),
    ]


def test_csv_report_has_one_sorted_row_per_decision(tmp_path, decisions):
    path = tmp_path / "report.csv"
    write_csv_report(decisions, str(path))

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))

    assert rows[0] == CSV_HEADER
    body = [dict(zip(CSV_HEADER, row)) for row in rows[1:]]
    assert [(r["make"], r["model"]) for r in body] == [("BMW", "X4"), ("TESLA", "MODEL Y"), ("VOLV0", "XC90")]

    volvo = body[2]
    assert volvo["action"] == "REGULARIZE"
    assert volvo["reference_make"] == "VOLVO"
    assert volvo["reference_years"] == "2011-2022"
    assert volvo["reference_types"] == "PAU"
    assert volvo["similarity"] == "0.94"
    assert volvo["classification"] == "spelling-variant"
    assert volvo["classifier_confidence"] == "0.95"

    tesla = body[1]
    assert tesla["action"] == "PRESERVE"
    assert tesla["years"] == "years unknown"
    assert tesla["reference_make"] == ""
    assert tesla["similarity"] == "0.00"
    assert tesla["path"] == "no-candidate"


def test_summary_counts(decisions):
    summary = summarize(decisions, reference_count=2, noisy_count=3)
    assert summary["decisions"] == 3
    assert summary["regularize"] == 1
    assert summary["preserve"] == 2
    assert summary["path:numeric-veto"] == 1
    assert summary["path:validated"] == 1


def test_markdown_report_sections(decisions):
    text = render_markdown_report(decisions, summarize(decisions))
    assert "## Regularizations (1)" in text
    assert "## Preservations (2)" in text
    assert "### VOLV0 XC90 → VOLVO XC90" in text
    assert "### TESLA MODEL Y (preserved)" in text
    assert "- **Best candidate:** none" in text
    assert text == render_markdown_report(list(reversed(decisions)), summarize(decisions))


def test_unwritable_report_raises(tmp_path, decisions):
    missing_dir = tmp_path / "nope" / "report.csv"
    with pytest.raises(ReportWriteError):
        write_csv_report(decisions, str(missing_dir))
    with pytest.raises(ReportWriteError):
        write_markdown_report(decisions, summarize(decisions), str(tmp_path / "nope" / "report.md"))


def test_inferred_type_is_reported(tmp_path):
    decision = Decision(
        pair=make_pair("HONDA", "CBR500", years=(2023, 2024)),
        candidate=None,
        should_regularize=False,
        rationale="Type: MOTORCYCLE (0.80) - Mixed make, motorcycle-style model code",
        path=DecisionPath.TYPE_ONLY,
        inferred=TypeInference(VehicleType.MOTORCYCLE, 0.8, "Mixed make, motorcycle-style model code"),
    )
    path = tmp_path / "report.csv"
    write_csv_report([decision], str(path))

    with open(path, newline="", encoding="utf-8") as f:
        [row] = list(csv.DictReader(f))
    assert row["inferred_type"] == "MOTORCYCLE"
    assert row["inferred_type_confidence"] == "0.80"
    assert row["path"] == "type-only"

    summary = summarize([decision])
    assert summary["type:MOTORCYCLE"] == 1
    text = render_markdown_report([decision], summary)
    assert "- **Inferred type:** MOTORCYCLE (0.80)" in text


def test_markdown_notes(decisions):
    text = render_markdown_report(decisions, summarize(decisions), notes=["Dataset unavailable: boom"])
    assert "## Notes\n\n- Dataset unavailable: boom" in text
    assert "## Notes" not in render_markdown_report(decisions, summarize(decisions))
