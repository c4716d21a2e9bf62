"""
Serialize decisions for human review.

Both outputs are deterministic: rows follow the (make, model) order of the
decisions and carry no timestamps, so identical decisions give identical files.
"""
import csv
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from loguru import logger

from regularizer.models import Decision, Verdict, format_year_range

CSV_HEADER = [
    "make",
    "model",
    "years",
    "inferred_type",
    "inferred_type_confidence",
    "action",
    "reference_make",
    "reference_model",
    "reference_years",
    "reference_types",
    "similarity",
    "path",
    "catalog",
    "catalog_confidence",
    "temporal",
    "temporal_confidence",
    "classification",
    "classifier_confidence",
    "rationale",
]


class ReportWriteError(OSError):
    """The report could not be written; fatal for the run."""


def _ordered(decisions: Sequence[Decision]) -> List[Decision]:
    return sorted(decisions, key=lambda d: d.pair.sort_key)


def _verdict_cells(verdict: Optional[Verdict]) -> List[str]:
    if verdict is None:
        return ["", ""]
    return [verdict.label.value, f"{verdict.confidence:.2f}"]


def decision_row(decision: Decision) -> List[str]:
    pair = decision.pair
    ref = decision.candidate.reference if decision.candidate else None
    classifier = decision.verdict_from("classifier")
    return [
        pair.primary,
        pair.secondary,
        format_year_range(pair.period_range),
        decision.inferred.vehicle_type.value if decision.inferred else "",
        f"{decision.inferred.confidence:.2f}" if decision.inferred else "",
        "REGULARIZE" if decision.should_regularize else "PRESERVE",
        ref.primary if ref else "",
        ref.secondary if ref else "",
        format_year_range(ref.period_range) if ref else "",
        ",".join(sorted(ref.categories)) if ref else "",
        f"{decision.similarity:.2f}",
        decision.path.value,
        *_verdict_cells(decision.verdict_from("reference")),
        *_verdict_cells(decision.verdict_from("temporal")),
        classifier.classification.value if classifier and classifier.classification else "",
        f"{classifier.confidence:.2f}" if classifier else "",
        decision.rationale,
    ]


def summarize(decisions: Sequence[Decision], reference_count: int = 0, noisy_count: int = 0) -> Dict[str, int]:
    paths = Counter(d.path.value for d in decisions)
    summary = {
        "reference_pairs": reference_count,
        "noisy_pairs": noisy_count,
        "decisions": len(decisions),
        "regularize": sum(1 for d in decisions if d.should_regularize),
        "preserve": sum(1 for d in decisions if not d.should_regularize),
    }
    for path, count in sorted(paths.items()):
        summary[f"path:{path}"] = count
    types = Counter(d.inferred.vehicle_type.value for d in decisions if d.inferred)
    for vehicle_type, count in sorted(types.items()):
        summary[f"type:{vehicle_type}"] = count
    return summary


def write_csv_report(decisions: Sequence[Decision], path: str) -> None:
    """
    Write one CSV row per decision.

    Raises:
        ReportWriteError: If the file cannot be written.
    """
    try:
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_HEADER)
            for decision in _ordered(decisions):
                writer.writerow(decision_row(decision))
    except OSError as e:
        raise ReportWriteError(f"Failed to write report to {path}: {e}") from e
    logger.info(f"Report written to: {path}")


def render_markdown_report(
    decisions: Sequence[Decision], summary: Dict[str, int], notes: Sequence[str] = ()
) -> str:
    ordered = _ordered(decisions)
    regularizations = [d for d in ordered if d.should_regularize]
    preservations = [d for d in ordered if not d.should_regularize]

    lines = ["# Make/Model Regularization Report", "", "## Summary", ""]
    for key, value in summary.items():
        lines.append(f"- **{key}:** {value}")
    if notes:
        lines += ["", "## Notes", ""]
        lines += [f"- {note}" for note in notes]
    lines += ["", "---", "", f"## Regularizations ({len(regularizations)})", ""]

    for d in regularizations:
        ref = d.candidate.reference
        lines.append(f"### {d.pair.label} → {ref.label}")
        lines.append("")
        lines.append(f"- **Reference types:** {', '.join(sorted(ref.categories)) or 'N/A'}")
        if d.inferred:
            lines.append(f"- **Inferred type:** {d.inferred}")
        lines.append(f"- **Similarity:** {d.similarity:.2f}")
        for verdict in d.verdicts:
            lines.append(f"- **{verdict.source.title()}:** {verdict.label.value} ({verdict.confidence:.2f}) - {verdict.rationale}")
        lines.append(f"- **Reasoning:** {d.rationale}")
        lines.append("")

    lines += ["---", "", f"## Preservations ({len(preservations)})", ""]
    for d in preservations:
        best = d.candidate.reference.label if d.candidate else "none"
        lines.append(f"### {d.pair.label} (preserved)")
        lines.append("")
        lines.append(f"- **Best candidate:** {best}")
        lines.append(f"- **Similarity:** {d.similarity:.2f}")
        lines.append(f"- **Path:** {d.path.value}")
        if d.inferred:
            lines.append(f"- **Inferred type:** {d.inferred}")
        lines.append(f"- **Reasoning:** {d.rationale}")
        lines.append("")

    return "\n".join(lines)


def write_markdown_report(
    decisions: Sequence[Decision], summary: Dict[str, int], path: str, notes: Sequence[str] = ()
) -> None:
    try:
        Path(path).write_text(render_markdown_report(decisions, summary, notes), encoding="utf-8")
    except OSError as e:
        raise ReportWriteError(f"Failed to write report to {path}: {e}") from e
    logger.info(f"Markdown report written to: {path}")
