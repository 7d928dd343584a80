"""
CSV exporter — One detail CSV per audit plus a cross-audit readiness summary.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any

from ..scoring.models import RiskLevel, display_score

DETAIL_FIELDS = ["subject_id", "display_name", "category", "risk_level", "reasons"]

SUMMARY_FIELDS = [
    "audit", "verdict", "records", "average_score",
    "critical", "high", "medium", "low", "coverage_gaps",
]


def _cell(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return "; ".join(str(v) for v in value)
    if value is None:
        return ""
    return value


def export_csv(
    outcomes: list,
    output_dir: Path,
    scan_id: str,
) -> list[Path]:
    """
    Write one CSV per audit outcome and a summary CSV.

    Returns:
        List of created CSV file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    created = []

    for outcome in outcomes:
        path = output_dir / f"{outcome.domain}_{scan_id}.csv"
        attr_fields = sorted({k for rec in outcome.records for k in rec.attributes})
        with open(path, "w", newline="", encoding="utf-8-sig") as fh:
            writer = csv.DictWriter(fh, fieldnames=DETAIL_FIELDS + attr_fields)
            writer.writeheader()
            for rec, res in outcome.paired():
                row = {
                    "subject_id": res.subject_id,
                    "display_name": rec.display_name,
                    "category": res.category_label(),
                    "risk_level": res.risk_level.label,
                    "reasons": _cell(res.reasons),
                }
                row.update({k: _cell(rec.attributes.get(k)) for k in attr_fields})
                writer.writerow(row)
        created.append(path)

    summary_path = output_dir / f"readiness_summary_{scan_id}.csv"
    with open(summary_path, "w", newline="", encoding="utf-8-sig") as fh:
        writer = csv.DictWriter(fh, fieldnames=SUMMARY_FIELDS)
        writer.writeheader()
        for outcome in outcomes:
            s = outcome.summary
            writer.writerow({
                "audit": outcome.display_name,
                "verdict": s.verdict.value,
                "records": s.record_count,
                "average_score": _cell(display_score(s.average_score)),
                "critical": s.count(RiskLevel.CRITICAL),
                "high": s.count(RiskLevel.HIGH),
                "medium": s.count(RiskLevel.MEDIUM),
                "low": s.count(RiskLevel.LOW),
                "coverage_gaps": len(outcome.coverage_gaps),
            })
    created.append(summary_path)

    return created
