"""
Sensitivity Label Coverage Analyzer
Coverage is a ratio (labeled / total scanned documents) banded into a
readiness verdict. Individual documents are also classified so the detail
report can list unlabeled and externally shared files.
"""

from __future__ import annotations

import logging
from typing import Any

from ..scoring.engine import aggregate, classify, classify_all
from ..scoring.models import AuditableRecord, display_score
from ..scoring.rules import RuleSet, VerdictPolicy
from ..scoring.rulesets import (
    DOCUMENT_LABEL_RULES,
    LABEL_COVERAGE_RULES,
    LABEL_COVERAGE_VERDICT,
    SHARING_VERDICT,
)
from .base import AnalysisResult, BaseAnalyzer

logger = logging.getLogger("m365_copilot_readiness.analyzers.labels")


def coverage_record(documents: list[dict], subject_id: str = "tenant") -> AuditableRecord:
    """Single tenant-wide record carrying the label coverage counts."""
    return AuditableRecord(
        subject_id=subject_id,
        attributes={
            "labeledDocuments": sum(1 for d in documents if d.get("hasLabel")),
            "totalDocuments": len(documents),
        },
        display_name="Tenant document label coverage",
        domain="sensitivity_labels",
    )


class LabelCoverageAnalyzer(BaseAnalyzer):
    name = "label_analyzer"
    domain = "sensitivity_labels"
    collectors = ("sharepoint", "sensitivity_labels")

    def rule_set(self) -> RuleSet:
        return DOCUMENT_LABEL_RULES

    def verdict_policy(self) -> VerdictPolicy:
        return LABEL_COVERAGE_VERDICT

    def build_records(self, data: dict[str, Any]) -> list[AuditableRecord]:
        return [
            AuditableRecord(
                subject_id=d.get("id") or "",
                attributes={
                    "hasLabel": bool(d.get("hasLabel")),
                    "sharedExternally": bool(d.get("sharedExternally")),
                },
                display_name=d.get("webUrl") or d.get("name") or "",
                domain=self.domain,
            )
            for d in data.get("sharepoint", {}).get("documents", [])
        ]

    def _analyze(self, data: dict[str, Any]) -> AnalysisResult:
        records = tuple(self.build_records(data))
        results = classify_all(records, self.rule_set())

        documents = data.get("sharepoint", {}).get("documents", [])
        coverage = classify(coverage_record(documents), LABEL_COVERAGE_RULES)
        summary = aggregate((coverage,), self.verdict_policy())
        document_summary = aggregate(results, SHARING_VERDICT)

        labels = data.get("sensitivity_labels", {}).get("labels", [])
        label_usage: dict[str, int] = {}
        for d in documents:
            if d.get("labelName"):
                label_usage[d["labelName"]] = label_usage.get(d["labelName"], 0) + 1

        outcome = AnalysisResult(
            domain=self.domain,
            display_name=self.display_name,
            records=records,
            results=results,
            summary=summary,
            metrics={
                "total_documents": len(documents),
                "labeled_documents": sum(1 for d in documents if d.get("hasLabel")),
                "coverage_percent": display_score(coverage.score) if documents else None,
                "published_labels": len([lbl for lbl in labels if lbl.get("isActive", True)]),
                "label_usage": dict(sorted(label_usage.items())),
                "unlabeled_shared_externally": document_summary.high,
            },
        )
        if not labels:
            outcome.notes.append("No published sensitivity labels were found in the tenant.")
        if not documents:
            outcome.notes.append("No documents were scanned; coverage cannot be established.")
        return outcome
