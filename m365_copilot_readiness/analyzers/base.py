"""
Base analyzer class — Abstract interface for the four audit dimensions.
Turns collected data into auditable records, classifies them, and aggregates
a readiness verdict.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from ..config import AUDIT_DISPLAY, CollectionConfig
from ..scoring.engine import aggregate, classify_all
from ..scoring.models import AggregateSummary, AuditableRecord, ClassificationResult, ReadinessVerdict
from ..scoring.rules import RuleSet, VerdictPolicy

logger = logging.getLogger("m365_copilot_readiness.analyzers")


@dataclass
class AnalysisResult:
    """Outcome of one audit dimension."""
    domain: str
    display_name: str
    records: tuple[AuditableRecord, ...]
    results: tuple[ClassificationResult, ...]
    summary: AggregateSummary
    coverage_gaps: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def paired(self) -> list[tuple[AuditableRecord, ClassificationResult]]:
        """Records alongside their classification, in input order."""
        return list(zip(self.records, self.results))

    def to_dict(self) -> dict:
        return {
            "domain": self.domain,
            "display_name": self.display_name,
            "summary": self.summary.to_dict(),
            "metrics": self.metrics,
            "coverage_gaps": self.coverage_gaps,
            "notes": self.notes,
            "error": self.error,
            "results": [
                {**r.to_dict(), "attributes": dict(rec.attributes)}
                for rec, r in self.paired()
            ],
        }


class BaseAnalyzer(ABC):
    """
    Abstract base class for all analyzers.
    Subclasses build records from collected data; the base class runs the
    shared classifier and aggregator.
    """

    name: str = "base"
    domain: str = "general"
    collectors: tuple[str, ...] = ()

    def __init__(self, config: Optional[CollectionConfig] = None):
        self.config = config or CollectionConfig()

    @property
    def display_name(self) -> str:
        return AUDIT_DISPLAY.get(self.domain, self.domain.replace("_", " ").title())

    @abstractmethod
    def rule_set(self) -> RuleSet:
        raise NotImplementedError

    @abstractmethod
    def verdict_policy(self) -> VerdictPolicy:
        raise NotImplementedError

    @abstractmethod
    def build_records(self, data: dict[str, Any]) -> list[AuditableRecord]:
        """Translate collected data into fully resolved records."""
        raise NotImplementedError

    def analyze(self, collected_data: dict[str, Any]) -> AnalysisResult:
        """
        Execute analysis and return the audit outcome.
        An unexpected failure yields the empty-input outcome (Not Ready).
        """
        gaps = self.coverage_gaps(collected_data)
        try:
            outcome = self._analyze(collected_data)
        except Exception as e:
            logger.exception(f"[{self.name}] Analysis failed: {e}")
            outcome = self._empty_result()
            outcome.error = f"{type(e).__name__}: {e}"
        outcome.coverage_gaps = gaps + outcome.coverage_gaps

        logger.info(
            f"[{self.name}] Analysis complete — {outcome.summary.record_count} records, "
            f"verdict {outcome.summary.verdict.value}"
        )
        return outcome

    def _analyze(self, data: dict[str, Any]) -> AnalysisResult:
        records = tuple(self.build_records(data))
        results = classify_all(records, self.rule_set())
        return AnalysisResult(
            domain=self.domain,
            display_name=self.display_name,
            records=records,
            results=results,
            summary=aggregate(results, self.verdict_policy()),
        )

    def _empty_result(self) -> AnalysisResult:
        return AnalysisResult(
            domain=self.domain,
            display_name=self.display_name,
            records=(),
            results=(),
            summary=aggregate((), self.verdict_policy()),
        )

    def coverage_gaps(self, data: dict[str, Any]) -> list[str]:
        """Collect coverage gaps reported by this analyzer's collectors."""
        gaps = []
        for name in self.collectors:
            section = data.get(name)
            if section is None:
                gaps.append(f"{name}: no data collected")
                continue
            meta = section.get("_metadata", {})
            gaps += [f"{name}: permission denied for {g}" for g in meta.get("permission_gaps", [])]
            gaps += [
                f"{name}: site not scanned {f['site']} ({f['reason']})"
                for f in meta.get("failed_sites", [])
            ]
            gaps += [f"{name}: {e}" for e in meta.get("errors", [])]
        return gaps

    def scan_completed(self, data: dict[str, Any]) -> bool:
        """
        True when every source collector ran cleanly: data present, no
        permission gaps, skipped sites or errors, and at least one site
        scanned where SharePoint is a source.
        """
        for name in self.collectors:
            meta = (data.get(name) or {}).get("_metadata")
            if meta is None:
                return False
            if meta.get("permission_gaps") or meta.get("failed_sites") or meta.get("errors"):
                return False
            if name == "sharepoint" and not meta.get("sites_scanned"):
                return False
        return True

    def settle_empty(self, outcome: AnalysisResult, data: dict[str, Any], clean_note: str) -> None:
        """
        Zero records is only evidence of a clean tenant when the scan itself
        completed; otherwise the Not Ready floor stands and a note says why.
        """
        if outcome.records:
            return
        if self.scan_completed(data):
            outcome.summary = replace(outcome.summary, verdict=ReadinessVerdict.READY)
            outcome.notes.append(clean_note)
        else:
            outcome.notes.append(
                "Nothing was evaluated and the scan did not complete cleanly; "
                "the verdict stays Not Ready until coverage gaps are resolved."
            )
