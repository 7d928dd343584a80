"""
Oversharing Content Analyzer
Classifies every sharing grant on scanned content by principal type. The AI
assistant can surface anything a user can reach, so broad grants are the
primary readiness blocker.
"""

from __future__ import annotations

from collections import Counter
from typing import Any

from ..scoring.models import AuditableRecord
from ..scoring.rules import RuleSet, VerdictPolicy
from ..scoring.rulesets import OVERSHARING_VERDICT, oversharing_rules
from .base import AnalysisResult, BaseAnalyzer


class OversharingAnalyzer(BaseAnalyzer):
    name = "oversharing_analyzer"
    domain = "oversharing"
    collectors = ("sharepoint",)

    def rule_set(self) -> RuleSet:
        return oversharing_rules(self.config.large_group_threshold)

    def verdict_policy(self) -> VerdictPolicy:
        return OVERSHARING_VERDICT

    def build_records(self, data: dict[str, Any]) -> list[AuditableRecord]:
        records = []
        for perm in data.get("sharepoint", {}).get("permissions", []):
            attrs: dict[str, Any] = {
                "principalType": perm.get("principalType"),
                "sharedWithPrincipal": perm.get("principalName") or "",
                "role": perm.get("role"),
            }
            if perm.get("groupMemberCount") is not None:
                attrs["groupMemberCount"] = perm["groupMemberCount"]
            records.append(AuditableRecord(
                subject_id=f"{perm.get('itemId')}:{perm.get('permissionId')}",
                attributes=attrs,
                display_name=perm.get("webUrl") or perm.get("itemName") or "",
                domain=self.domain,
            ))
        return records

    def _analyze(self, data: dict[str, Any]) -> AnalysisResult:
        outcome = super()._analyze(data)
        by_type = Counter(rec.get("principalType") for rec in outcome.records)
        flagged_items = {
            rec.subject_id.split(":", 1)[0]
            for rec, res in outcome.paired() if res.reasons
        }
        outcome.metrics = {
            "grants_scanned": len(outcome.records),
            "grants_by_principal_type": dict(sorted(by_type.items(), key=lambda kv: str(kv[0]))),
            "overshared_items": len(flagged_items),
            "sites_scanned": data.get("sharepoint", {}).get("_metadata", {}).get("sites_scanned", 0),
        }
        self.settle_empty(outcome, data, "Every site was scanned and no sharing grants were found.")
        return outcome
