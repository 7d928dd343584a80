"""
Conditional Access Compatibility Analyzer
Scores every enabled or report-only CA policy that applies to the AI
assistant's applications on a 0-100 compatibility scale.
"""

from __future__ import annotations

import logging
from typing import Any

from ..scoring.models import AuditableRecord, display_score
from ..scoring.rules import RuleSet, VerdictPolicy
from ..scoring.rulesets import CONDITIONAL_ACCESS_VERDICT, conditional_access_rules
from .base import AnalysisResult, BaseAnalyzer

logger = logging.getLogger("m365_copilot_readiness.analyzers.ca")

SCORED_STATES = {"enabled", "enabledForReportingButNotEnforced"}


def policy_attributes(policy: dict) -> dict[str, Any]:
    """Attributes scored for one CA policy. Grant-only flags are omitted for block policies."""
    attrs: dict[str, Any] = {
        "state": policy.get("state"),
        "appliesToAllUsers": bool(policy.get("appliesToAllUsers")),
        "targetsAllApps": bool(policy.get("targetsAllApps")),
        "blocksAccess": bool(policy.get("blocksAccess")),
    }
    if policy.get("blocksAccess"):
        attrs["exemptsAITools"] = bool(policy.get("exemptsAITools"))
    else:
        attrs["requiresMFA"] = bool(policy.get("requiresMFA"))
        attrs["requiresCompliantDevice"] = bool(policy.get("requiresCompliantDevice"))
    if policy.get("signInFrequencyHours") is not None:
        attrs["signInFrequencyHours"] = policy["signInFrequencyHours"]
    return attrs


class ConditionalAccessAnalyzer(BaseAnalyzer):
    name = "ca_analyzer"
    domain = "conditional_access"
    collectors = ("conditional_access",)

    def rule_set(self) -> RuleSet:
        return conditional_access_rules(self.config.min_sign_in_frequency_hours)

    def verdict_policy(self) -> VerdictPolicy:
        return CONDITIONAL_ACCESS_VERDICT

    def build_records(self, data: dict[str, Any]) -> list[AuditableRecord]:
        policies = data.get("conditional_access", {}).get("ca_policies", [])
        return [
            AuditableRecord(
                subject_id=p.get("id") or "",
                attributes=policy_attributes(p),
                display_name=p.get("displayName") or "",
                domain=self.domain,
            )
            for p in policies
            if p.get("state") in SCORED_STATES and p.get("targetsAITools")
        ]

    def _analyze(self, data: dict[str, Any]) -> AnalysisResult:
        outcome = super()._analyze(data)
        ca_data = data.get("conditional_access", {})
        policies = ca_data.get("ca_policies", [])
        security_defaults = ca_data.get("security_defaults", {})

        disabled = [p for p in policies if p.get("state") == "disabled"]
        out_of_scope = [
            p for p in policies
            if p.get("state") in SCORED_STATES and not p.get("targetsAITools")
        ]
        outcome.metrics = {
            "total_policies": len(policies),
            "scored_policies": outcome.summary.record_count,
            "disabled_policies": len(disabled),
            "out_of_scope_policies": len(out_of_scope),
            "mfa_enforcing_policies": outcome.summary.trait("enforces_mfa"),
            "average_compatibility_score": display_score(outcome.summary.average_score),
        }
        if not outcome.records:
            if security_defaults.get("isEnabled"):
                outcome.notes.append(
                    "No Conditional Access policies apply to AI tools; security defaults "
                    "are enabled and provide baseline MFA only."
                )
            else:
                outcome.notes.append(
                    "No Conditional Access policies apply to AI tools and security "
                    "defaults are not enabled."
                )
        if disabled:
            outcome.notes.append(f"{len(disabled)} disabled policies were not scored.")
        return outcome
