"""
External Sharing & Permission Risk Analyzer
Classifies guest accounts and externally reachable sharing grants into
Low / Medium / High / Critical risk.
"""

from __future__ import annotations

import logging
from typing import Any

from ..collectors.external_identities import email_domain
from ..scoring.models import AuditableRecord, RiskLevel
from ..scoring.rules import RuleSet, VerdictPolicy
from ..scoring.rulesets import SHARING_VERDICT, external_sharing_rules
from .base import AnalysisResult, BaseAnalyzer

logger = logging.getLogger("m365_copilot_readiness.analyzers.sharing")

BROAD_PRINCIPALS = {"anonymousLink", "everyone", "securityGroup"}


class ExternalSharingAnalyzer(BaseAnalyzer):
    name = "sharing_analyzer"
    domain = "external_sharing"
    collectors = ("external_identities", "sharepoint")

    def rule_set(self) -> RuleSet:
        return external_sharing_rules(
            dormant_days=self.config.dormant_days_threshold,
            large_group_threshold=self.config.large_group_threshold,
        )

    def verdict_policy(self) -> VerdictPolicy:
        return SHARING_VERDICT

    def build_records(self, data: dict[str, Any]) -> list[AuditableRecord]:
        records = [
            self._user_record(u)
            for u in data.get("external_identities", {}).get("external_users", [])
        ]
        records += [
            self._grant_record(p)
            for p in data.get("sharepoint", {}).get("permissions", [])
            if p.get("isExternal") or p.get("principalType") in BROAD_PRINCIPALS
        ]
        return records

    def _user_record(self, user: dict) -> AuditableRecord:
        attrs: dict[str, Any] = {"isExternal": True, "recordType": "externalUser"}
        if user.get("daysSinceActivity") is not None:
            attrs["daysSinceActivity"] = user["daysSinceActivity"]
        if user.get("isConsumerDomain") is not None:
            attrs["isConsumerDomain"] = user["isConsumerDomain"]
        return AuditableRecord(
            subject_id=user.get("id") or "",
            attributes=attrs,
            display_name=user.get("mail") or user.get("displayName") or "",
            domain=self.domain,
        )

    def _grant_record(self, perm: dict) -> AuditableRecord:
        attrs: dict[str, Any] = {
            "recordType": "sharedItem",
            "sharedWithEveryone": perm.get("principalType") == "everyone",
            "sharedWithPrincipal": perm.get("principalName") or "",
            "isExternal": bool(perm.get("isExternal")),
            "role": perm.get("role"),
        }
        if perm.get("linkScope"):
            attrs["linkScope"] = perm["linkScope"]
        if perm.get("groupMemberCount") is not None:
            attrs["groupMemberCount"] = perm["groupMemberCount"]
        domain = email_domain(perm.get("email") or "")
        if domain:
            attrs["isConsumerDomain"] = domain in self.config.consumer_domains
        return AuditableRecord(
            subject_id=f"{perm.get('itemId')}:{perm.get('permissionId')}",
            attributes=attrs,
            display_name=f"{perm.get('itemName') or perm.get('itemId')} → {perm.get('principalName') or perm.get('principalType')}",
            domain=self.domain,
        )

    def _analyze(self, data: dict[str, Any]) -> AnalysisResult:
        outcome = super()._analyze(data)
        users = [rec for rec in outcome.records if rec.get("recordType") == "externalUser"]
        flagged = sum(
            1 for rec, res in outcome.paired()
            if rec.get("recordType") == "externalUser" and res.risk_level >= RiskLevel.MEDIUM
        )
        outcome.metrics = {
            "external_users": len(users),
            "external_users_flagged": flagged,
            "shared_grants": len(outcome.records) - len(users),
            "sites_scanned": data.get("sharepoint", {}).get("_metadata", {}).get("sites_scanned", 0),
        }
        self.settle_empty(outcome, data, "No external users or externally reachable sharing grants were found.")
        return outcome
