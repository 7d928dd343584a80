"""Tests for the per-audit rule tables and verdict policies."""

import pytest

from m365_copilot_readiness.scoring import (
    AuditableRecord,
    ReadinessVerdict,
    RiskLevel,
    aggregate,
    classify,
    classify_all,
)
from m365_copilot_readiness.scoring.rulesets import (
    CONDITIONAL_ACCESS_VERDICT,
    DOCUMENT_LABEL_RULES,
    OVERSHARING_VERDICT,
    SHARING_VERDICT,
    conditional_access_rules,
    external_sharing_rules,
    oversharing_rules,
)


def record(subject_id="r1", **attrs):
    return AuditableRecord(subject_id=subject_id, attributes=attrs)


class TestConditionalAccessRules:
    rules = conditional_access_rules(min_sign_in_hours=1)

    def test_compliant_policy_keeps_full_score(self):
        rec = record(state="enabled", appliesToAllUsers=True, requiresMFA=True,
                     requiresCompliantDevice=True)
        result = classify(rec, self.rules)
        assert result.category == 100
        assert result.traits == frozenset({"enforces_mfa", "requires_compliant_device"})

    def test_missing_device_compliance_for_all_users(self):
        rec = record(state="enabled", appliesToAllUsers=True, requiresMFA=True,
                     requiresCompliantDevice=False)
        result = classify(rec, self.rules)
        assert result.category == 85
        assert result.reasons == ("No compliant device requirement.",)

    def test_device_rule_needs_all_users(self):
        rec = record(state="enabled", appliesToAllUsers=False, requiresMFA=True,
                     requiresCompliantDevice=False)
        assert classify(rec, self.rules).category == 100

    def test_block_all_without_exemption(self):
        rec = record(state="enabled", blocksAccess=True, targetsAllApps=True, exemptsAITools=False)
        result = classify(rec, self.rules)
        assert result.category == 50
        assert result.risk_level == RiskLevel.HIGH

    def test_block_all_with_exemption(self):
        rec = record(state="enabled", blocksAccess=True, targetsAllApps=True, exemptsAITools=True)
        assert classify(rec, self.rules).category == 100

    def test_short_sign_in_frequency(self):
        rec = record(state="enabled", requiresMFA=True, signInFrequencyHours=0.0)
        result = classify(rec, self.rules)
        assert result.category == 90

    def test_report_only_policy_is_penalized_and_not_enforcing(self):
        rec = record(state="enabledForReportingButNotEnforced", requiresMFA=True)
        result = classify(rec, self.rules)
        assert result.category == 90
        assert "enforces_mfa" not in result.traits

    def test_worst_case_clamps_to_zero(self):
        rec = record(state="enabledForReportingButNotEnforced", appliesToAllUsers=True,
                     requiresMFA=False, requiresCompliantDevice=False, blocksAccess=True,
                     targetsAllApps=True, exemptsAITools=False, signInFrequencyHours=0.5)
        assert classify(rec, self.rules).category == 0


class TestConditionalAccessVerdict:
    rules = conditional_access_rules()

    def _summary(self, *records):
        return aggregate(classify_all(records, self.rules), CONDITIONAL_ACCESS_VERDICT)

    def test_ready_needs_an_mfa_policy(self):
        s = self._summary(record(state="enabled", requiresMFA=True))
        assert s.verdict == ReadinessVerdict.READY

    def test_no_mfa_policy_is_nearly_ready(self):
        s = self._summary(record(state="enabled", requiresMFA=False))
        assert s.verdict == ReadinessVerdict.NEARLY_READY

    def test_many_critical_policies_with_low_average(self):
        broken = dict(state="enabled", appliesToAllUsers=True, requiresMFA=False,
                      requiresCompliantDevice=False, signInFrequencyHours=0.0,
                      blocksAccess=True, targetsAllApps=True, exemptsAITools=False)
        s = self._summary(*(record(f"p{i}", **broken) for i in range(3)))
        assert s.critical == 3
        assert s.verdict == ReadinessVerdict.NOT_READY


class TestExternalSharingRules:
    rules = external_sharing_rules(dormant_days=90, large_group_threshold=100)

    @pytest.mark.parametrize("attrs,level", [
        ({"sharedWithEveryone": True}, RiskLevel.CRITICAL),
        ({"sharedWithPrincipal": "Everyone except external users"}, RiskLevel.CRITICAL),
        ({"linkScope": "anonymous"}, RiskLevel.CRITICAL),
        ({"isExternal": True, "role": "write"}, RiskLevel.HIGH),
        ({"isExternal": True, "role": "read"}, RiskLevel.LOW),
        ({"groupMemberCount": 100}, RiskLevel.MEDIUM),
        ({"groupMemberCount": 99}, RiskLevel.LOW),
        ({"daysSinceActivity": 90}, RiskLevel.MEDIUM),
        ({"daysSinceActivity": 89}, RiskLevel.LOW),
        ({"isConsumerDomain": True}, RiskLevel.MEDIUM),
    ])
    def test_single_conditions(self, attrs, level):
        assert classify(record(**attrs), self.rules).category == level

    def test_reasons_in_rule_order(self):
        rec = record(linkScope="anonymous", sharedWithEveryone=True, isConsumerDomain=True)
        result = classify(rec, self.rules)
        assert result.reasons[0] == "Shared with Everyone group"
        assert result.reasons[1] == "Anonymous link grants access"
        assert len(result.reasons) == 3


class TestSharingVerdict:
    rules = external_sharing_rules()

    def _verdict(self, critical=0, high=0, low=1):
        records = (
            [record(f"c{i}", linkScope="anonymous") for i in range(critical)]
            + [record(f"h{i}", isExternal=True, role="owner") for i in range(high)]
            + [record(f"l{i}") for i in range(low)]
        )
        return aggregate(classify_all(records, self.rules), SHARING_VERDICT).verdict

    def test_bands(self):
        assert self._verdict() == ReadinessVerdict.READY
        assert self._verdict(high=5) == ReadinessVerdict.NEARLY_READY
        assert self._verdict(high=6) == ReadinessVerdict.REQUIRES_WORK
        assert self._verdict(critical=2) == ReadinessVerdict.REQUIRES_WORK
        assert self._verdict(critical=3) == ReadinessVerdict.NOT_READY


class TestDocumentLabelRules:
    def test_labeled_document_is_low(self):
        result = classify(record(hasLabel=True, sharedExternally=True), DOCUMENT_LABEL_RULES)
        assert result.category == RiskLevel.LOW
        assert result.traits == frozenset({"labeled"})

    def test_unlabeled_document(self):
        result = classify(record(hasLabel=False, sharedExternally=False), DOCUMENT_LABEL_RULES)
        assert result.category == RiskLevel.MEDIUM

    def test_unlabeled_external_document(self):
        result = classify(record(hasLabel=False, sharedExternally=True), DOCUMENT_LABEL_RULES)
        assert result.category == RiskLevel.HIGH
        assert len(result.reasons) == 2


class TestOversharingRules:
    rules = oversharing_rules(large_group_threshold=50)

    @pytest.mark.parametrize("principal,level", [
        ("everyone", RiskLevel.CRITICAL),
        ("anonymousLink", RiskLevel.CRITICAL),
        ("organizationLink", RiskLevel.HIGH),
        ("securityGroup", RiskLevel.MEDIUM),
        ("user", RiskLevel.LOW),
        ("specificPeopleLink", RiskLevel.LOW),
    ])
    def test_principal_types(self, principal, level):
        assert classify(record(principalType=principal), self.rules).category == level

    def test_large_security_group(self):
        rec = record(principalType="securityGroup", groupMemberCount=50)
        assert classify(rec, self.rules).category == RiskLevel.HIGH

    def test_everyone_by_name(self):
        rec = record(principalType="user", sharedWithPrincipal="Everyone")
        assert classify(rec, self.rules).category == RiskLevel.CRITICAL

    def test_verdict_policy_matches_sharing(self):
        assert OVERSHARING_VERDICT is SHARING_VERDICT
