"""
Rule sets — Per-domain rule lists and verdict policies for the four audit
dimensions. The engine is shared; only this table differs per audit.

Rule order is significant: reasons are reported in declaration order.
"""

from __future__ import annotations

from ..config import (
    DORMANT_DAYS_THRESHOLD,
    LARGE_GROUP_THRESHOLD,
    MIN_SIGN_IN_FREQUENCY_HOURS,
)
from .models import ReadinessVerdict, RiskLevel
from .rules import (
    EscalationRule,
    EscalationRuleSet,
    ScoreRule,
    ScoringRuleSet,
    Trait,
    VerdictPolicy,
    VerdictRule,
    all_of,
    any_of,
    at_least,
    equals,
    in_set,
    is_false,
    is_true,
    less_than,
)

EVERYONE_REASON = "Shared with Everyone group"
EVERYONE_PRINCIPALS = {"Everyone", "Everyone except external users"}
ANONYMOUS_REASON = "Anonymous link grants access"


# ─── Access-policy compatibility (scoring) ──────────────────────────────────

def conditional_access_rules(
    min_sign_in_hours: float = MIN_SIGN_IN_FREQUENCY_HOURS,
) -> ScoringRuleSet:
    return ScoringRuleSet(
        domain="conditional_access",
        baseline=100,
        rules=(
            ScoreRule(
                name="missing_mfa",
                predicate=is_false("requiresMFA"),
                delta=-20,
                reason="No MFA requirement for AI tools.",
            ),
            ScoreRule(
                name="missing_device_compliance",
                predicate=all_of(
                    is_true("appliesToAllUsers"),
                    is_false("requiresCompliantDevice"),
                ),
                delta=-15,
                reason="No compliant device requirement.",
            ),
            ScoreRule(
                name="block_without_ai_exemption",
                predicate=all_of(
                    is_true("blocksAccess"),
                    is_true("targetsAllApps"),
                    is_false("exemptsAITools"),
                ),
                delta=-50,
                reason="Block-all policy has no exemption for AI tool applications.",
            ),
            ScoreRule(
                name="short_reauthentication",
                predicate=less_than("signInFrequencyHours", min_sign_in_hours),
                delta=-10,
                reason=(
                    f"Sign-in frequency shorter than {min_sign_in_hours:g} hour(s) "
                    "interrupts AI sessions."
                ),
            ),
            ScoreRule(
                name="report_only",
                predicate=equals("state", "enabledForReportingButNotEnforced"),
                delta=-10,
                reason="Policy is in report-only mode.",
            ),
        ),
        traits=(
            Trait("enforces_mfa", all_of(is_true("requiresMFA"), equals("state", "enabled"))),
            Trait("requires_compliant_device", is_true("requiresCompliantDevice")),
        ),
    )


CONDITIONAL_ACCESS_VERDICT = VerdictPolicy(rules=(
    VerdictRule(
        lambda s: s.critical == 0 and s.trait("enforces_mfa") >= 1,
        ReadinessVerdict.READY,
        "No critical policies and at least one MFA-enforcing policy",
    ),
    VerdictRule(
        lambda s: s.critical <= 2,
        ReadinessVerdict.NEARLY_READY,
        "At most two critical policies",
    ),
    VerdictRule(
        lambda s: s.average_score is not None and s.average_score >= 50,
        ReadinessVerdict.REQUIRES_WORK,
        "Average compatibility score of 50 or more",
    ),
))


# ─── External sharing / permission risk (categorical) ──────────────────────

def external_sharing_rules(
    dormant_days: int = DORMANT_DAYS_THRESHOLD,
    large_group_threshold: int = LARGE_GROUP_THRESHOLD,
) -> EscalationRuleSet:
    return EscalationRuleSet(
        domain="external_sharing",
        rules=(
            EscalationRule(
                "everyone",
                any_of(is_true("sharedWithEveryone"), in_set("sharedWithPrincipal", EVERYONE_PRINCIPALS)),
                RiskLevel.CRITICAL, EVERYONE_REASON,
            ),
            EscalationRule(
                "anonymous_link", equals("linkScope", "anonymous"),
                RiskLevel.CRITICAL, ANONYMOUS_REASON,
            ),
            EscalationRule(
                "external_edit",
                all_of(is_true("isExternal"), in_set("role", {"write", "owner"})),
                RiskLevel.HIGH, "External party has edit access",
            ),
            EscalationRule(
                "large_group", at_least("groupMemberCount", large_group_threshold),
                RiskLevel.MEDIUM, f"Shared with a large group ({large_group_threshold}+ members)",
            ),
            EscalationRule(
                "dormant_external", at_least("daysSinceActivity", dormant_days),
                RiskLevel.MEDIUM, f"External account dormant for {dormant_days}+ days",
            ),
            EscalationRule(
                "consumer_domain", is_true("isConsumerDomain"),
                RiskLevel.MEDIUM, "External account uses a consumer email domain",
            ),
        ),
    )


SHARING_VERDICT = VerdictPolicy(rules=(
    VerdictRule(
        lambda s: s.critical == 0 and s.high == 0,
        ReadinessVerdict.READY,
        "No critical or high-risk sharing",
    ),
    VerdictRule(
        lambda s: s.critical == 0 and s.high <= 5,
        ReadinessVerdict.NEARLY_READY,
        "No critical and at most five high-risk items",
    ),
    VerdictRule(
        lambda s: s.critical <= 2,
        ReadinessVerdict.REQUIRES_WORK,
        "At most two critical items",
    ),
))


# ─── Sensitivity-label coverage (degenerate scoring) ───────────────────────

def _coverage_percent(attrs) -> float:
    return attrs["labeledDocuments"] * 100.0 / attrs["totalDocuments"]


LABEL_COVERAGE_RULES = ScoringRuleSet(
    domain="sensitivity_labels",
    baseline=0,
    rules=(
        ScoreRule(
            name="label_coverage",
            predicate=all_of(
                at_least("totalDocuments", 1),
                at_least("labeledDocuments", 0),
            ),
            delta=_coverage_percent,
            reason="Label coverage measured across scanned documents.",
        ),
    ),
)

LABEL_COVERAGE_VERDICT = VerdictPolicy(rules=(
    VerdictRule(lambda s: s.average_score >= 80, ReadinessVerdict.READY, "Coverage of 80% or more"),
    VerdictRule(lambda s: s.average_score >= 60, ReadinessVerdict.NEARLY_READY, "Coverage of 60% or more"),
    VerdictRule(lambda s: s.average_score >= 40, ReadinessVerdict.REQUIRES_WORK, "Coverage of 40% or more"),
))

DOCUMENT_LABEL_RULES = EscalationRuleSet(
    domain="sensitivity_labels",
    rules=(
        EscalationRule(
            "unlabeled", is_false("hasLabel"),
            RiskLevel.MEDIUM, "No sensitivity label applied",
        ),
        EscalationRule(
            "unlabeled_external",
            all_of(is_false("hasLabel"), is_true("sharedExternally")),
            RiskLevel.HIGH, "Unlabeled document is shared externally",
        ),
    ),
    traits=(Trait("labeled", is_true("hasLabel")),),
)


# ─── Oversharing content scan (categorical) ────────────────────────────────

def oversharing_rules(
    large_group_threshold: int = LARGE_GROUP_THRESHOLD,
) -> EscalationRuleSet:
    return EscalationRuleSet(
        domain="oversharing",
        rules=(
            EscalationRule(
                "everyone",
                any_of(equals("principalType", "everyone"), in_set("sharedWithPrincipal", EVERYONE_PRINCIPALS)),
                RiskLevel.CRITICAL, EVERYONE_REASON,
            ),
            EscalationRule(
                "anonymous_link", equals("principalType", "anonymousLink"),
                RiskLevel.CRITICAL, ANONYMOUS_REASON,
            ),
            EscalationRule(
                "organization_link", equals("principalType", "organizationLink"),
                RiskLevel.HIGH, "Organization-wide sharing link",
            ),
            EscalationRule(
                "security_group", equals("principalType", "securityGroup"),
                RiskLevel.MEDIUM, "Shared with a security group",
            ),
            EscalationRule(
                "large_security_group",
                all_of(
                    equals("principalType", "securityGroup"),
                    at_least("groupMemberCount", large_group_threshold),
                ),
                RiskLevel.HIGH,
                f"Shared with a large security group ({large_group_threshold}+ members)",
            ),
        ),
    )


OVERSHARING_VERDICT = SHARING_VERDICT
