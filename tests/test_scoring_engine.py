"""Tests for the shared classifier and aggregator."""

import random

import pytest

from m365_copilot_readiness.scoring import (
    AuditableRecord,
    EscalationRule,
    EscalationRuleSet,
    ReadinessVerdict,
    RiskLevel,
    ScoreRule,
    ScoringRuleSet,
    Trait,
    VerdictPolicy,
    VerdictRule,
    aggregate,
    classify,
    classify_all,
    derive_verdict,
)
from m365_copilot_readiness.scoring.rules import at_least, equals, is_true
from m365_copilot_readiness.scoring.rulesets import (
    CONDITIONAL_ACCESS_VERDICT,
    LABEL_COVERAGE_RULES,
    LABEL_COVERAGE_VERDICT,
    SHARING_VERDICT,
    conditional_access_rules,
    external_sharing_rules,
)


def record(subject_id="r1", **attrs):
    return AuditableRecord(subject_id=subject_id, attributes=attrs)


SCORING = ScoringRuleSet(
    domain="test",
    baseline=100,
    rules=(
        ScoreRule("a", is_true("a"), -60, "A"),
        ScoreRule("b", is_true("b"), -70, "B"),
        ScoreRule("bonus", is_true("bonus"), 50, "Bonus"),
    ),
)

ESCALATION = EscalationRuleSet(
    domain="test",
    rules=(
        EscalationRule("crit", is_true("crit"), RiskLevel.CRITICAL, "Critical thing"),
        EscalationRule("med", is_true("med"), RiskLevel.MEDIUM, "Medium thing"),
        EscalationRule("high", is_true("high"), RiskLevel.HIGH, "High thing"),
    ),
    traits=(Trait("tagged", is_true("tag")),),
)


class TestClassifyScoring:
    def test_baseline_when_nothing_matches(self):
        result = classify(record(), SCORING)
        assert result.category == 100
        assert result.reasons == ()

    def test_clamps_at_floor_once(self):
        result = classify(record(a=True, b=True), SCORING)
        assert result.category == 0
        assert result.reasons == ("A", "B")

    def test_clamp_applies_after_all_deltas(self):
        # 100 - 60 - 70 + 50 = 20; clamping per step would give 50
        result = classify(record(a=True, b=True, bonus=True), SCORING)
        assert result.category == 20

    def test_clamps_at_ceiling(self):
        assert classify(record(bonus=True), SCORING).category == 100

    def test_scored_result_bands_into_risk_level(self):
        result = classify(record(a=True), SCORING)
        assert result.is_scored
        assert result.score == 40
        assert result.risk_level == RiskLevel.HIGH

    def test_callable_delta(self):
        result = classify(record(totalDocuments=3, labeledDocuments=1), LABEL_COVERAGE_RULES)
        assert result.category == pytest.approx(100 / 3)
        assert result.to_dict()["score"] == 33.33
        assert result.category_label() == "33.33"

    def test_score_just_under_band_is_not_rounded_up(self):
        result = classify(record(totalDocuments=25000, labeledDocuments=19999), LABEL_COVERAGE_RULES)
        assert result.category < 80
        assert result.risk_level == RiskLevel.MEDIUM
        assert result.to_dict()["score"] == 80.0


class TestClassifyEscalation:
    def test_starts_low(self):
        assert classify(record(), ESCALATION).category == RiskLevel.LOW

    def test_never_decreases(self):
        result = classify(record(crit=True, med=True, high=True), ESCALATION)
        assert result.category == RiskLevel.CRITICAL
        assert result.reasons == ("Critical thing", "Medium thing", "High thing")

    def test_escalation_is_monotonic_in_matches(self):
        base = classify(record(med=True), ESCALATION).category
        more = classify(record(med=True, high=True), ESCALATION).category
        assert more >= base

    @pytest.mark.parametrize("attrs", [
        {},
        {"crit": True, "med": True, "high": True},
        {"isExternal": True, "role": "write", "daysSinceActivity": 400, "isConsumerDomain": True},
        {"linkScope": "anonymous", "groupMemberCount": 500},
    ])
    @pytest.mark.parametrize("rule_set", [ESCALATION, external_sharing_rules()], ids=["test", "sharing"])
    def test_category_never_decreases_over_rule_prefixes(self, rule_set, attrs):
        previous = RiskLevel.LOW
        for k in range(len(rule_set.rules) + 1):
            prefix = EscalationRuleSet(domain=rule_set.domain, rules=rule_set.rules[:k])
            current = classify(record(**attrs), prefix).category
            assert current >= previous
            previous = current
        assert previous == classify(record(**attrs), rule_set).category

    def test_traits_do_not_change_category(self):
        result = classify(record(tag=True), ESCALATION)
        assert result.category == RiskLevel.LOW
        assert result.traits == frozenset({"tagged"})

    def test_unknown_rule_set_type(self):
        with pytest.raises(TypeError):
            classify(record(), object())


class TestMalformedAttributes:
    def test_wrong_type_is_non_match(self):
        rules = EscalationRuleSet(
            domain="test",
            rules=(EscalationRule("big", at_least("count", 10), RiskLevel.HIGH, "Big"),),
        )
        assert classify(record(count="lots"), rules).category == RiskLevel.LOW
        assert classify(record(count=None), rules).category == RiskLevel.LOW
        assert classify(record(count=True), rules).category == RiskLevel.LOW

    def test_raising_predicate_is_non_match(self):
        def boom(attrs):
            return attrs["missing"] > 1

        rules = EscalationRuleSet(
            domain="test",
            rules=(EscalationRule("boom", boom, RiskLevel.CRITICAL, "Boom"),),
        )
        assert classify(record(), rules).category == RiskLevel.LOW

    def test_missing_boolean_is_not_false(self):
        rules = conditional_access_rules()
        result = classify(record(state="enabled"), rules)
        assert result.category == 100

    def test_zero_documents_scores_zero(self):
        result = classify(record(totalDocuments=0, labeledDocuments=0), LABEL_COVERAGE_RULES)
        assert result.category == 0


class TestDeterminism:
    def test_same_input_same_output(self):
        rec = record(crit=True, tag=True)
        assert classify(rec, ESCALATION) == classify(rec, ESCALATION)

    def test_aggregate_ignores_order(self):
        records = [record(f"r{i}", med=i % 3 == 0, crit=i == 7) for i in range(20)]
        results = list(classify_all(records, ESCALATION))
        first = aggregate(results, SHARING_VERDICT)
        random.Random(4).shuffle(results)
        assert aggregate(results, SHARING_VERDICT) == first

    def test_records_are_immutable(self):
        rec = record(a=True)
        with pytest.raises(TypeError):
            rec.attributes["a"] = False


class TestAggregate:
    def test_empty_input_is_not_ready(self):
        summary = aggregate((), SHARING_VERDICT)
        assert summary.record_count == 0
        assert all(v == 0 for v in summary.category_counts.values())
        assert summary.average_score is None
        assert summary.verdict == ReadinessVerdict.NOT_READY

    def test_empty_input_not_ready_for_every_policy(self):
        for policy in (SHARING_VERDICT, CONDITIONAL_ACCESS_VERDICT, LABEL_COVERAGE_VERDICT):
            assert aggregate((), policy).verdict == ReadinessVerdict.NOT_READY

    def test_counts_and_percentages(self):
        results = classify_all(
            [record("a"), record("b", med=True), record("c", crit=True), record("d")],
            ESCALATION,
        )
        summary = aggregate(results, SHARING_VERDICT)
        assert summary.count(RiskLevel.LOW) == 2
        assert summary.count(RiskLevel.MEDIUM) == 1
        assert summary.critical == 1
        assert summary.category_percentages[RiskLevel.LOW] == 50.0

    def test_average_score_rounded_for_display_only(self):
        results = classify_all([record("c", totalDocuments=3, labeledDocuments=1)], LABEL_COVERAGE_RULES)
        summary = aggregate(results, LABEL_COVERAGE_VERDICT)
        assert summary.average_score == pytest.approx(100 / 3)
        assert summary.to_dict()["average_score"] == 33.33

    def test_coverage_just_under_eighty_is_nearly_ready(self):
        coverage = classify(record(totalDocuments=25000, labeledDocuments=19999), LABEL_COVERAGE_RULES)
        summary = aggregate((coverage,), LABEL_COVERAGE_VERDICT)
        assert summary.verdict == ReadinessVerdict.NEARLY_READY
        assert summary.to_dict()["average_score"] == 80.0

    def test_single_critical_is_not_diluted(self):
        records = [record(f"r{i}") for i in range(9)] + [record("bad", crit=True)]
        summary = aggregate(classify_all(records, ESCALATION), SHARING_VERDICT)
        assert summary.critical == 1
        assert summary.verdict not in (ReadinessVerdict.READY, ReadinessVerdict.NEARLY_READY)
        assert summary.verdict == ReadinessVerdict.REQUIRES_WORK


class TestDeriveVerdict:
    def test_first_match_wins(self):
        policy = VerdictPolicy(rules=(
            VerdictRule(lambda s: True, ReadinessVerdict.NEARLY_READY),
            VerdictRule(lambda s: True, ReadinessVerdict.READY),
        ))
        summary = aggregate(classify_all([record()], ESCALATION), policy)
        assert summary.verdict == ReadinessVerdict.NEARLY_READY

    def test_fallback_when_nothing_matches(self):
        results = classify_all([record(crit=True)] * 3, ESCALATION)
        assert aggregate(results, SHARING_VERDICT).verdict == ReadinessVerdict.NOT_READY

    def test_minimum_records(self):
        policy = VerdictPolicy(
            rules=(VerdictRule(lambda s: True, ReadinessVerdict.READY),),
            minimum_records=5,
        )
        summary = aggregate(classify_all([record()], ESCALATION), policy)
        assert summary.verdict == ReadinessVerdict.NOT_READY
        assert derive_verdict(summary, policy) == ReadinessVerdict.NOT_READY

    def test_raising_threshold_is_skipped(self):
        policy = VerdictPolicy(rules=(
            VerdictRule(lambda s: s.average_score >= 50, ReadinessVerdict.READY),
            VerdictRule(lambda s: True, ReadinessVerdict.REQUIRES_WORK),
        ))
        summary = aggregate(classify_all([record()], ESCALATION), policy)
        assert summary.verdict == ReadinessVerdict.REQUIRES_WORK


class TestReferenceScenarios:
    def test_missing_mfa_costs_twenty_points(self):
        rec = record("pol", appliesToAllUsers=True, requiresMFA=False, state="enabled")
        result = classify(rec, conditional_access_rules())
        assert result.category == 80
        assert "No MFA requirement for AI tools." in result.reasons

    def test_everyone_share_is_critical_regardless_of_other_attributes(self):
        rec = record(
            "item",
            sharedWithPrincipal="Everyone",
            isExternal=False,
            role="read",
            daysSinceActivity=0,
        )
        result = classify(rec, external_sharing_rules())
        assert result.category == RiskLevel.CRITICAL
        assert "Shared with Everyone group" in result.reasons

    @pytest.mark.parametrize("labeled,expected", [
        (80, ReadinessVerdict.READY),
        (79, ReadinessVerdict.NEARLY_READY),
        (60, ReadinessVerdict.NEARLY_READY),
        (40, ReadinessVerdict.REQUIRES_WORK),
        (39, ReadinessVerdict.NOT_READY),
    ])
    def test_label_coverage_bands(self, labeled, expected):
        coverage = classify(
            record("tenant", labeledDocuments=labeled, totalDocuments=100),
            LABEL_COVERAGE_RULES,
        )
        assert aggregate((coverage,), LABEL_COVERAGE_VERDICT).verdict == expected


class TestRiskLevel:
    def test_escalate_returns_higher(self):
        assert RiskLevel.escalate(RiskLevel.HIGH, RiskLevel.MEDIUM) == RiskLevel.HIGH
        assert RiskLevel.escalate(RiskLevel.LOW, RiskLevel.CRITICAL) == RiskLevel.CRITICAL

    @pytest.mark.parametrize("score,level", [
        (100, RiskLevel.LOW), (80, RiskLevel.LOW), (79.99, RiskLevel.MEDIUM),
        (60, RiskLevel.MEDIUM), (40, RiskLevel.HIGH), (39.99, RiskLevel.CRITICAL), (0, RiskLevel.CRITICAL),
    ])
    def test_from_score(self, score, level):
        assert RiskLevel.from_score(score) == level


class TestPredicates:
    def test_equals_requires_presence(self):
        assert not equals("x", None)({})
        assert equals("x", None)({"x": None})

    def test_is_true_is_identity(self):
        assert not is_true("x")({"x": 1})
        assert is_true("x")({"x": True})
