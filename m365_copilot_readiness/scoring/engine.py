"""
Scoring Engine — Classifies auditable records and aggregates them into a
readiness verdict.

Scoring model:
  - Scoring variant: start at the rule set baseline, apply the delta of every
    matched rule in order, clamp to [0, 100] once at the end.
  - Categorical variant: start at LOW, every matched rule escalates the
    category to its ceiling; the category never decreases.
  - Aggregation counts results per risk level and walks the verdict policy
    top-to-bottom, first match wins. Too few records is always "Not Ready".
"""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable, Sequence

from .models import (
    AggregateSummary,
    AuditableRecord,
    ClassificationResult,
    ReadinessVerdict,
    RiskLevel,
)
from .rules import (
    EscalationRuleSet,
    RuleSet,
    ScoringRuleSet,
    Trait,
    VerdictPolicy,
    evaluate,
)


def classify(record: AuditableRecord, rule_set: RuleSet) -> ClassificationResult:
    """
    Classify one record against a rule set.

    Args:
        record: Fully resolved record from a data source.
        rule_set: ScoringRuleSet or EscalationRuleSet for the record's domain.

    Returns:
        ClassificationResult with the category and ordered reasons.
    """
    attrs = record.attributes
    reasons: list[str] = []

    if isinstance(rule_set, ScoringRuleSet):
        score = float(rule_set.baseline)
        for rule in rule_set.rules:
            if not evaluate(rule.predicate, attrs):
                continue
            try:
                delta = rule.delta_for(attrs)
            except (KeyError, TypeError, ValueError, ZeroDivisionError):
                continue
            score += delta
            reasons.append(rule.reason)
        # Clamp once, after every rule has contributed
        category = max(rule_set.floor, min(rule_set.ceiling, score))

    elif isinstance(rule_set, EscalationRuleSet):
        category = RiskLevel.LOW
        for rule in rule_set.rules:
            if evaluate(rule.predicate, attrs):
                category = RiskLevel.escalate(category, rule.ceiling)
                reasons.append(rule.reason)

    else:
        raise TypeError(f"Unsupported rule set type: {type(rule_set).__name__}")

    return ClassificationResult(
        subject_id=record.subject_id,
        category=category,
        reasons=tuple(reasons),
        traits=_collect_traits(rule_set.traits, attrs),
        display_name=record.display_name,
    )


def classify_all(
    records: Iterable[AuditableRecord],
    rule_set: RuleSet,
) -> tuple[ClassificationResult, ...]:
    """Classify every record, preserving input order."""
    return tuple(classify(r, rule_set) for r in records)


def _collect_traits(traits: Sequence[Trait], attrs) -> frozenset[str]:
    return frozenset(t.name for t in traits if evaluate(t.predicate, attrs))


def aggregate(
    results: Sequence[ClassificationResult],
    policy: VerdictPolicy,
) -> AggregateSummary:
    """
    Reduce classification results to summary counts and a readiness verdict.
    Order of `results` never affects the output.
    """
    total = len(results)
    counts = Counter(r.risk_level for r in results)
    category_counts = {level: counts.get(level, 0) for level in RiskLevel}
    category_percentages = {
        level: round(category_counts[level] * 100.0 / total, 2) if total else 0.0
        for level in RiskLevel
    }

    trait_counts: Counter = Counter()
    for r in results:
        trait_counts.update(r.traits)

    scores = [r.score for r in results if r.score is not None]
    # Unrounded so verdict thresholds see the exact mean; to_dict rounds for display
    average_score = math.fsum(scores) / len(scores) if scores else None

    # Verdict is computed over a provisional summary so predicates see final counts
    provisional = AggregateSummary(
        record_count=total,
        category_counts=category_counts,
        category_percentages=category_percentages,
        trait_counts=dict(trait_counts),
        average_score=average_score,
        verdict=ReadinessVerdict.NOT_READY,
    )
    verdict = derive_verdict(provisional, policy)

    return AggregateSummary(
        record_count=total,
        category_counts=category_counts,
        category_percentages=category_percentages,
        trait_counts=dict(trait_counts),
        average_score=average_score,
        verdict=verdict,
    )


def derive_verdict(summary: AggregateSummary, policy: VerdictPolicy) -> ReadinessVerdict:
    """Walk the policy's thresholds top-to-bottom; first match wins."""
    if summary.record_count < max(policy.minimum_records, 1):
        return ReadinessVerdict.NOT_READY
    for rule in policy.rules:
        try:
            if rule.predicate(summary):
                return rule.verdict
        except (TypeError, ValueError):
            continue
    return policy.fallback
