"""Scoring package — record classification and readiness aggregation."""

from .engine import aggregate, classify, classify_all, derive_verdict
from .models import (
    AggregateSummary,
    AuditableRecord,
    ClassificationResult,
    ReadinessVerdict,
    RiskLevel,
)
from .rules import (
    EscalationRule,
    EscalationRuleSet,
    ScoreRule,
    ScoringRuleSet,
    Trait,
    VerdictPolicy,
    VerdictRule,
)

__all__ = [
    "aggregate",
    "classify",
    "classify_all",
    "derive_verdict",
    "AggregateSummary",
    "AuditableRecord",
    "ClassificationResult",
    "ReadinessVerdict",
    "RiskLevel",
    "EscalationRule",
    "EscalationRuleSet",
    "ScoreRule",
    "ScoringRuleSet",
    "Trait",
    "VerdictPolicy",
    "VerdictRule",
]
