"""
Rule primitives — Declarative predicates and rule types consumed by the
classification engine.

Predicates take the record's attribute mapping and return a bool. Every helper
requires the attribute to be present and of the expected type; anything else
is a non-match rather than an error.
"""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Union

from .models import RiskLevel, ReadinessVerdict

Predicate = Callable[[Mapping[str, Any]], bool]
Delta = Union[float, Callable[[Mapping[str, Any]], float]]

_MISSING = object()


def _number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Predicate helpers
# ---------------------------------------------------------------------------

def is_true(attr: str) -> Predicate:
    return lambda attrs: attrs.get(attr, _MISSING) is True


def is_false(attr: str) -> Predicate:
    return lambda attrs: attrs.get(attr, _MISSING) is False


def equals(attr: str, value: Any) -> Predicate:
    return lambda attrs: attr in attrs and attrs[attr] == value


def in_set(attr: str, values: Iterable[Any]) -> Predicate:
    allowed = frozenset(values)
    return lambda attrs: attr in attrs and attrs[attr] in allowed


def at_least(attr: str, threshold: float) -> Predicate:
    return lambda attrs: _number(attrs.get(attr)) and attrs[attr] >= threshold


def at_most(attr: str, threshold: float) -> Predicate:
    return lambda attrs: _number(attrs.get(attr)) and attrs[attr] <= threshold


def less_than(attr: str, threshold: float) -> Predicate:
    return lambda attrs: _number(attrs.get(attr)) and attrs[attr] < threshold


def all_of(*predicates: Predicate) -> Predicate:
    return lambda attrs: all(p(attrs) for p in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda attrs: any(p(attrs) for p in predicates)


def evaluate(predicate: Predicate, attrs: Mapping[str, Any]) -> bool:
    """Run a predicate; a malformed attribute is a non-match."""
    try:
        return bool(predicate(attrs))
    except (KeyError, TypeError, ValueError, AttributeError, ZeroDivisionError):
        return False


# ---------------------------------------------------------------------------
# Rule types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoreRule:
    """Adds `delta` to the running score when `predicate` matches."""
    name: str
    predicate: Predicate
    delta: Delta
    reason: str

    def delta_for(self, attrs: Mapping[str, Any]) -> float:
        if callable(self.delta):
            return float(self.delta(attrs))
        return float(self.delta)


@dataclass(frozen=True)
class EscalationRule:
    """Raises the category to `ceiling` when `predicate` matches."""
    name: str
    predicate: Predicate
    ceiling: RiskLevel
    reason: str


@dataclass(frozen=True)
class Trait:
    """Positive marker recorded on a result; never changes its category."""
    name: str
    predicate: Predicate


@dataclass(frozen=True)
class ScoringRuleSet:
    """Baseline score adjusted by ordered deltas, clamped to [0, 100] at the end."""
    domain: str
    baseline: float
    rules: tuple[ScoreRule, ...]
    traits: tuple[Trait, ...] = ()
    floor: float = 0.0
    ceiling: float = 100.0


@dataclass(frozen=True)
class EscalationRuleSet:
    """Category starts at LOW and only escalates across ordered rules."""
    domain: str
    rules: tuple[EscalationRule, ...]
    traits: tuple[Trait, ...] = ()


RuleSet = Union[ScoringRuleSet, EscalationRuleSet]


@dataclass(frozen=True)
class VerdictRule:
    """Threshold predicate over an AggregateSummary."""
    predicate: Callable[[Any], bool]
    verdict: ReadinessVerdict
    description: str = ""


@dataclass(frozen=True)
class VerdictPolicy:
    """
    Ordered verdict thresholds; first match wins.
    Below `minimum_records` the verdict is always NOT_READY.
    """
    rules: tuple[VerdictRule, ...]
    minimum_records: int = 1
    fallback: ReadinessVerdict = ReadinessVerdict.NOT_READY
