"""
Scoring data models — Records, risk levels, classification results and
aggregate summaries shared by every audit dimension.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union


class RiskLevel(IntEnum):
    """Ordered risk category. Integer rank defines escalation order."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        return self.name.title()

    @classmethod
    def escalate(cls, current: "RiskLevel", candidate: "RiskLevel") -> "RiskLevel":
        """Return the higher of two levels."""
        return current if current >= candidate else candidate

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """Band a 0-100 compatibility score into a risk level."""
        for threshold, level in SCORE_BANDS:
            if score >= threshold:
                return level
        return cls.CRITICAL


# Compatibility score -> risk band (first match wins)
SCORE_BANDS = [
    (80, RiskLevel.LOW),
    (60, RiskLevel.MEDIUM),
    (40, RiskLevel.HIGH),
]


class ReadinessVerdict(Enum):
    """Top-line readiness outcome of one audit dimension."""
    READY = "Ready"
    NEARLY_READY = "Nearly Ready"
    REQUIRES_WORK = "Requires Work"
    NOT_READY = "Not Ready"

    def __str__(self) -> str:
        return self.value


Category = Union[RiskLevel, float]


def _freeze(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


def display_score(score: Optional[float]) -> Optional[float]:
    """Two-decimal form for reports. Banding always uses the exact value."""
    return None if score is None else round(score, 2)


@dataclass(frozen=True)
class AuditableRecord:
    """
    A fact about one access-control or governance object at one point in time.
    Attributes must be fully resolved by the data source before classification.
    """
    subject_id: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    display_name: str = ""      # Presentation only, never scored
    domain: str = ""            # Audit dimension the record came from

    def __post_init__(self):
        object.__setattr__(self, "attributes", _freeze(self.attributes))

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "display_name": self.display_name,
            "domain": self.domain,
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True)
class ClassificationResult:
    """Category plus the ordered reasons that produced it."""
    subject_id: str
    category: Category
    reasons: tuple[str, ...] = ()
    traits: frozenset[str] = frozenset()
    display_name: str = ""

    @property
    def is_scored(self) -> bool:
        return not isinstance(self.category, RiskLevel)

    @property
    def risk_level(self) -> RiskLevel:
        if isinstance(self.category, RiskLevel):
            return self.category
        return RiskLevel.from_score(self.category)

    @property
    def score(self) -> Optional[float]:
        return None if isinstance(self.category, RiskLevel) else float(self.category)

    def category_label(self) -> str:
        if isinstance(self.category, RiskLevel):
            return self.category.label
        return f"{display_score(self.category):g}"

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "display_name": self.display_name,
            "category": self.category_label(),
            "risk_level": self.risk_level.label,
            "score": display_score(self.score),
            "reasons": list(self.reasons),
            "traits": sorted(self.traits),
        }


@dataclass(frozen=True)
class AggregateSummary:
    """Read-only reduction of a set of classification results."""
    record_count: int
    category_counts: Mapping[RiskLevel, int]
    category_percentages: Mapping[RiskLevel, float]
    trait_counts: Mapping[str, int]
    average_score: Optional[float]
    verdict: ReadinessVerdict

    def __post_init__(self):
        object.__setattr__(self, "category_counts", _freeze(self.category_counts))
        object.__setattr__(self, "category_percentages", _freeze(self.category_percentages))
        object.__setattr__(self, "trait_counts", _freeze(self.trait_counts))

    def count(self, level: RiskLevel) -> int:
        return self.category_counts.get(level, 0)

    def trait(self, name: str) -> int:
        return self.trait_counts.get(name, 0)

    @property
    def critical(self) -> int:
        return self.count(RiskLevel.CRITICAL)

    @property
    def high(self) -> int:
        return self.count(RiskLevel.HIGH)

    def to_dict(self) -> dict:
        return {
            "record_count": self.record_count,
            "verdict": self.verdict.value,
            "average_score": display_score(self.average_score),
            "category_counts": {
                level.label: self.category_counts.get(level, 0) for level in RiskLevel
            },
            "category_percentages": {
                level.label: self.category_percentages.get(level, 0.0) for level in RiskLevel
            },
            "trait_counts": dict(sorted(self.trait_counts.items())),
        }
