from .base import BaseCollector, CollectorResult
from .conditional_access import ConditionalAccessCollector
from .external_identities import ExternalIdentityCollector
from .sharepoint import SharePointCollector
from .labels import SensitivityLabelCollector

ALL_COLLECTORS = [
    ConditionalAccessCollector,
    ExternalIdentityCollector,
    SharePointCollector,
    SensitivityLabelCollector,
]

# Collectors each audit reads from
AUDIT_COLLECTORS = {
    "conditional_access": ["conditional_access"],
    "external_sharing":   ["external_identities", "sharepoint"],
    "sensitivity_labels": ["sharepoint", "sensitivity_labels"],
    "oversharing":        ["sharepoint"],
}

__all__ = [
    "BaseCollector",
    "CollectorResult",
    "ConditionalAccessCollector",
    "ExternalIdentityCollector",
    "SharePointCollector",
    "SensitivityLabelCollector",
    "ALL_COLLECTORS",
    "AUDIT_COLLECTORS",
]
