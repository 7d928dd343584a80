from .base import AnalysisResult, BaseAnalyzer
from .ca_analyzer import ConditionalAccessAnalyzer
from .sharing_analyzer import ExternalSharingAnalyzer
from .label_analyzer import LabelCoverageAnalyzer
from .oversharing_analyzer import OversharingAnalyzer

ALL_ANALYZERS = [
    ConditionalAccessAnalyzer,
    ExternalSharingAnalyzer,
    LabelCoverageAnalyzer,
    OversharingAnalyzer,
]

__all__ = [
    "AnalysisResult",
    "BaseAnalyzer",
    "ConditionalAccessAnalyzer",
    "ExternalSharingAnalyzer",
    "LabelCoverageAnalyzer",
    "OversharingAnalyzer",
    "ALL_ANALYZERS",
]
