"""Static analyzers for shape, maintainability metrics and security."""

from .metrics_analyzer import MetricsAnalyzer
from .security_analyzer import SecurityAnalyzer
from .shape_analyzer import ShapeAnalyzer, detect_dependencies

__all__ = [
    "ShapeAnalyzer",
    "MetricsAnalyzer",
    "SecurityAnalyzer",
    "detect_dependencies",
]
