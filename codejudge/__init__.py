"""codejudge: sandboxed execution and static analysis of JavaScript snippets."""

__version__ = "0.1.0"

from .core.exceptions import CodeJudgeError, CodeNotFoundError
from .core.settings import EngineSettings
from .engine import AnalysisEngine, AnalysisSink, CodeRepository
from .models import AnalysisReport, CompleteAnalysis, TestCase
from .scoring import WEIGHTS_VERSION, ScoringAggregator

__all__ = [
    "__version__",
    "AnalysisEngine",
    "AnalysisSink",
    "CodeRepository",
    "EngineSettings",
    "ScoringAggregator",
    "WEIGHTS_VERSION",
    "AnalysisReport",
    "CompleteAnalysis",
    "TestCase",
    "CodeJudgeError",
    "CodeNotFoundError",
]
