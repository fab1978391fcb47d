"""
strictc: mechanical checks for a prescriptive C coding standard.
"""

__version__ = "0.1.0"

from .aggregator import DiagnosticAggregator, FileReport, RunReport, RunSummary
from .config import AnalysisConfig, load_config
from .engine import CancelToken, Engine, analyze_source
from .errors import ConfigError, StrictcError
from .model import Diagnostic, Severity, Span
from .registry import Rule, RuleRegistry, default_registry

__all__ = [
    "AnalysisConfig",
    "CancelToken",
    "ConfigError",
    "Diagnostic",
    "DiagnosticAggregator",
    "Engine",
    "FileReport",
    "Rule",
    "RuleRegistry",
    "RunReport",
    "RunSummary",
    "Severity",
    "Span",
    "StrictcError",
    "__version__",
    "analyze_source",
    "default_registry",
    "load_config",
]
