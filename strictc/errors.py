"""
Error taxonomy and the stderr reporting helpers.

Lex, structure, suppression and rule-evaluation errors are recovered from and
converted to diagnostics. ConfigError is the only fatal one.
"""

from __future__ import annotations
import sys
import threading
from typing import Optional, Set

from .model import Diagnostic, Severity, Span


class StrictcError(Exception):
    """Base class for every error the checker raises or records."""

    rule_id = "ENGINE.RULE_FAILURE"
    severity = Severity.ERROR

    def __init__(self, message: str, span: Optional[Span] = None, rule_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.span = span
        if rule_id is not None:
            self.rule_id = rule_id

    def to_diagnostic(self, severity: Optional[Severity] = None) -> Diagnostic:
        if self.span is None:
            raise ValueError(f"{type(self).__name__} has no source span to report")
        return Diagnostic(
            rule_id=self.rule_id,
            severity=severity or self.severity,
            span=self.span,
            message=self.message,
        )


class LexError(StrictcError):
    """Malformed token: unterminated literal/comment, invalid byte, stray character."""

    rule_id = "LEX.INVALID_CHARACTER"


class StructureError(StrictcError):
    """Unbalanced braces, parentheses or brackets."""

    rule_id = "STRUCTURE.UNBALANCED"


class RuleEvaluationError(StrictcError):
    """An evaluator hit a tree shape it could not handle."""

    rule_id = "ENGINE.RULE_FAILURE"
    severity = Severity.WARNING

    def __init__(self, failed_rule: str, message: str, span: Optional[Span] = None) -> None:
        super().__init__(message, span)
        self.failed_rule = failed_rule


class SuppressionError(StrictcError):
    """Unterminated or unmatched suppression range, or an unknown rule id in a directive."""

    rule_id = "SUPPRESSION.UNTERMINATED"
    severity = Severity.WARNING


class ConfigError(StrictcError):
    """Caller mistake in configuration. Fatal before any file is analysed."""

    rule_id = "ENGINE.CONFIG"


# ============================================================
# ================== STDERR REPORTING ========================
# ============================================================

_WARNED: Set[str] = set()
_WARNED_LOCK = threading.Lock()
_VERBOSE = False


def set_verbose(enabled: bool) -> None:
    global _VERBOSE
    _VERBOSE = enabled


def log(message: str) -> None:
    sys.stderr.write(f"[strictc] {message}\n")


def debug(message: str) -> None:
    if _VERBOSE:
        log(message)


def warn_once(key: str, message: str) -> None:
    """Write `message` the first time `key` is seen in this process."""
    with _WARNED_LOCK:
        if key in _WARNED:
            return
        _WARNED.add(key)
    log(message)
