"""
Diagnostic aggregation and report objects.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import threading
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from .model import Diagnostic, Severity

if TYPE_CHECKING:
    from .suppression import SuppressionSet


def severity_counts(diagnostics: Iterable[Diagnostic]) -> Dict[str, int]:
    counts = {str(s): 0 for s in sorted(Severity, reverse=True)}
    for diagnostic in diagnostics:
        counts[str(diagnostic.severity)] += 1
    return counts


@dataclass(frozen=True)
class FileReport:
    path: str
    diagnostics: Tuple[Diagnostic, ...] = ()
    counts: Dict[str, int] = field(default_factory=dict)
    suppressed: int = 0
    cancelled: bool = False
    failed: bool = False

    def worst(self) -> Optional[Severity]:
        return max((d.severity for d in self.diagnostics), default=None, key=lambda s: s.value)


class DiagnosticAggregator:
    """
    Collects the diagnostics of one file from any number of threads.

    Diagnostics covered by `suppressions` are counted and dropped on the way
    in. finalize() drops duplicates (same rule id and span) and orders the
    rest by line, column, then rule id.
    """

    def __init__(self, path: str, suppressions: Optional["SuppressionSet"] = None) -> None:
        self.path = path
        self.suppressions = suppressions
        self._items: List[Diagnostic] = []
        self._suppressed = 0
        self._lock = threading.Lock()

    def add(self, diagnostic: Diagnostic) -> None:
        self.extend((diagnostic,))

    def extend(self, diagnostics: Iterable[Diagnostic]) -> None:
        batch = list(diagnostics)
        dropped = 0
        if self.suppressions is not None:
            batch, dropped = self.suppressions.apply(batch)
        with self._lock:
            self._items.extend(batch)
            self._suppressed += dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def finalize(self, failed: bool = False) -> FileReport:
        with self._lock:
            items = list(self._items)
            suppressed = self._suppressed
        unique: Dict[Tuple[str, int, int], Diagnostic] = {}
        for diagnostic in items:
            unique.setdefault(diagnostic.key, diagnostic)
        ordered = tuple(sorted(unique.values(), key=lambda d: d.sort_key))
        return FileReport(
            path=self.path,
            diagnostics=ordered,
            counts=severity_counts(ordered),
            suppressed=suppressed,
            failed=failed,
        )


# ============================================================
# ======================== RUN REPORT ========================
# ============================================================

@dataclass
class RunSummary:
    files_analyzed: int = 0
    files_failed: int = 0
    files_cancelled: int = 0
    counts: Dict[str, int] = field(default_factory=lambda: severity_counts(()))
    elapsed: float = 0.0

    def add(self, report: FileReport) -> None:
        if report.cancelled:
            self.files_cancelled += 1
            return
        self.files_analyzed += 1
        if report.failed:
            self.files_failed += 1
        for name, count in report.counts.items():
            self.counts[name] = self.counts.get(name, 0) + count

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def failed(self, threshold: Severity) -> bool:
        """True when any diagnostic is at or above `threshold`."""
        return any(
            count and Severity.parse(name) >= threshold
            for name, count in self.counts.items()
        )

    def to_dict(self) -> Dict[str, object]:
        return {
            "files_analyzed": self.files_analyzed,
            "files_failed": self.files_failed,
            "files_cancelled": self.files_cancelled,
            "counts": dict(self.counts),
            "total": self.total,
            "elapsed_seconds": round(self.elapsed, 3),
        }


@dataclass
class RunReport:
    files: List[FileReport] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)

    def diagnostics(self) -> List[Diagnostic]:
        return [d for report in self.files for d in report.diagnostics]
