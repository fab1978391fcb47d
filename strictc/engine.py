"""
Analysis pipeline.

Per file: lex, build the shallow tree and file summary, resolve suppression
directives, run every enabled rule, aggregate. Files are independent and are
spread over a thread pool; the rules of one file can be spread over a second
pool when `parallel_rules` is set.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor, as_completed
import threading
import time
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .aggregator import DiagnosticAggregator, FileReport, RunReport, RunSummary
from .config import AnalysisConfig
from .errors import RuleEvaluationError, StrictcError, debug, log, warn_once
from .evaluators import EVALUATORS, FileContext, build_context
from .lexer import tokenize
from .model import Diagnostic, Span
from .registry import Rule, RuleRegistry
from .structure import build
from .suppression import parse_directives, resolve

SourceData = Union[str, bytes]

PIPELINE_RULES = ("LEX.", "SUPPRESSION.", "ENGINE.", "STRUCTURE.UNBALANCED")


class CancelToken:
    """Cooperative cancellation shared by every worker of a run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AnalysisCancelled(Exception):
    pass


class Engine:
    """
    Runs the configured rule set over C sources.

    The configuration is validated here, so a bad AnalysisConfig raises
    ConfigError before any file is read.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None, registry: Optional[RuleRegistry] = None) -> None:
        self.config = config or AnalysisConfig()
        self.registry = self.config.build_registry(registry)
        self.pattern = self.config.compiled_suppression_pattern()
        self.rules: List[Rule] = []
        for rule in self.registry.enabled():
            if rule.id in EVALUATORS:
                self.rules.append(rule)
            elif not rule.id.startswith(PIPELINE_RULES):
                warn_once(f"no-evaluator:{rule.id}", f"rule {rule.id} has no evaluator; skipped")

    # ----------------------------------------------------------
    def analyze_file(self, path: str, data: SourceData, cancel: Optional[CancelToken] = None) -> FileReport:
        """
        Analyse one file. Never raises for problems in the file itself.

        A cancelled file yields a report with `cancelled=True` and no
        diagnostics; whatever was found before cancellation is discarded.
        """
        cancel = cancel or CancelToken()
        try:
            return self._analyze(path, data, cancel)
        except AnalysisCancelled:
            debug(f"{path}: cancelled")
            return FileReport(path=path, cancelled=True)
        except Exception as exc:
            log(f"analysis of {path} failed: {type(exc).__name__}: {exc}")
            return self._file_failure(path, exc)

    def analyze_files(
        self,
        inputs: Iterable[Tuple[str, SourceData]],
        cancel: Optional[CancelToken] = None,
    ) -> RunReport:
        """
        Analyse a batch of (path, contents) pairs on the worker pool.

        Reports come back in input order; cancelled files are counted in the
        summary but have no report.
        """
        cancel = cancel or CancelToken()
        items = list(inputs)
        started = time.monotonic()
        reports: List[Optional[FileReport]] = [None] * len(items)
        with ThreadPoolExecutor(max_workers=self.config.jobs) as executor:
            futures = {
                executor.submit(self._analyze_queued, path, data, cancel): position
                for position, (path, data) in enumerate(items)
            }
            for future in as_completed(futures):
                position = futures[future]
                reports[position] = future.result()

        summary = RunSummary()
        files: List[FileReport] = []
        for report in reports:
            if report is None:
                continue
            summary.add(report)
            if not report.cancelled:
                files.append(report)
        summary.elapsed = time.monotonic() - started
        debug(f"analysed {summary.files_analyzed} file(s) in {summary.elapsed:.2f}s")
        return RunReport(files=files, summary=summary)

    def _analyze_queued(self, path: str, data: SourceData, cancel: CancelToken) -> FileReport:
        if cancel.cancelled:
            return FileReport(path=path, cancelled=True)
        return self.analyze_file(path, data, cancel)

    # ----------------------------------------------------------
    def _analyze(self, path: str, data: SourceData, cancel: CancelToken) -> FileReport:
        source = tokenize(path, data)
        self._check(cancel)
        tree, summary, structure_errors = build(source)
        self._check(cancel)

        suppressions = resolve(parse_directives(source, self.pattern), self.registry)
        aggregator = DiagnosticAggregator(path, suppressions)
        aggregator.extend(self._pipeline_diagnostics(source.lex_errors))
        aggregator.extend(self._pipeline_diagnostics(structure_errors))
        aggregator.extend(suppressions.problems)

        ctx = build_context(source, tree, summary, self.pattern, cancelled=lambda: cancel.cancelled)
        if self.config.parallel_rules and len(self.rules) > 1:
            self._run_rules_parallel(ctx, aggregator, cancel)
        else:
            for rule in self.rules:
                self._check(cancel)
                aggregator.extend(self._run_rule(ctx, rule))
        self._check(cancel)

        report = aggregator.finalize()
        debug(f"{path}: {len(report.diagnostics)} diagnostic(s), {report.suppressed} suppressed")
        return report

    def _run_rules_parallel(self, ctx: FileContext, aggregator: DiagnosticAggregator, cancel: CancelToken) -> None:
        with ThreadPoolExecutor(max_workers=min(len(self.rules), 8)) as executor:
            futures = {executor.submit(self._run_rule, ctx, rule): rule.id for rule in self.rules}
            for future in as_completed(futures):
                if cancel.cancelled:
                    for pending in futures:
                        pending.cancel()
                    raise AnalysisCancelled()
                aggregator.extend(future.result())

    def _run_rule(self, ctx: FileContext, rule: Rule) -> List[Diagnostic]:
        """
        Evaluate one rule. A failing rule contributes a single
        ENGINE.RULE_FAILURE diagnostic instead of its partial output.
        """
        evaluator = EVALUATORS[rule.id]
        try:
            found = list(evaluator(ctx, rule))
        except Exception as exc:
            error = RuleEvaluationError(rule.id, f"{type(exc).__name__}: {exc}", ctx.source.span(0, 0))
            return self._rule_failure(ctx.source.path, error)
        length = ctx.source.length
        for diagnostic in found:
            if not diagnostic.span.within(length):
                error = RuleEvaluationError(
                    rule.id,
                    f"span {diagnostic.span.start}-{diagnostic.span.end} outside file of length {length}",
                    ctx.source.span(0, 0),
                )
                return self._rule_failure(ctx.source.path, error)
        return found

    def _rule_failure(self, path: str, error: RuleEvaluationError) -> List[Diagnostic]:
        warn_once(f"rule-failure:{error.failed_rule}:{path}",
                  f"rule {error.failed_rule} failed on {path}: {error.message}")
        rule = self.registry.get("ENGINE.RULE_FAILURE")
        if rule is None or not rule.enabled:
            return []
        error.message = rule.render(rule=error.failed_rule, error=error.message)
        return [error.to_diagnostic(rule.severity)]

    def _file_failure(self, path: str, exc: Exception) -> FileReport:
        error = RuleEvaluationError("*", f"{type(exc).__name__}: {exc}", Span(path, 0, 0, 1, 1, 1, 1))
        aggregator = DiagnosticAggregator(path)
        aggregator.extend(self._rule_failure(path, error))
        return aggregator.finalize(failed=True)

    def _pipeline_diagnostics(self, errors: Sequence[StrictcError]) -> List[Diagnostic]:
        out: List[Diagnostic] = []
        for error in errors:
            rule = self.registry.get(error.rule_id)
            if rule is None or not rule.enabled or error.span is None:
                continue
            out.append(error.to_diagnostic(rule.severity))
        return out

    @staticmethod
    def _check(cancel: CancelToken) -> None:
        if cancel.cancelled:
            raise AnalysisCancelled()


def analyze_source(path: str, data: SourceData, config: Optional[AnalysisConfig] = None) -> FileReport:
    """Convenience wrapper: analyse one file with a fresh engine."""
    return Engine(config).analyze_file(path, data)
