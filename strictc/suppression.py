"""
In-source suppression directives.

Directives live in comments and are recognised by the configured pattern
(see config.DEFAULT_SUPPRESSION_PATTERN):

    /* strictc-disable-next-line NAMING.TYPE_SUFFIX */
    /* strictc-disable WHITESPACE.TAB */ ... /* strictc-enable WHITESPACE.TAB */
    /* strictc-disable-file KEYWORDS.BASIC_TYPES */

A directive without rule ids applies to every rule. Problems with the
directives themselves are reported as SUPPRESSION.* diagnostics, which can
never be suppressed.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import re
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Tuple

from .errors import SuppressionError, debug
from .model import Diagnostic, DirectiveKind, SourceFile, SuppressionDirective, TokenKind
from .registry import RuleRegistry

ACTION_KINDS = {
    "disable-next-line": DirectiveKind.NEXT_LINE,
    "disable-file": DirectiveKind.FILE_WIDE,
    "disable": DirectiveKind.RANGE_START,
    "enable": DirectiveKind.RANGE_END,
}

_RULE_SPLIT = re.compile(r"[\s,]+")


def parse_directives(source: SourceFile, pattern: Pattern[str]) -> List[SuppressionDirective]:
    """Find every directive in the comments of `source`, in file order."""
    directives: List[SuppressionDirective] = []
    has_rules = "rules" in pattern.groupindex
    for tok in source.tokens:
        if tok.kind != TokenKind.COMMENT:
            continue
        for match in pattern.finditer(tok.text):
            kind = ACTION_KINDS.get(match.group("action"))
            if kind is None:
                continue
            raw = match.group("rules") if has_rules else None
            rule_ids = tuple(r for r in _RULE_SPLIT.split(raw or "") if r)
            directives.append(SuppressionDirective(kind, rule_ids, tok.span))
    return directives


@dataclass
class _OpenRange:
    directive: SuppressionDirective
    ids: FrozenSet[str]


@dataclass
class SuppressionSet:
    """Resolved directives for one file."""
    file_wide: List[SuppressionDirective] = field(default_factory=list)
    next_line: Dict[int, List[SuppressionDirective]] = field(default_factory=dict)
    # (first line, last line, directive) of closed ranges, both inclusive.
    ranges: List[Tuple[int, int, SuppressionDirective]] = field(default_factory=list)
    problems: List[Diagnostic] = field(default_factory=list)

    def is_suppressed(self, diagnostic: Diagnostic) -> bool:
        rule_id = diagnostic.rule_id
        if rule_id.startswith("SUPPRESSION."):
            return False
        if any(d.covers(rule_id) for d in self.file_wide):
            return True
        if any(d.covers(rule_id) for d in self.next_line.get(diagnostic.span.line, ())):
            return True
        line = diagnostic.span.line
        return any(lo <= line <= hi and d.covers(rule_id) for lo, hi, d in self.ranges)

    def apply(self, diagnostics: Iterable[Diagnostic]) -> Tuple[List[Diagnostic], int]:
        """Return the diagnostics that survive, plus how many were suppressed."""
        kept: List[Diagnostic] = []
        dropped = 0
        for diagnostic in diagnostics:
            if self.is_suppressed(diagnostic):
                dropped += 1
            else:
                kept.append(diagnostic)
        return kept, dropped


def _problem(registry: RuleRegistry, rule_id: str, directive: SuppressionDirective,
             **values) -> Optional[Diagnostic]:
    rule = registry.get(rule_id)
    if rule is None or not rule.enabled:
        return None
    error = SuppressionError(rule.render(**values), directive.span, rule_id=rule.id)
    return error.to_diagnostic(rule.severity)


def resolve(directives: List[SuppressionDirective], registry: RuleRegistry) -> SuppressionSet:
    """
    Pair range starts with range ends and index the rest.

    An `enable` naming rules closes the most recent open range with the same
    rule set; a bare `enable` closes every open range. Ranges still open at
    the end of the file suppress nothing and are reported as unterminated.
    """
    result = SuppressionSet()
    open_ranges: List[_OpenRange] = []

    def note(rule_id: str, directive: SuppressionDirective, **values) -> None:
        problem = _problem(registry, rule_id, directive, **values)
        if problem is not None:
            result.problems.append(problem)

    for directive in directives:
        for rule_id in directive.rule_ids:
            if rule_id not in registry:
                note("SUPPRESSION.UNKNOWN_RULE", directive, name=rule_id)

        if directive.kind == DirectiveKind.FILE_WIDE:
            result.file_wide.append(directive)
        elif directive.kind == DirectiveKind.NEXT_LINE:
            result.next_line.setdefault(directive.span.end_line + 1, []).append(directive)
        elif directive.kind == DirectiveKind.RANGE_START:
            open_ranges.append(_OpenRange(directive, frozenset(directive.rule_ids)))
        else:
            wanted = frozenset(directive.rule_ids)
            if wanted:
                closing = [r for r in open_ranges if r.ids == wanted][-1:]
            else:
                closing = list(open_ranges)
            if not closing:
                note("SUPPRESSION.UNMATCHED_END", directive)
                continue
            for entry in closing:
                open_ranges.remove(entry)
                result.ranges.append((entry.directive.span.line, directive.span.end_line, entry.directive))

    for entry in open_ranges:
        note("SUPPRESSION.UNTERMINATED", entry.directive)
    if directives:
        debug(f"{len(directives)} suppression directive(s), {len(result.ranges)} closed range(s)")
    return result

