"""
Keyword and literal usage rules.
"""

from __future__ import annotations
import re
from typing import Dict, Iterator, Set

from ..model import Diagnostic, TokenKind
from ..registry import Rule
from .base import Evaluator, FileContext

BANNED_BASIC_TYPES = frozenset({"short", "int", "long", "signed", "unsigned"})

_HEX = re.compile(r"^0[xX]")
_INT_SUFFIX = re.compile(r"[uUlL]+$")
_FLOAT_SUFFIX = re.compile(r"[fFlL]$")


def _keyword_tokens(ctx: FileContext, *words: str) -> Iterator[int]:
    for i in ctx.code_tokens():
        if ctx.tokens[i].is_keyword(*words):
            yield i


def check_auto(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in _keyword_tokens(ctx, "auto"):
        yield ctx.report(rule, i)


def check_register(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in _keyword_tokens(ctx, "register"):
        yield ctx.report(rule, i)


# ============================================================
# ===================== GOTO & LABELS ========================
# ============================================================

def check_goto_backward(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fn in ctx.summary.functions:
        labels = dict(fn.labels)
        for name, goto in fn.gotos:
            target = labels.get(name)
            if target is not None and target < goto:
                yield ctx.report(rule, goto, ctx.next_code(goto), label=name,
                                 target=ctx.tokens[target].line)


def check_goto_unknown_label(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fn in ctx.summary.functions:
        labels = dict(fn.labels)
        for name, goto in fn.gotos:
            if name not in labels:
                yield ctx.report(rule, goto, ctx.next_code(goto), label=name, function=fn.name or "?")


def check_label_name(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fn in ctx.summary.functions:
        if not fn.name:
            continue
        prefix = fn.name + "_"
        for name, token in fn.labels:
            if not name.startswith(prefix):
                yield ctx.report(rule, token, name=name, prefix=prefix)


# ============================================================
# ========================= TYPES ============================
# ============================================================

def _main_signature(ctx: FileContext) -> Set[int]:
    """Token indices of main's return type and parameter list."""
    exempt: Set[int] = set()
    for fact in ctx.functions:
        if fact.name != "main" or fact.param_close is None:
            continue
        node = ctx.tree.node(fact.node)
        exempt.update(range(node.first, fact.param_close + 1))
    return exempt


def check_basic_types(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    exempt = _main_signature(ctx)
    for i in _keyword_tokens(ctx, *BANNED_BASIC_TYPES):
        if i in exempt:
            continue
        prev = ctx.prev_code(i)
        if prev is not None and ctx.tokens[prev].is_keyword(*BANNED_BASIC_TYPES):
            continue
        yield ctx.report(rule, i, keyword=ctx.tokens[i].text)


def check_sizeof_parens(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in _keyword_tokens(ctx, "sizeof"):
        nxt = ctx.next_code(i)
        if nxt is None or not ctx.tokens[nxt].is_op("("):
            yield ctx.report(rule, i, nxt)


# ============================================================
# ======================== LITERALS ==========================
# ============================================================

def _is_float(text: str) -> bool:
    if _HEX.match(text):
        return "." in text or "p" in text.lower()
    return "." in text or "e" in text.lower()


def check_literal_suffix_case(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in ctx.code_tokens():
        tok = ctx.tokens[i]
        if tok.kind != TokenKind.NUMBER:
            continue
        if _is_float(tok.text):
            match = _FLOAT_SUFFIX.search(tok.text)
            if match and match.group(0) == "l":
                suffix = match.group(0)
            else:
                continue
        else:
            match = _INT_SUFFIX.search(tok.text)
            if not match or match.group(0) == match.group(0).upper():
                continue
            suffix = match.group(0)
        start = tok.span.start + match.start()
        yield ctx.report_span(rule, start, tok.span.end, suffix=suffix, expected=suffix.upper())


def check_float_literal_form(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in ctx.code_tokens():
        tok = ctx.tokens[i]
        text = tok.text
        if tok.kind != TokenKind.NUMBER or _HEX.match(text) or "." not in text:
            continue
        dot = text.index(".")
        expected = text
        if dot + 1 >= len(text) or not text[dot + 1].isdigit():
            expected = expected[:dot + 1] + "0" + expected[dot + 1:]
        if dot == 0:
            expected = "0" + expected
        if expected != text:
            yield ctx.report(rule, i, text=text, expected=expected)


EVALUATORS: Dict[str, Evaluator] = {
    "KEYWORDS.AUTO": check_auto,
    "KEYWORDS.REGISTER": check_register,
    "KEYWORDS.GOTO_BACKWARD": check_goto_backward,
    "KEYWORDS.GOTO_UNKNOWN_LABEL": check_goto_unknown_label,
    "KEYWORDS.LABEL_NAME": check_label_name,
    "KEYWORDS.BASIC_TYPES": check_basic_types,
    "KEYWORDS.SIZEOF_PARENS": check_sizeof_parens,
    "KEYWORDS.LITERAL_SUFFIX_CASE": check_literal_suffix_case,
    "KEYWORDS.FLOAT_LITERAL_FORM": check_float_literal_form,
}
