"""
Comment style rules.
"""

from __future__ import annotations
import re
from typing import Dict, Iterator

from ..model import Diagnostic, NodeKind, TokenKind
from ..registry import Rule
from .base import Evaluator, FileContext, comment_body

CODE_LINE = re.compile(
    r"^(?:#\s*(?:include|define|if|ifdef|ifndef|endif)\b"
    r"|(?:return|break|continue|goto)\b.*;"
    r"|(?:if|while|for|switch)\s*\(.*\)\s*\{?"
    r"|[A-Za-z_][\w.\->\[\]]*\s*(?:[-+*/%&|^]?=(?!=)|\+\+|--).*;"
    r"|[A-Za-z_]\w*\s*\(.*\)\s*;"
    r"|[{}]"
    r")\s*$"
)


def _comments(ctx: FileContext) -> Iterator[int]:
    for i, tok in ctx.until_cancelled(enumerate(ctx.tokens)):
        if tok.kind == TokenKind.COMMENT and not ctx.is_directive_comment(tok):
            yield i


def _continues_block(ctx: FileContext, i: int) -> bool:
    """True when comment `i` continues a standalone comment on the previous line."""
    if not ctx.first_on_line(i):
        return False
    j = i - 1
    while j >= 0 and ctx.tokens[j].kind == TokenKind.WHITESPACE:
        j -= 1
    if j < 0 or ctx.tokens[j].kind != TokenKind.NEWLINE:
        return False
    j -= 1
    while j >= 0 and ctx.tokens[j].kind == TokenKind.WHITESPACE:
        j -= 1
    return j >= 0 and ctx.tokens[j].kind == TokenKind.COMMENT and ctx.first_on_line(j)


def check_single_line_beside_code(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in _comments(ctx):
        if ctx.tokens[i].is_line_comment and ctx.first_on_line(i):
            yield ctx.report(rule, i)


def check_nested(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in _comments(ctx):
        tok = ctx.tokens[i]
        if not tok.is_block_comment:
            continue
        pos = tok.text.find("/*", 2)
        while pos != -1:
            start = tok.span.start + pos
            yield ctx.report_span(rule, start, start + 2)
            pos = tok.text.find("/*", pos + 2)


def check_capitalization(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    ignore = {w.lower() for w in rule.param("ignore_words", []) or []}
    for i in _comments(ctx):
        if _continues_block(ctx, i):
            continue
        body = comment_body(ctx.tokens[i].text)
        if not body or body[0] in "@\\":
            continue
        word = body.split()[0]
        if not word[0].islower():
            continue
        # Identifiers quoted at the start of a comment keep their own case.
        if "_" in word or "(" in word or any(c.isdigit() or c.isupper() for c in word):
            continue
        if word.rstrip(":,.").lower() in ignore:
            continue
        yield ctx.report(rule, i)


def check_blank_line_before(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    source = ctx.source
    for node in ctx.until_cancelled(ctx.tree.of_kind(NodeKind.COMMENT_BLOCK)):
        first = node.first
        tok = ctx.tokens[first]
        if not ctx.first_on_line(first) or ctx.is_directive_comment(tok) or tok.line == 1:
            continue
        previous = source.line_text(tok.line - 1).strip()
        if not previous or previous.endswith(("{", ":")):
            continue
        yield ctx.report(rule, first)


def check_space_after_delimiter(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in _comments(ctx):
        tok = ctx.tokens[i]
        text = tok.text
        delimiter = text[:2]
        rest = text[2:]
        if delimiter == "/*" and rest.endswith("*/"):
            rest = rest[:-2]
        if not rest or rest[0] in " \t\r\n":
            continue
        if rest[0] in "*!<" or (delimiter == "//" and rest[0] == "/"):
            continue
        yield ctx.report_span(rule, tok.span.start, tok.span.start + 2, delimiter=delimiter)


def check_commented_out_code(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for i in _comments(ctx):
        tok = ctx.tokens[i]
        body = tok.text[2:]
        if tok.is_block_comment and body.endswith("*/"):
            body = body[:-2]
        for line in body.splitlines():
            line = line.strip().lstrip("*/").strip()
            if line and CODE_LINE.match(line):
                yield ctx.report(rule, i)
                break


EVALUATORS: Dict[str, Evaluator] = {
    "COMMENTS.SINGLE_LINE_BESIDE_CODE": check_single_line_beside_code,
    "COMMENTS.NESTED": check_nested,
    "COMMENTS.CAPITALIZATION": check_capitalization,
    "COMMENTS.BLANK_LINE_BEFORE": check_blank_line_before,
    "COMMENTS.SPACE_AFTER_DELIMITER": check_space_after_delimiter,
    "COMMENTS.COMMENTED_OUT_CODE": check_commented_out_code,
}
