"""
Documentation and file layout rules.
"""

from __future__ import annotations
from typing import Dict, Iterator

from ..model import Diagnostic, NodeKind, TokenKind
from ..registry import Rule
from ..structure import SECTION_ORDER
from .base import Evaluator, FileContext


def check_file_header(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    first = next(
        (i for i, t in enumerate(tokens) if t.kind not in (TokenKind.WHITESPACE, TokenKind.NEWLINE)),
        None,
    )
    if first is None:
        return
    tok = tokens[first]
    if tok.is_block_comment and not ctx.is_directive_comment(tok):
        return
    yield ctx.report(rule, first)


def _documented(ctx: FileContext, node) -> bool:
    if node.comment is None:
        return False
    block = ctx.tree.node(node.comment)
    return any(ctx.tokens[i].is_block_comment and not ctx.is_directive_comment(ctx.tokens[i])
               for i in range(block.first, block.last))


def check_function_header(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in ctx.functions:
        if not fact.is_definition:
            continue
        node = ctx.tree.node(fact.node)
        if not _documented(ctx, node):
            yield ctx.report(rule, fact.name_token, name=fact.name)


def check_type_comment(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in ctx.types:
        node = ctx.tree.node(fact.node)
        parent = ctx.tree.parent(node)
        if parent is None or parent.kind not in (NodeKind.FILE, NodeKind.PREPROCESSOR_BLOCK):
            continue
        if node.comment is None:
            yield ctx.report(rule, fact.token, name=fact.name)


def check_section_order(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    rank = {name: pos for pos, name in enumerate(SECTION_ORDER)}
    furthest = None
    for section, index in ctx.summary.sections:
        if furthest is not None and rank[section] < rank[furthest]:
            yield ctx.report(rule, ctx.tree.node(index).first, section=section, previous=furthest)
        elif furthest is None or rank[section] > rank[furthest]:
            furthest = section


EVALUATORS: Dict[str, Evaluator] = {
    "DOCUMENTATION.FILE_HEADER": check_file_header,
    "DOCUMENTATION.FUNCTION_HEADER": check_function_header,
    "DOCUMENTATION.TYPE_COMMENT": check_type_comment,
    "DOCUMENTATION.SECTION_ORDER": check_section_order,
}
