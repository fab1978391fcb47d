"""
Statement and block structure rules: braces, switch hygiene, nesting,
conditional operators, per-line limits and function size.
"""

from __future__ import annotations
import re
from typing import Dict, Iterator, List, Optional

from ..model import Diagnostic, NodeKind, SyntaxNode, TokenKind
from ..registry import Rule
from ..structure import JUMP_KEYWORDS
from .base import Evaluator, FileContext

BRACED_KEYWORDS = ("if", "else", "while", "for", "switch", "do")
NESTING_KEYWORDS = frozenset({"if", "while", "for", "switch", "do"})
ASSIGNMENTS = frozenset({"=", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<=", ">>="})
FALLTHROUGH_COMMENT = re.compile(r"fall(?:s|ing)?[\s-]*(?:through|thru)", re.IGNORECASE)


def _control_statements(ctx: FileContext, *keywords: str) -> Iterator[SyntaxNode]:
    for node in ctx.until_cancelled(ctx.tree.of_kind(NodeKind.STATEMENT)):
        if node.keyword in keywords:
            yield node


def _is_empty_statement(ctx: FileContext, node: Optional[SyntaxNode]) -> bool:
    return (node is not None and node.kind == NodeKind.STATEMENT and node.keyword is None
            and node.last - node.first == 1 and ctx.tokens[node.first].is_op(";"))


def check_braces_required(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for node in _control_statements(ctx, *BRACED_KEYWORDS):
        body = ctx.body_of(node)
        if body is None or body.kind == NodeKind.BRACE_BLOCK or _is_empty_statement(ctx, body):
            continue
        if node.keyword == "else" and body.kind == NodeKind.STATEMENT and body.keyword == "if":
            continue
        yield ctx.report(rule, node.first, keyword=node.keyword)


def check_empty_body(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for node in _control_statements(ctx, "if", "else", "while", "for"):
        body = ctx.body_of(node)
        if _is_empty_statement(ctx, body):
            yield ctx.report(rule, body.first, keyword=node.keyword)


# ============================================================
# ========================= SWITCH ===========================
# ============================================================

def _switch_labels(ctx: FileContext, switch: SyntaxNode) -> List[SyntaxNode]:
    """case/default labels belonging to `switch`, not to nested switches."""
    body = ctx.body_of(switch)
    if body is None or body.kind != NodeKind.BRACE_BLOCK:
        return []
    labels: List[SyntaxNode] = []
    stack = list(reversed(body.children))
    while stack:
        node = ctx.tree.node(stack.pop())
        if node.kind == NodeKind.STATEMENT and node.keyword == "switch":
            continue
        if node.kind == NodeKind.STATEMENT and node.keyword in ("case", "default"):
            labels.append(node)
        stack.extend(reversed(node.children))
    return labels


def check_switch_default(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for node in _control_statements(ctx, "switch"):
        body = ctx.body_of(node)
        if body is None or body.kind != NodeKind.BRACE_BLOCK:
            continue
        if not any(label.keyword == "default" for label in _switch_labels(ctx, node)):
            yield ctx.report(rule, node.first)


def check_default_last(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for node in _control_statements(ctx, "switch"):
        labels = _switch_labels(ctx, node)
        for label in labels[:-1]:
            if label.keyword == "default":
                yield ctx.report(rule, label.first)


def _ends_with_jump(ctx: FileContext, node: SyntaxNode) -> bool:
    if node.kind == NodeKind.BRACE_BLOCK:
        inner = [c for c in ctx.tree.children(node) if c.kind != NodeKind.COMMENT_BLOCK]
        return bool(inner) and _ends_with_jump(ctx, inner[-1])
    code = ctx.code_in(node)
    return bool(code) and ctx.tokens[code[0]].is_keyword(*JUMP_KEYWORDS)


def check_case_fallthrough(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for switch in _control_statements(ctx, "switch"):
        body = ctx.body_of(switch)
        if body is None or body.kind != NodeKind.BRACE_BLOCK:
            continue
        children = ctx.tree.children(body)
        label: Optional[SyntaxNode] = None
        statements: List[SyntaxNode] = []
        for child in children:
            if child.kind == NodeKind.STATEMENT and child.keyword in ("case", "default"):
                if label is not None and statements and not _ends_with_jump(ctx, statements[-1]) \
                        and not _marked_fallthrough(ctx, statements[-1].last, child.first):
                    yield ctx.report(rule, label.first)
                label = child
                statements = []
            elif child.kind != NodeKind.COMMENT_BLOCK:
                statements.append(child)


def _marked_fallthrough(ctx: FileContext, lo: int, hi: int) -> bool:
    for i in range(max(lo - 1, 0), hi):
        tok = ctx.tokens[i]
        if tok.kind == TokenKind.COMMENT and FALLTHROUGH_COMMENT.search(tok.text):
            return True
    return False


# ============================================================
# ===================== IF / ELSE CHAINS =====================
# ============================================================

def check_else_if_termination(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for node in _control_statements(ctx, "if"):
        parent = ctx.tree.parent(node)
        if parent is not None and parent.kind == NodeKind.STATEMENT and parent.keyword == "else":
            continue
        current = node
        links = 0
        while True:
            else_node = ctx.else_of(current)
            if else_node is None:
                break
            nested = ctx.body_of(else_node)
            if nested is None or not (nested.kind == NodeKind.STATEMENT and nested.keyword == "if"):
                current = None
                break
            links += 1
            current = nested
        if current is not None and links > 0:
            yield ctx.report(rule, current.first)


# ============================================================
# ========================= NESTING ==========================
# ============================================================

def _depth(ctx: FileContext, node: SyntaxNode) -> int:
    depth = 1
    for ancestor in ctx.tree.ancestors(node):
        if ancestor.kind == NodeKind.FUNCTION_DEFINITION:
            break
        if ancestor.kind != NodeKind.STATEMENT or ancestor.keyword not in NESTING_KEYWORDS:
            continue
        parent = ctx.tree.parent(ancestor)
        if ancestor.keyword == "if" and parent is not None and parent.keyword == "else":
            continue
        depth += 1
    return depth


def check_nesting_depth(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    limit = int(rule.param("max_depth", 4))
    for node in _control_statements(ctx, *NESTING_KEYWORDS):
        if ctx.tree.enclosing_function(node) is None:
            continue
        parent = ctx.tree.parent(node)
        if node.keyword == "if" and parent is not None and parent.keyword == "else":
            continue
        depth = _depth(ctx, node)
        if depth == limit + 1:
            yield ctx.report(rule, node.first, depth=depth, limit=limit)


def check_ternary_nesting(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    """
    A conditional stays open from its `?` until the enclosing expression
    ends: a closing bracket below its nesting level, or a `,` or `;` at it.
    """
    limit = int(rule.param("max_depth", 1))
    tokens = ctx.tokens
    level = 0
    active: List[int] = []
    for i in ctx.code_tokens():
        tok = tokens[i]
        if tok.is_op(";", "{", "}"):
            active = []
            level = 0
        elif tok.is_op("(", "["):
            level += 1
        elif tok.is_op(")", "]"):
            level -= 1
            active = [a for a in active if a <= level]
        elif tok.is_op(","):
            active = [a for a in active if a < level]
        elif tok.is_op("?"):
            depth = 1 + len(active)
            if depth > limit:
                yield ctx.report(rule, i, depth=depth, limit=limit)
            active.append(level)


# ============================================================
# ===================== PER-LINE LIMITS ======================
# ============================================================

def _statement_start(ctx: FileContext, semi: int) -> int:
    tokens = ctx.tokens
    start = semi
    prev = ctx.prev_code(semi)
    while prev is not None and tokens[prev].line == tokens[semi].line \
            and not tokens[prev].is_op(";", "{", "}", ":"):
        start = prev
        prev = ctx.prev_code(prev)
    return start


def check_one_statement_per_line(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    level = 0
    last_line = -1
    for i in ctx.code_tokens():
        tok = tokens[i]
        if tok.is_op("("):
            level += 1
        elif tok.is_op(")"):
            level = max(level - 1, 0)
        elif tok.is_op(";") and level == 0:
            if tok.line == last_line:
                yield ctx.report(rule, _statement_start(ctx, i), i)
            last_line = tok.line


def check_one_declaration_per_line(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    by_node: Dict[int, list] = {}
    for fact in ctx.variables:
        if fact.scope in ("local", "global", "member"):
            by_node.setdefault(fact.node, []).append(fact.decl)
    for decls in by_node.values():
        if len(decls) < 2:
            continue
        first = decls[0]
        for decl in decls[1:]:
            if ctx.tokens[decl.token].line == ctx.tokens[first.token].line:
                yield ctx.report(rule, decl.token, name=decl.name, first=first.name)


def check_assignment_in_condition(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    for node in _control_statements(ctx, "if", "while", "do"):
        if node.keyword == "do":
            body = ctx.body_of(node)
            if body is None:
                continue
            kw = ctx.next_code(body.last - 1)
            if kw is None or not tokens[kw].is_keyword("while"):
                continue
            paren = ctx.next_code(kw)
        else:
            paren = ctx.next_code(node.first)
        if paren is None or not tokens[paren].is_op("("):
            continue
        close = ctx.summary.partner.get(paren)
        if close is None:
            continue
        for i in ctx.code_between(paren, close):
            if tokens[i].kind == TokenKind.OPERATOR and tokens[i].text in ASSIGNMENTS:
                yield ctx.report(rule, i, op=tokens[i].text,
                                 keyword="while" if node.keyword == "do" else node.keyword)


# ============================================================
# ======================== FUNCTIONS =========================
# ============================================================

def check_function_length(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    limit = int(rule.param("max_lines", 100))
    tokens = ctx.tokens
    for fn in ctx.summary.functions:
        lines = tokens[fn.body_close].line - tokens[fn.body_open].line - 1
        if lines > limit:
            fact = next((f for f in ctx.functions if f.node == fn.node), None)
            anchor = fact.name_token if fact is not None else ctx.tree.node(fn.node).first
            yield ctx.report(rule, anchor, name=fn.name or "?", lines=lines, limit=limit)


def check_parameter_count(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    limit = int(rule.param("max_parameters", 6))
    for fact in ctx.functions:
        if fact.param_count > limit:
            yield ctx.report(rule, fact.name_token, name=fact.name, count=fact.param_count, limit=limit)


def check_void_parameters(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in ctx.functions:
        if fact.param_open is None or fact.param_close is None:
            continue
        if ctx.next_code(fact.param_open) == fact.param_close:
            yield ctx.report(rule, fact.param_open, fact.param_close, name=fact.name)


def check_dead_code(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for first, _ in ctx.summary.dead_regions:
        yield ctx.report(rule, first)


EVALUATORS: Dict[str, Evaluator] = {
    "STRUCTURE.BRACES_REQUIRED": check_braces_required,
    "STRUCTURE.SWITCH_DEFAULT": check_switch_default,
    "STRUCTURE.DEFAULT_LAST": check_default_last,
    "STRUCTURE.CASE_FALLTHROUGH": check_case_fallthrough,
    "STRUCTURE.ELSE_IF_TERMINATION": check_else_if_termination,
    "STRUCTURE.NESTING_DEPTH": check_nesting_depth,
    "STRUCTURE.TERNARY_NESTING": check_ternary_nesting,
    "STRUCTURE.ONE_STATEMENT_PER_LINE": check_one_statement_per_line,
    "STRUCTURE.ONE_DECLARATION_PER_LINE": check_one_declaration_per_line,
    "STRUCTURE.EMPTY_BODY": check_empty_body,
    "STRUCTURE.ASSIGNMENT_IN_CONDITION": check_assignment_in_condition,
    "STRUCTURE.FUNCTION_LENGTH": check_function_length,
    "STRUCTURE.PARAMETER_COUNT": check_parameter_count,
    "STRUCTURE.VOID_PARAMETERS": check_void_parameters,
    "STRUCTURE.DEAD_CODE": check_dead_code,
}
