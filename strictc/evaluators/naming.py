"""
Naming conventions: types, macros, variables, functions, enum constants,
members and header guards.
"""

from __future__ import annotations
import os
import re
from typing import Dict, Iterator, Optional, Tuple

from ..model import Diagnostic, NodeKind, TokenKind
from ..registry import Rule
from .base import Evaluator, FileContext, VariableFact

LOWER_SNAKE = re.compile(r"^[a-z][a-z0-9]*(?:_[a-z0-9]+)*$")
UPPER_SNAKE = re.compile(r"^[A-Z][A-Z0-9]*(?:_[A-Z0-9]+)*$")
VARIABLE_PREFIX = re.compile(r"^(?:gpp_|gp_|g_|pp_|p_)")
PRAGMA_ONCE = re.compile(r"#\s*pragma\s+once\b")

VARIABLE_SCOPES = ("local", "parameter", "global")


def _main_nodes(ctx: FileContext) -> set:
    return {f.node for f in ctx.functions if f.name == "main"}


def _macro_name_span(ctx: FileContext, node) -> Tuple[int, int]:
    tok = ctx.tokens[node.first]
    match = re.match(r"#\s*define\s+([A-Za-z_]\w*)", tok.text)
    if not match:
        return tok.span.start, tok.span.end
    return tok.span.start + match.start(1), tok.span.start + match.end(1)


def module_prefix(path: str) -> str:
    stem = os.path.splitext(os.path.basename(path))[0]
    return re.sub(r"\W", "_", stem).lower() + "_"


def expected_guard(path: str) -> str:
    return re.sub(r"\W", "_", os.path.basename(path)).upper()


# ============================================================
# ========================= TYPES ============================
# ============================================================

def check_type_suffix(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in ctx.types:
        if fact.is_typedef and not fact.name.endswith("_t"):
            yield ctx.report(rule, fact.token, name=fact.name)


def check_type_case(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in ctx.types:
        if fact.is_typedef and not LOWER_SNAKE.match(fact.name):
            yield ctx.report(rule, fact.token, name=fact.name)


def check_type_tag_prefix(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    """
    The e_/st_/u_ prefix belongs on the aggregate's tag; the typedef name
    itself only carries the `_t` suffix (see NAMING.TYPE_SUFFIX).
    """
    prefixes: Dict[str, str] = rule.param("prefixes", {}) or {}
    for fact in ctx.types:
        if fact.kind not in prefixes:
            continue
        prefix = prefixes[fact.kind]
        if fact.tag_token is None:
            problem = f"{fact.kind} typedef '{fact.name}' needs a tag starting with '{prefix}'"
            yield ctx.report(rule, fact.token, problem=problem)
            continue
        tag = ctx.tokens[fact.tag_token].text
        if not tag.startswith(prefix):
            problem = f"{fact.kind} tag '{tag}' must start with '{prefix}'"
            yield ctx.report(rule, fact.tag_token, problem=problem)


def check_macro_case(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for node in ctx.tree.of_kind(NodeKind.MACRO_DEFINITION):
        if not node.name:
            continue
        if not UPPER_SNAKE.match(node.name.lstrip("_")):
            start, end = _macro_name_span(ctx, node)
            yield ctx.report_span(rule, start, end, name=node.name)


def check_enum_constant_case(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for name, token in ctx.enum_constants:
        if not UPPER_SNAKE.match(name):
            yield ctx.report(rule, token, name=name)


# ============================================================
# ======================= VARIABLES ==========================
# ============================================================

def _variables(ctx: FileContext, *scopes: str) -> Iterator[VariableFact]:
    for fact in ctx.variables:
        if fact.scope in scopes:
            yield fact


def check_variable_length(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    min_length = int(rule.param("min_length", 3))
    for fact in _variables(ctx, *VARIABLE_SCOPES):
        body = VARIABLE_PREFIX.sub("", fact.decl.name)
        if len(body) < min_length:
            yield ctx.report(rule, fact.decl.token, name=fact.decl.name, min_length=min_length)


def check_variable_case(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in _variables(ctx, *VARIABLE_SCOPES):
        if not LOWER_SNAKE.match(fact.decl.name):
            yield ctx.report(rule, fact.decl.token, name=fact.decl.name)


def check_member_case(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in _variables(ctx, "member"):
        if not LOWER_SNAKE.match(fact.decl.name):
            yield ctx.report(rule, fact.decl.token, name=fact.decl.name)


def check_pointer_prefix(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    exempt = _main_nodes(ctx)
    for fact in _variables(ctx, "local", "parameter", "member"):
        decl = fact.decl
        if decl.pointer_depth == 0 or fact.node in exempt:
            continue
        prefix = "p_" if decl.pointer_depth == 1 else "pp_"
        if not decl.name.startswith(prefix):
            yield ctx.report(rule, decl.token, name=decl.name, prefix=prefix)


def check_global_prefix(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in _variables(ctx, "global"):
        decl = fact.decl
        prefix = ("g_", "gp_", "gpp_")[min(decl.pointer_depth, 2)]
        if not decl.name.startswith(prefix):
            yield ctx.report(rule, decl.token, name=decl.name, prefix=prefix)


# ============================================================
# ======================= FUNCTIONS ==========================
# ============================================================

def check_function_case(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for fact in ctx.functions:
        if not LOWER_SNAKE.match(fact.name):
            yield ctx.report(rule, fact.name_token, name=fact.name)


def check_function_module_prefix(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    prefix = module_prefix(ctx.source.path)
    for fact in ctx.functions:
        if fact.is_static or fact.name == "main":
            continue
        if not (fact.is_definition or ctx.summary.is_header):
            continue
        if not fact.name.startswith(prefix) and fact.name != prefix[:-1]:
            yield ctx.report(rule, fact.name_token, name=fact.name, prefix=prefix)


# ============================================================
# ======================= RESERVED ===========================
# ============================================================

def _reserved_reason(name: str, file_scope: bool, denylist: frozenset) -> Optional[str]:
    if name.startswith("__") or re.match(r"^_[A-Z]", name):
        return "reserved identifier"
    if file_scope and name.startswith("_"):
        return "reserved at file scope"
    if name in denylist:
        return "standard library name"
    return None


def check_reserved(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    denylist = frozenset(rule.param("denylist", []) or [])
    for fact in ctx.variables:
        reason = _reserved_reason(fact.decl.name, fact.scope == "global", denylist)
        if reason and fact.scope != "member":
            yield ctx.report(rule, fact.decl.token, name=fact.decl.name, reason=reason)
    for fact in ctx.functions:
        reason = _reserved_reason(fact.name, True, denylist)
        if reason:
            yield ctx.report(rule, fact.name_token, name=fact.name, reason=reason)
    for fact in ctx.types:
        reason = _reserved_reason(fact.name, True, denylist)
        if reason:
            yield ctx.report(rule, fact.token, name=fact.name, reason=reason)
    for name, token in ctx.enum_constants:
        reason = _reserved_reason(name, True, denylist)
        if reason:
            yield ctx.report(rule, token, name=name, reason=reason)
    for node in ctx.tree.of_kind(NodeKind.MACRO_DEFINITION):
        if not node.name:
            continue
        reason = _reserved_reason(node.name, True, denylist)
        if reason:
            start, end = _macro_name_span(ctx, node)
            yield ctx.report_span(rule, start, end, name=node.name, reason=reason)


# ============================================================
# ===================== HEADER GUARDS ========================
# ============================================================

def check_header_guard(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    if not ctx.summary.is_header or not ctx.tokens:
        return
    expected = expected_guard(ctx.source.path)
    tokens = ctx.tokens
    for tok in tokens:
        if tok.kind == TokenKind.PREPROCESSOR and PRAGMA_ONCE.match(tok.text):
            return
        if tok.kind not in (TokenKind.WHITESPACE, TokenKind.NEWLINE, TokenKind.COMMENT,
                            TokenKind.PREPROCESSOR):
            break

    guard = ctx.summary.guard
    if guard is None:
        first = next((i for i, t in enumerate(tokens) if not t.is_trivia), 0)
        yield ctx.report(rule, first, problem="header has no include guard", expected=expected)
        return

    name, ifndef, _ = guard
    if name != expected:
        yield ctx.report(
            rule, ifndef,
            problem=f"include guard '{name}' should be named '{expected}'",
            expected=expected,
        )
    block = next((n for n in ctx.tree.of_kind(NodeKind.PREPROCESSOR_BLOCK)
                  if n.first == ifndef and n.children), None)
    if block is None:
        yield ctx.report(rule, ifndef, problem="include guard has no matching '#endif'", expected=expected)
        return
    trailing = ctx.next_code(block.last - 1)
    if trailing is not None:
        yield ctx.report(rule, trailing, problem="code after the include guard's '#endif'",
                         expected=expected)


EVALUATORS: Dict[str, Evaluator] = {
    "NAMING.TYPE_SUFFIX": check_type_suffix,
    "NAMING.TYPE_CASE": check_type_case,
    "NAMING.TYPE_TAG_PREFIX": check_type_tag_prefix,
    "NAMING.MACRO_CASE": check_macro_case,
    "NAMING.VARIABLE_LENGTH": check_variable_length,
    "NAMING.VARIABLE_CASE": check_variable_case,
    "NAMING.POINTER_PREFIX": check_pointer_prefix,
    "NAMING.GLOBAL_PREFIX": check_global_prefix,
    "NAMING.RESERVED": check_reserved,
    "NAMING.FUNCTION_CASE": check_function_case,
    "NAMING.FUNCTION_MODULE_PREFIX": check_function_module_prefix,
    "NAMING.ENUM_CONSTANT_CASE": check_enum_constant_case,
    "NAMING.MEMBER_CASE": check_member_case,
    "NAMING.HEADER_GUARD": check_header_guard,
}
