"""
Shared evaluation context.

A FileContext is built once per file, before any rule runs, and is never
modified afterwards, so evaluators for different rules can read it from
different threads at the same time.
"""

from __future__ import annotations
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Iterator, List, Optional, Pattern, Tuple, TypeVar

from ..model import Diagnostic, NodeKind, SourceFile, SyntaxNode, SyntaxTree, Token, TokenKind
from ..registry import Rule
from ..structure import (
    BASIC_TYPES, QUALIFIERS, TAG_KEYWORDS, Declarator, FileSummary, declarators, is_code,
    looks_like_declaration, parameters, split_top_level, typedef_name,
)

Evaluator = Callable[["FileContext", Rule], Iterable[Diagnostic]]
T = TypeVar("T")

# evaluator loops poll the cancel callable once per this many items
CANCEL_CHECK_INTERVAL = 256

TYPE_KEYWORDS = BASIC_TYPES | QUALIFIERS | TAG_KEYWORDS
WELL_KNOWN_TYPES = frozenset({"FILE", "va_list", "jmp_buf", "div_t", "ldiv_t", "fpos_t", "wchar_t"})


@dataclass(frozen=True)
class VariableFact:
    decl: Declarator
    scope: str  # "global", "local", "parameter" or "member"
    node: int


@dataclass(frozen=True)
class TypeFact:
    name: str
    token: int
    kind: Optional[str]  # "enum", "struct", "union" or None for plain typedefs
    node: int
    is_typedef: bool
    tag_token: Optional[int] = None  # identifier after the enum/struct/union keyword


@dataclass(frozen=True)
class FunctionFact:
    node: int
    name: str
    name_token: int
    param_open: Optional[int]
    param_close: Optional[int]
    params: Tuple[Declarator, ...]
    param_count: int
    is_static: bool
    is_definition: bool


@dataclass(frozen=True)
class FileContext:
    source: SourceFile
    tree: SyntaxTree
    summary: FileSummary
    directive_pattern: Optional[Pattern[str]] = None
    cancelled: Callable[[], bool] = lambda: False
    variables: Tuple[VariableFact, ...] = ()
    types: Tuple[TypeFact, ...] = ()
    functions: Tuple[FunctionFact, ...] = ()
    enum_constants: Tuple[Tuple[str, int], ...] = ()
    type_names: FrozenSet[str] = frozenset()

    @property
    def tokens(self) -> Tuple[Token, ...]:
        return self.source.tokens

    # ---------------------------------------------------------- navigation
    def prev_code(self, i: int) -> Optional[int]:
        pos = bisect_left(self.summary.code, i)
        return self.summary.code[pos - 1] if pos > 0 else None

    def next_code(self, i: int) -> Optional[int]:
        pos = bisect_right(self.summary.code, i)
        return self.summary.code[pos] if pos < len(self.summary.code) else None

    def code_in(self, node: SyntaxNode) -> List[int]:
        return self.code_between(node.first - 1, node.last)

    def code_between(self, lo: int, hi: int) -> List[int]:
        """Code token indices strictly between `lo` and `hi`."""
        start = bisect_right(self.summary.code, lo)
        stop = bisect_left(self.summary.code, hi)
        return list(self.summary.code[start:stop])

    def until_cancelled(self, items: Iterable[T]) -> Iterator[T]:
        """Pass `items` through, stopping early once the run is cancelled."""
        for n, item in enumerate(items):
            if n % CANCEL_CHECK_INTERVAL == 0 and self.cancelled():
                return
            yield item

    def code_tokens(self) -> Iterator[int]:
        return self.until_cancelled(self.summary.code)

    def first_on_line(self, i: int) -> bool:
        """True when only whitespace precedes token `i` on its line."""
        j = i - 1
        while j >= 0 and self.tokens[j].kind == TokenKind.WHITESPACE:
            j -= 1
        return j < 0 or self.tokens[j].kind == TokenKind.NEWLINE

    def last_on_line(self, i: int) -> bool:
        """True when only whitespace or comments follow token `i` on its line."""
        j = i + 1
        while j < len(self.tokens) and self.tokens[j].kind in (TokenKind.WHITESPACE, TokenKind.COMMENT):
            if self.tokens[j].kind == TokenKind.COMMENT and "\n" in self.tokens[j].text:
                return True
            j += 1
        return j >= len(self.tokens) or self.tokens[j].kind == TokenKind.NEWLINE

    def is_type_name(self, tok: Token) -> bool:
        if tok.kind == TokenKind.KEYWORD:
            return tok.text in TYPE_KEYWORDS
        return tok.kind == TokenKind.IDENTIFIER and (
            tok.text in self.type_names or tok.text.endswith("_t") or tok.text in WELL_KNOWN_TYPES
        )

    def is_directive_comment(self, tok: Token) -> bool:
        return bool(self.directive_pattern and tok.kind == TokenKind.COMMENT
                    and self.directive_pattern.search(tok.text))

    def body_of(self, node: SyntaxNode) -> Optional[SyntaxNode]:
        """Body of a control statement: its first child that is not the else clause."""
        for child in self.tree.children(node):
            if child.kind == NodeKind.STATEMENT and child.keyword == "else" and node.keyword == "if":
                continue
            return child
        return None

    def else_of(self, node: SyntaxNode) -> Optional[SyntaxNode]:
        for child in self.tree.children(node):
            if child.kind == NodeKind.STATEMENT and child.keyword == "else":
                return child
        return None

    # ----------------------------------------------------------- reporting
    def report(self, rule: Rule, first: int, last: Optional[int] = None, /, **values) -> Diagnostic:
        tokens = self.tokens
        span = self.source.token_span(tokens[first], tokens[last if last is not None else first])
        return Diagnostic(rule.id, rule.severity, span, rule.render(**values), rule.render_fix(**values))

    def report_span(self, rule: Rule, start: int, end: int, **values) -> Diagnostic:
        span = self.source.span(start, end)
        return Diagnostic(rule.id, rule.severity, span, rule.render(**values), rule.render_fix(**values))


# ============================================================
# ======================= PRE-PASS ===========================
# ============================================================

def _scope_of(tree: SyntaxTree, node: SyntaxNode) -> str:
    for ancestor in tree.ancestors(node):
        if ancestor.kind in (NodeKind.BRACE_BLOCK, NodeKind.PREPROCESSOR_BLOCK):
            continue
        if ancestor.kind == NodeKind.TYPE_DEFINITION:
            return "member"
        if ancestor.kind == NodeKind.FILE:
            return "global"
        return "local"
    return "global"


def _code(source: SourceFile, lo: int, hi: int) -> List[int]:
    return [i for i in range(lo, hi) if is_code(source.tokens[i])]


def _name_token(source: SourceFile, node: SyntaxNode, name: str, partner) -> Optional[int]:
    tokens = source.tokens
    i = node.last - 1
    while i >= node.first:
        tok = tokens[i]
        if tok.is_op("}") and i in partner:
            i = partner[i] - 1
            continue
        if tok.kind == TokenKind.IDENTIFIER and tok.text == name:
            return i
        i -= 1
    return None


def _type_kind(source: SourceFile, code: List[int]) -> Optional[str]:
    for idx in code[1:]:
        tok = source.tokens[idx]
        if tok.is_keyword(*QUALIFIERS):
            continue
        return tok.text if tok.is_keyword(*TAG_KEYWORDS) else None
    return None


def _tag_token(source: SourceFile, code: List[int]) -> Optional[int]:
    for pos, idx in enumerate(code):
        if source.tokens[idx].is_keyword(*TAG_KEYWORDS):
            if pos + 1 < len(code) and source.tokens[code[pos + 1]].kind == TokenKind.IDENTIFIER:
                return code[pos + 1]
            return None
    return None


def _function_fact(source: SourceFile, node: SyntaxNode, code: List[int], partner,
                   definition: bool) -> Optional[FunctionFact]:
    tokens = source.tokens
    open_idx, params = parameters(tokens, code, partner)
    if open_idx is None:
        return None
    name_token = code[code.index(open_idx) - 1]
    close = partner.get(open_idx)
    inner = [c for c in code if close is not None and open_idx < c < close]
    pieces = split_top_level(tokens, inner)
    count = len(pieces)
    if count == 1 and len(pieces[0]) == 1 and tokens[pieces[0][0]].is_keyword("void"):
        count = 0
    is_static = any(tokens[c].is_keyword("static") for c in code if c < name_token)
    return FunctionFact(node.index, tokens[name_token].text, name_token, open_idx, close,
                        tuple(params), count, is_static, definition)


def _for_init_declarators(source: SourceFile, node: SyntaxNode, partner) -> List[Declarator]:
    tokens = source.tokens
    code = _code(source, node.first, node.last)
    if len(code) < 2 or not tokens[code[1]].is_op("("):
        return []
    close = partner.get(code[1])
    init: List[int] = []
    for idx in code[2:]:
        if close is not None and idx >= close or tokens[idx].is_op(";"):
            break
        init.append(idx)
    if not looks_like_declaration(tokens, init + [code[1]]):
        return []
    return [d for d in declarators(tokens, init) if not d.is_function]


def build_context(
    source: SourceFile,
    tree: SyntaxTree,
    summary: FileSummary,
    directive_pattern: Optional[Pattern[str]] = None,
    cancelled: Optional[Callable[[], bool]] = None,
) -> FileContext:
    """Collect declarations, types and functions once for all evaluators."""
    tokens = source.tokens
    partner = summary.partner
    variables: List[VariableFact] = []
    types: List[TypeFact] = []
    functions: List[FunctionFact] = []
    enum_constants: List[Tuple[str, int]] = []
    defined = set()

    for node in tree.walk():
        if node.kind == NodeKind.FUNCTION_DEFINITION:
            body = next((c for c in tree.children(node) if c.kind == NodeKind.BRACE_BLOCK), None)
            code = _code(source, node.first, body.first if body else node.last)
            fact = _function_fact(source, node, code, partner, definition=True)
            if fact is not None:
                functions.append(fact)
                defined.add(fact.name)
                for param in fact.params:
                    variables.append(VariableFact(param, "parameter", node.index))
        elif node.kind == NodeKind.DECLARATION:
            code = _code(source, node.first, node.last)
            decls = declarators(tokens, code)
            scope = _scope_of(tree, node)
            for decl in decls:
                if decl.is_function:
                    continue
                variables.append(VariableFact(decl, scope, node.index))
        elif node.kind == NodeKind.TYPE_DEFINITION:
            code = _code(source, node.first, node.last)
            is_typedef = node.keyword == "typedef"
            kind = _type_kind(source, code) if is_typedef else node.keyword
            if node.name:
                token = _name_token(source, node, node.name, partner)
                if token is not None:
                    tag = _tag_token(source, code) if is_typedef else token
                    types.append(TypeFact(node.name, token, kind, node.index, is_typedef, tag))
            if kind == "enum":
                body = next((c for c in tree.children(node) if c.kind == NodeKind.BRACE_BLOCK), None)
                if body is not None:
                    inner = _code(source, body.first + 1, body.last - 1)
                    for piece in split_top_level(tokens, inner):
                        if tokens[piece[0]].kind == TokenKind.IDENTIFIER:
                            enum_constants.append((tokens[piece[0]].text, piece[0]))
        elif node.kind == NodeKind.STATEMENT and node.keyword == "for":
            for decl in _for_init_declarators(source, node, partner):
                variables.append(VariableFact(decl, "local", node.index))

    # Prototypes, once the definitions are known.
    for node in tree.of_kind(NodeKind.DECLARATION):
        code = _code(source, node.first, node.last)
        decls = declarators(tokens, code)
        if decls and decls[0].is_function and decls[0].name not in defined:
            fact = _function_fact(source, node, code, partner, definition=False)
            if fact is not None:
                functions.append(fact)
                for param in fact.params:
                    variables.append(VariableFact(param, "parameter", node.index))

    type_names = frozenset(t.name for t in types if t.is_typedef)
    return FileContext(
        source=source,
        tree=tree,
        summary=summary,
        directive_pattern=directive_pattern,
        cancelled=cancelled or (lambda: False),
        variables=tuple(variables),
        types=tuple(types),
        functions=tuple(functions),
        enum_constants=tuple(enum_constants),
        type_names=type_names,
    )


def comment_body(text: str) -> str:
    """Comment text without delimiters and leading decoration."""
    if text.startswith("//"):
        body = text[2:]
    else:
        body = text[2:-2] if text.endswith("*/") and len(text) >= 4 else text[2:]
    return body.lstrip("/*!<").strip()


__all__ = [
    "Evaluator", "FileContext", "FunctionFact", "TypeFact", "VariableFact",
    "build_context", "comment_body", "typedef_name",
]
