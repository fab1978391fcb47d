"""
Shallow structural builder.

Groups the token stream into a tree using only delimiter matching and a
handful of keyword triggers; there is no C grammar here. The tree is an arena
of SyntaxNode records addressed by index.

Also builds the read-only FileSummary pre-pass consumed by whole-file rules
(section ordering, goto/label bookkeeping, `#if 0` regions).
"""

from __future__ import annotations
from dataclasses import dataclass, field
import re
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import StructureError, log
from .model import NodeKind, SourceFile, SyntaxNode, SyntaxTree, Token, TokenKind

OPENERS = {"(": ")", "[": "]", "{": "}"}
CLOSERS = {v: k for k, v in OPENERS.items()}

CONTROL_KEYWORDS = frozenset({"if", "while", "for", "switch"})
JUMP_KEYWORDS = frozenset({"return", "break", "continue", "goto"})
TAG_KEYWORDS = frozenset({"struct", "union", "enum"})
QUALIFIERS = frozenset({"const", "volatile", "restrict", "_Atomic"})
STORAGE_CLASSES = frozenset({"auto", "register", "static", "extern", "typedef", "_Thread_local"})
BASIC_TYPES = frozenset(
    {"void", "char", "short", "int", "long", "float", "double", "signed", "unsigned",
     "_Bool", "_Complex", "_Imaginary"}
)
DECLARATION_STARTERS = (
    QUALIFIERS | STORAGE_CLASSES | BASIC_TYPES | TAG_KEYWORDS
    | {"inline", "_Noreturn", "_Alignas", "_Static_assert"}
)

_DIRECTIVE_RE = re.compile(r"#\s*([A-Za-z_]\w*)")
_DEFINE_RE = re.compile(r"#\s*define\s+([A-Za-z_]\w*)")
_IF_ZERO_RE = re.compile(r"#\s*if\s+0\b")
_GUARD_RE = re.compile(r"#\s*(?:ifndef\s+([A-Za-z_]\w*)|if\s+!\s*defined\s*\(?\s*([A-Za-z_]\w*))")


def directive_name(token: Token) -> str:
    match = _DIRECTIVE_RE.match(token.text)
    return match.group(1) if match else ""


def macro_name(token: Token) -> Optional[str]:
    match = _DEFINE_RE.match(token.text)
    return match.group(1) if match else None


def is_code(token: Token) -> bool:
    return token.kind not in (
        TokenKind.WHITESPACE, TokenKind.NEWLINE, TokenKind.COMMENT,
        TokenKind.PREPROCESSOR, TokenKind.ERROR,
    )


# ============================================================
# ===================== DELIMITER MATCHING ===================
# ============================================================

def match_delimiters(
    source: SourceFile,
) -> Tuple[Dict[int, int], Optional[int], List[StructureError]]:
    """
    Pair up (), [] and {} across the file.

    Returns (partner map in both directions, recovery cut index, errors). The
    cut is the first token index after which pairing is unreliable; the
    builder turns everything from there on into a single trailing block.
    """
    tokens = source.tokens
    partner: Dict[int, int] = {}
    stack: List[int] = []
    errors: List[StructureError] = []
    for i, tok in enumerate(tokens):
        if tok.kind != TokenKind.PUNCTUATION:
            continue
        if tok.text in OPENERS:
            stack.append(i)
        elif tok.text in CLOSERS:
            if not stack:
                errors.append(
                    StructureError(f"unmatched '{tok.text}'", source.token_span(tok))
                )
                return partner, i, errors
            opener = stack[-1]
            if tokens[opener].text != CLOSERS[tok.text]:
                errors.append(
                    StructureError(
                        f"'{tok.text}' does not close '{tokens[opener].text}' "
                        f"opened at line {tokens[opener].line}",
                        source.token_span(tok),
                    )
                )
                return partner, stack[0], errors
            stack.pop()
            partner[opener] = i
            partner[i] = opener
    if stack:
        opener = tokens[stack[0]]
        errors.append(
            StructureError(f"unmatched '{opener.text}'", source.token_span(opener))
        )
        return partner, stack[0], errors
    return partner, None, errors


# ============================================================
# ====================== TREE BUILDER ========================
# ============================================================

@dataclass
class _Draft:
    kind: NodeKind
    first: int
    last: int
    parent: Optional[int]
    children: List[int] = field(default_factory=list)
    name: Optional[str] = None
    keyword: Optional[str] = None
    comment: Optional[int] = None
    documents: Optional[int] = None
    standalone: bool = False


class _Builder:
    def __init__(self, source: SourceFile, partner: Dict[int, int]) -> None:
        self.source = source
        self.tokens = source.tokens
        self.partner = partner
        self.drafts: List[_Draft] = []
        count = len(self.tokens)
        self._next_code = [count] * (count + 1)
        for i in range(count - 1, -1, -1):
            self._next_code[i] = i if is_code(self.tokens[i]) else self._next_code[i + 1]

    # ----------------------------------------------------------
    def new(self, kind: NodeKind, first: int, last: int, parent: Optional[int], **extra) -> int:
        self.drafts.append(_Draft(kind, first, last, parent, **extra))
        index = len(self.drafts) - 1
        if parent is not None:
            self.drafts[parent].children.append(index)
        return index

    def next_code(self, i: int, hi: int) -> int:
        if i >= hi:
            return hi
        j = self._next_code[i]
        return j if j < hi else hi

    def prev_code(self, i: int, lo: int) -> Optional[int]:
        j = i - 1
        while j >= lo:
            if is_code(self.tokens[j]):
                return j
            j -= 1
        return None

    def closer(self, i: int, hi: int) -> int:
        """Partner of the opener at `i`, clamped to the current range."""
        j = self.partner.get(i)
        if j is None or j >= hi:
            return hi - 1
        return j

    def is_file_scope(self, parent: Optional[int]) -> bool:
        while parent is not None:
            draft = self.drafts[parent]
            if draft.kind not in (NodeKind.FILE, NodeKind.PREPROCESSOR_BLOCK):
                return False
            parent = draft.parent
        return True

    # ----------------------------------------------------------
    def sequence(self, lo: int, hi: int, parent: int) -> None:
        tokens = self.tokens
        i = lo
        while i < hi:
            tok = tokens[i]
            if tok.kind in (TokenKind.WHITESPACE, TokenKind.NEWLINE, TokenKind.ERROR):
                i += 1
            elif tok.kind == TokenKind.COMMENT:
                i = self.comment_block(i, hi, parent)
            elif tok.kind == TokenKind.PREPROCESSOR:
                i = self.directive(i, hi, parent)
            else:
                i = self.statement(i, hi, parent)
        self.associate_comments(parent)

    def comment_block(self, i: int, hi: int, parent: int) -> int:
        tokens = self.tokens
        standalone = self._starts_line(i)
        last = i
        if standalone:
            j = i + 1
            newlines = 0
            while j < hi:
                kind = tokens[j].kind
                if kind == TokenKind.WHITESPACE:
                    j += 1
                elif kind == TokenKind.NEWLINE:
                    newlines += 1
                    if newlines > 1:
                        break
                    j += 1
                elif kind == TokenKind.COMMENT and newlines == 1:
                    last = j
                    newlines = 0
                    j += 1
                else:
                    break
        self.new(NodeKind.COMMENT_BLOCK, i, last + 1, parent, standalone=standalone)
        return last + 1

    def _starts_line(self, i: int) -> bool:
        j = i - 1
        while j >= 0 and self.tokens[j].kind == TokenKind.WHITESPACE:
            j -= 1
        return j < 0 or self.tokens[j].kind == TokenKind.NEWLINE

    def directive(self, i: int, hi: int, parent: int) -> int:
        tok = self.tokens[i]
        name = directive_name(tok)
        if name == "define":
            self.new(NodeKind.MACRO_DEFINITION, i, i + 1, parent, name=macro_name(tok), keyword=name)
            return i + 1
        if name in ("if", "ifdef", "ifndef"):
            end = self._matching_endif(i, hi)
            if end is not None and self._balanced(i, end):
                node = self.new(NodeKind.PREPROCESSOR_BLOCK, i, end + 1, parent, keyword=name)
                self.new(NodeKind.PREPROCESSOR_BLOCK, i, i + 1, node, keyword=name)
                self.sequence(i + 1, end, node)
                self.new(NodeKind.PREPROCESSOR_BLOCK, end, end + 1, node, keyword="endif")
                return end + 1
        self.new(NodeKind.PREPROCESSOR_BLOCK, i, i + 1, parent, keyword=name or None)
        return i + 1

    def _matching_endif(self, i: int, hi: int) -> Optional[int]:
        depth = 0
        for j in range(i, hi):
            tok = self.tokens[j]
            if tok.kind != TokenKind.PREPROCESSOR:
                continue
            name = directive_name(tok)
            if name in ("if", "ifdef", "ifndef"):
                depth += 1
            elif name == "endif":
                depth -= 1
                if depth == 0:
                    return j
        return None

    def _balanced(self, lo: int, hi: int) -> bool:
        for j in range(lo, hi):
            other = self.partner.get(j)
            if other is not None and not lo < other < hi:
                return False
        return True

    # ----------------------------------------------------------
    def statement(self, i: int, hi: int, parent: int) -> int:
        """Parse one construct starting at code token `i`; return its end index."""
        tok = self.tokens[i]
        text = tok.text

        if tok.is_op("{"):
            return self.brace_block(i, hi, parent)
        if tok.is_op(";"):
            self.new(NodeKind.STATEMENT, i, i + 1, parent)
            return i + 1
        if tok.kind == TokenKind.KEYWORD:
            if text in CONTROL_KEYWORDS:
                return self.control(i, hi, parent)
            if text == "do":
                return self.do_while(i, hi, parent)
            if text == "else":
                node = self.new(NodeKind.STATEMENT, i, i + 1, parent, keyword="else")
                end = self.body(self.next_code(i + 1, hi), hi, node)
                self.drafts[node].last = max(end, i + 1)
                return self.drafts[node].last
            if text in ("case", "default"):
                return self.case_label(i, hi, parent)
            if text == "typedef":
                return self.typedef(i, hi, parent)
        if tok.kind == TokenKind.IDENTIFIER and not self.is_file_scope(parent):
            colon = self.next_code(i + 1, hi)
            if colon < hi and self.tokens[colon].is_op(":"):
                self.new(NodeKind.STATEMENT, i, colon + 1, parent, keyword="label", name=text)
                return colon + 1
        return self.generic(i, hi, parent)

    def brace_block(self, i: int, hi: int, parent: int) -> int:
        close = self.closer(i, hi)
        node = self.new(NodeKind.BRACE_BLOCK, i, close + 1, parent)
        self.sequence(i + 1, close, node)
        return close + 1

    def body(self, i: int, hi: int, parent: int) -> int:
        if i >= hi:
            return hi
        if self.tokens[i].is_op("{"):
            return self.brace_block(i, hi, parent)
        return self.statement(i, hi, parent)

    def control(self, i: int, hi: int, parent: int) -> int:
        keyword = self.tokens[i].text
        paren = self.next_code(i + 1, hi)
        if paren >= hi or not self.tokens[paren].is_op("("):
            return self.generic(i, hi, parent)
        close = self.closer(paren, hi)
        node = self.new(NodeKind.STATEMENT, i, close + 1, parent, keyword=keyword)
        end = self.body(self.next_code(close + 1, hi), hi, node)
        end = max(end, close + 1)
        if keyword == "if":
            end = self.else_chain(node, end, hi)
        self.drafts[node].last = end
        return end

    def else_chain(self, node: int, end: int, hi: int) -> int:
        """
        Attach the `else` / `else if` links that follow the `if` at `node`.

        Each `else if` hangs under the previous `else`. Links are walked in a
        loop, not by recursion; every node on the chain ends where the last
        link ends.
        """
        chain = [node]
        while True:
            nxt = self.next_code(end, hi)
            if nxt >= hi or not self.tokens[nxt].is_keyword("else"):
                break
            else_node = self.new(NodeKind.STATEMENT, nxt, nxt + 1, chain[-1], keyword="else")
            chain.append(else_node)
            end = nxt + 1
            target = self.next_code(nxt + 1, hi)
            paren = self.next_code(target + 1, hi) if target < hi else hi
            if target < hi and self.tokens[target].is_keyword("if") \
                    and paren < hi and self.tokens[paren].is_op("("):
                close = self.closer(paren, hi)
                inner = self.new(NodeKind.STATEMENT, target, close + 1, else_node, keyword="if")
                chain.append(inner)
                end = max(self.body(self.next_code(close + 1, hi), hi, inner), close + 1)
                continue
            end = max(self.body(target, hi, else_node), end)
            break
        for index in chain:
            self.drafts[index].last = end
        return end

    def do_while(self, i: int, hi: int, parent: int) -> int:
        node = self.new(NodeKind.STATEMENT, i, i + 1, parent, keyword="do")
        end = max(self.body(self.next_code(i + 1, hi), hi, node), i + 1)
        kw = self.next_code(end, hi)
        if kw < hi and self.tokens[kw].is_keyword("while"):
            end = kw + 1
            paren = self.next_code(kw + 1, hi)
            if paren < hi and self.tokens[paren].is_op("("):
                end = self.closer(paren, hi) + 1
                semi = self.next_code(end, hi)
                if semi < hi and self.tokens[semi].is_op(";"):
                    end = semi + 1
        self.drafts[node].last = end
        return end

    def case_label(self, i: int, hi: int, parent: int) -> int:
        keyword = self.tokens[i].text
        j = self.next_code(i + 1, hi)
        pending_ternary = 0
        while j < hi:
            tok = self.tokens[j]
            if tok.text in OPENERS and tok.kind == TokenKind.PUNCTUATION:
                j = self.next_code(self.closer(j, hi) + 1, hi)
                continue
            if tok.is_op("?"):
                pending_ternary += 1
            elif tok.is_op(":"):
                if not pending_ternary:
                    break
                pending_ternary -= 1
            elif tok.is_op(";", "}"):
                j -= 1
                break
            j = self.next_code(j + 1, hi)
        end = min(j + 1, hi)
        self.new(NodeKind.STATEMENT, i, end, parent, keyword=keyword)
        return end

    def typedef(self, i: int, hi: int, parent: int) -> int:
        node = self.new(NodeKind.TYPE_DEFINITION, i, i + 1, parent, keyword="typedef")
        end, brace = self._scan_to_semicolon(i, hi)
        if brace is not None:
            self.brace_block(brace, hi, node)
        self.drafts[node].last = end
        self.drafts[node].name = typedef_name(self.tokens, self._code_range(i, end), self.partner)
        return end

    def _code_range(self, lo: int, hi: int) -> List[int]:
        out = []
        j = self.next_code(lo, hi)
        while j < hi:
            out.append(j)
            j = self.next_code(j + 1, hi)
        return out

    def _scan_to_semicolon(self, i: int, hi: int) -> Tuple[int, Optional[int]]:
        """End index after the terminating `;` and the first brace group seen."""
        brace = None
        last = i
        j = i
        while j < hi:
            tok = self.tokens[j]
            last = j
            if tok.kind == TokenKind.PUNCTUATION:
                if tok.text == ";":
                    return j + 1, brace
                if tok.text in OPENERS:
                    if tok.text == "{" and brace is None:
                        brace = j
                    last = self.closer(j, hi)
                    j = self.next_code(last + 1, hi)
                    continue
            j = self.next_code(j + 1, hi)
        return last + 1, brace

    def generic(self, i: int, hi: int, parent: int) -> int:
        tokens = self.tokens
        j = i
        last = i
        saw_assign = False
        type_brace: Optional[int] = None
        while j < hi:
            tok = tokens[j]
            last = j
            if tok.is_op(";"):
                break
            if tok.is_op("="):
                saw_assign = True
            if tok.kind == TokenKind.PUNCTUATION and tok.text in OPENERS:
                close = self.closer(j, hi)
                if tok.text == "{":
                    prev = self.prev_code(j, i)
                    prev_tok = tokens[prev] if prev is not None else None
                    if prev_tok is not None and prev_tok.is_op(")") and not saw_assign:
                        return self._function_like(i, j, hi, parent)
                    if prev_tok is not None and not saw_assign and (
                        prev_tok.is_keyword(*TAG_KEYWORDS)
                        or (prev_tok.kind == TokenKind.IDENTIFIER
                            and self._prev_is_tag(prev, i))
                    ):
                        type_brace = j
                last = close
                j = self.next_code(close + 1, hi)
                continue
            j = self.next_code(j + 1, hi)
        end = last + 1
        code = self._code_range(i, end)
        if type_brace is not None:
            node = self.new(NodeKind.TYPE_DEFINITION, i, end, parent, keyword=tokens[i].text)
            self.brace_block(type_brace, hi, node)
            self.drafts[node].name = tag_name(tokens, type_brace, i)
        elif looks_like_declaration(tokens, code):
            self.new(NodeKind.DECLARATION, i, end, parent)
        else:
            self.new(NodeKind.STATEMENT, i, end, parent)
        return end

    def _prev_is_tag(self, ident: int, lo: int) -> bool:
        prev = self.prev_code(ident, lo)
        return prev is not None and self.tokens[prev].is_keyword(*TAG_KEYWORDS)

    def _function_like(self, i: int, brace: int, hi: int, parent: int) -> int:
        close = self.closer(brace, hi)
        code = self._code_range(i, brace)
        if self.is_file_scope(parent):
            name = function_name(self.tokens, code, self.partner)
            node = self.new(NodeKind.FUNCTION_DEFINITION, i, close + 1, parent, name=name)
        else:
            # Macro-driven loops such as `list_for_each(it) { ... }`.
            node = self.new(NodeKind.STATEMENT, i, close + 1, parent, keyword="macro")
        self.brace_block(brace, hi, node)
        return close + 1

    # ----------------------------------------------------------
    def associate_comments(self, parent: int) -> None:
        children = self.drafts[parent].children
        for pos, index in enumerate(children):
            draft = self.drafts[index]
            if draft.kind != NodeKind.COMMENT_BLOCK:
                continue
            if not draft.standalone:
                for prev in reversed(children[:pos]):
                    if self.drafts[prev].kind != NodeKind.COMMENT_BLOCK:
                        draft.documents = prev
                        break
                continue
            target = None
            for nxt in children[pos + 1:]:
                if self.drafts[nxt].kind != NodeKind.COMMENT_BLOCK:
                    target = nxt
                    break
            if target is None:
                if self.drafts[parent].kind != NodeKind.FILE:
                    draft.documents = parent
                continue
            draft.documents = target
            self.drafts[target].comment = index

    def freeze(self) -> SyntaxTree:
        nodes = [
            SyntaxNode(
                index=i,
                kind=d.kind,
                first=d.first,
                last=d.last,
                parent=d.parent,
                children=tuple(d.children),
                name=d.name,
                keyword=d.keyword,
                comment=d.comment,
                documents=d.documents,
            )
            for i, d in enumerate(self.drafts)
        ]
        return SyntaxTree(nodes=nodes, root=0)


# ============================================================
# =================== DECLARATION HELPERS ====================
# ============================================================

def looks_like_declaration(tokens: Sequence[Token], code: List[int]) -> bool:
    if not code:
        return False
    first = tokens[code[0]]
    if first.kind == TokenKind.KEYWORD:
        return first.text in DECLARATION_STARTERS
    if first.kind != TokenKind.IDENTIFIER or len(code) < 2:
        return False
    second = tokens[code[1]]
    if second.kind == TokenKind.IDENTIFIER or second.is_keyword(*QUALIFIERS):
        return True
    if second.is_op("*"):
        k = 1
        while k < len(code) and (tokens[code[k]].is_op("*") or tokens[code[k]].is_keyword(*QUALIFIERS)):
            k += 1
        if k + 1 < len(code) and tokens[code[k]].kind == TokenKind.IDENTIFIER:
            return tokens[code[k + 1]].is_op(";", "=", "[", ",", ")")
        if k + 1 == len(code) - 1 and tokens[code[k]].kind == TokenKind.IDENTIFIER:
            return True
    return False


def function_name(tokens: Sequence[Token], code: List[int], partner: Dict[int, int]) -> Optional[str]:
    """Name of a function whose signature occupies `code` (up to the body brace)."""
    for pos, idx in enumerate(code):
        tok = tokens[idx]
        if tok.is_op("("):
            if pos > 0 and tokens[code[pos - 1]].kind == TokenKind.IDENTIFIER:
                return tokens[code[pos - 1]].text
            # `int (*name(void))(int)` style: look inside the group.
            close = partner.get(idx, idx)
            inner = [c for c in code if idx < c < close]
            for a, b in zip(inner, inner[1:]):
                if tokens[a].kind == TokenKind.IDENTIFIER and tokens[b].is_op("("):
                    return tokens[a].text
            return None
    return None


def typedef_name(tokens: Sequence[Token], code: List[int], partner: Dict[int, int]) -> Optional[str]:
    """Declared name of `typedef ... name;`, including function-pointer typedefs."""
    depth = 0
    candidate: Optional[str] = None
    skip_until = -1
    for pos, idx in enumerate(code):
        if idx <= skip_until:
            continue
        tok = tokens[idx]
        if tok.is_op("{"):
            skip_until = partner.get(idx, idx)
            continue
        if tok.is_op("(") and pos + 1 < len(code) and tokens[code[pos + 1]].is_op("*", "^"):
            close = partner.get(idx, idx)
            inner = [c for c in code if idx < c < close and tokens[c].kind == TokenKind.IDENTIFIER]
            if inner:
                return tokens[inner[-1]].text
        if tok.is_op("(", "["):
            depth += 1
        elif tok.is_op(")", "]"):
            depth -= 1
        elif depth == 0 and tok.kind == TokenKind.IDENTIFIER:
            candidate = tok.text
    return candidate


def tag_name(tokens: Sequence[Token], brace: int, lo: int) -> Optional[str]:
    j = brace - 1
    while j >= lo:
        tok = tokens[j]
        if tok.kind == TokenKind.IDENTIFIER:
            return tok.text
        if tok.kind == TokenKind.KEYWORD:
            return None
        j -= 1
    return None


@dataclass(frozen=True)
class Declarator:
    """One name introduced by a declaration, parameter list or member list."""
    name: str
    token: int
    pointer_depth: int = 0
    is_array: bool = False
    is_function: bool = False
    specifiers: Tuple[str, ...] = ()

    def has(self, specifier: str) -> bool:
        return specifier in self.specifiers


def split_top_level(tokens: Sequence[Token], code: List[int], separator: str = ",") -> List[List[int]]:
    parts: List[List[int]] = [[]]
    depth = 0
    for idx in code:
        tok = tokens[idx]
        if tok.kind == TokenKind.PUNCTUATION and tok.text in OPENERS:
            depth += 1
        elif tok.kind == TokenKind.PUNCTUATION and tok.text in CLOSERS:
            depth -= 1
        elif depth == 0 and tok.is_op(separator):
            parts.append([])
            continue
        parts[-1].append(idx)
    return [p for p in parts if p]


def _declarator_of(
    tokens: Sequence[Token], piece: List[int], specifiers: Tuple[str, ...]
) -> Optional[Declarator]:
    depth = 0
    trimmed: List[int] = []
    for idx in piece:
        tok = tokens[idx]
        if tok.kind == TokenKind.PUNCTUATION and tok.text in OPENERS:
            depth += 1
        elif tok.kind == TokenKind.PUNCTUATION and tok.text in CLOSERS:
            depth -= 1
        elif depth == 0 and tok.is_op("=", ":"):
            break
        trimmed.append(idx)
    # Function pointer: `(*name)(...)`.
    for pos, idx in enumerate(trimmed[:-1]):
        if tokens[idx].is_op("(") and tokens[trimmed[pos + 1]].is_op("*"):
            stars = 0
            for inner in trimmed[pos + 1:]:
                tok = tokens[inner]
                if tok.is_op("*"):
                    stars += 1
                elif tok.kind == TokenKind.IDENTIFIER:
                    return Declarator(tok.text, inner, stars, False, False, specifiers)
                elif tok.is_op(")"):
                    break
            return None
    name_pos = None
    depth = 0
    is_function = False
    is_array = False
    for pos, idx in enumerate(trimmed):
        tok = tokens[idx]
        if tok.is_op("(", "["):
            if depth == 0 and name_pos is not None and pos == name_pos + 1:
                is_function = tok.text == "("
                is_array = tok.text == "["
            if depth == 0 and tok.text == "[" and name_pos is not None:
                is_array = True
            depth += 1
        elif tok.is_op(")", "]"):
            depth -= 1
        elif depth == 0 and tok.kind == TokenKind.IDENTIFIER:
            if name_pos is None or not (is_function or is_array):
                name_pos = pos
    if name_pos is None:
        return None
    stars = sum(1 for idx in trimmed[:name_pos] if tokens[idx].is_op("*"))
    return Declarator(
        tokens[trimmed[name_pos]].text,
        trimmed[name_pos],
        stars,
        is_array,
        is_function,
        specifiers,
    )


def declarators(tokens: Sequence[Token], code: List[int]) -> List[Declarator]:
    """
    Names declared by the code tokens of a declaration (without the `;`).

    The specifier list comes from the first declarator and is shared by the
    others, e.g. `static uint8_t *p_a, b;` declares `p_a` (pointer) and `b`.
    """
    if code and tokens[code[-1]].is_op(";"):
        code = code[:-1]
    pieces = split_top_level(tokens, code)
    if not pieces:
        return []
    head = pieces[0]
    first = _declarator_of(tokens, head, ())
    if first is None:
        return []
    specifiers = tuple(
        tokens[idx].text for idx in head
        if idx < first.token and tokens[idx].kind in (TokenKind.KEYWORD, TokenKind.IDENTIFIER)
    )
    if not specifiers:
        return []
    result = [Declarator(first.name, first.token, first.pointer_depth, first.is_array,
                         first.is_function, specifiers)]
    for piece in pieces[1:]:
        decl = _declarator_of(tokens, piece, specifiers)
        if decl is not None:
            result.append(decl)
    return result


def parameters(tokens: Sequence[Token], code: List[int], partner: Dict[int, int]) -> Tuple[Optional[int], List[Declarator]]:
    """
    Locate the parameter list of a function signature.

    Returns the index of its `(` and the named parameters.
    """
    open_idx = None
    for pos, idx in enumerate(code):
        if tokens[idx].is_op("(") and pos > 0 and tokens[code[pos - 1]].kind == TokenKind.IDENTIFIER:
            open_idx = idx
            break
    if open_idx is None:
        return None, []
    close = partner.get(open_idx, code[-1])
    inner = [c for c in code if open_idx < c < close]
    params: List[Declarator] = []
    for piece in split_top_level(tokens, inner):
        significant = [p for p in piece if not tokens[p].is_keyword(*QUALIFIERS)]
        if len(significant) < 2 or tokens[piece[-1]].is_op("*"):
            continue
        decl = _declarator_of(tokens, piece, ())
        if decl is None or decl.token == significant[0]:
            continue
        specifiers = tuple(
            tokens[p].text for p in piece
            if p < decl.token and tokens[p].kind in (TokenKind.KEYWORD, TokenKind.IDENTIFIER)
        )
        params.append(Declarator(decl.name, decl.token, decl.pointer_depth, decl.is_array,
                                 decl.is_function, specifiers))
    return open_idx, params


# ============================================================
# ===================== FILE SUMMARY =========================
# ============================================================

SECTION_ORDER = ("include", "macro", "type", "global", "prototype", "function")


@dataclass(frozen=True)
class FunctionInfo:
    node: int
    name: Optional[str]
    body_open: int
    body_close: int
    labels: Tuple[Tuple[str, int], ...] = ()
    gotos: Tuple[Tuple[str, int], ...] = ()


@dataclass(frozen=True)
class FileSummary:
    """
    Read-only whole-file facts computed once before any evaluator runs.
    """
    partner: Dict[int, int]
    code: Tuple[int, ...]
    sections: Tuple[Tuple[str, int], ...]
    first_section: Dict[str, int]
    functions: Tuple[FunctionInfo, ...]
    dead_regions: Tuple[Tuple[int, int], ...]
    is_header: bool
    guard: Optional[Tuple[str, int, int]] = None  # (name, #ifndef token, #define token)

    def function_at(self, token: int) -> Optional[FunctionInfo]:
        for fn in self.functions:
            if fn.body_open <= token <= fn.body_close:
                return fn
        return None


def _section_of(source: SourceFile, tree: SyntaxTree, node: SyntaxNode) -> Optional[str]:
    tokens = source.tokens
    if node.kind == NodeKind.PREPROCESSOR_BLOCK and node.keyword == "include":
        return "include"
    if node.kind == NodeKind.MACRO_DEFINITION:
        return "macro"
    if node.kind == NodeKind.TYPE_DEFINITION:
        return "type"
    if node.kind == NodeKind.FUNCTION_DEFINITION:
        return "function"
    if node.kind == NodeKind.DECLARATION:
        code = [i for i in range(node.first, node.last) if is_code(tokens[i])]
        decls = declarators(tokens, code)
        if decls and all(d.is_function for d in decls):
            return "prototype"
        return "global"
    return None


def _top_level(tree: SyntaxTree) -> List[SyntaxNode]:
    out: List[SyntaxNode] = []
    stack = list(reversed(tree.nodes[tree.root].children))
    while stack:
        node = tree.nodes[stack.pop()]
        if node.kind == NodeKind.PREPROCESSOR_BLOCK and node.children:
            stack.extend(reversed(node.children))
            continue
        out.append(node)
    return out


def include_guard(tokens: Sequence[Token]) -> Optional[Tuple[str, int, int]]:
    """`#ifndef X` / `#define X` as the first two directives before any code."""
    found: List[int] = []
    for i, tok in enumerate(tokens):
        if tok.kind == TokenKind.PREPROCESSOR:
            found.append(i)
            if len(found) == 2:
                break
        elif is_code(tok):
            return None
    if len(found) < 2:
        return None
    match = _GUARD_RE.match(tokens[found[0]].text)
    if not match:
        return None
    name = match.group(1) or match.group(2)
    if macro_name(tokens[found[1]]) != name:
        return None
    return name, found[0], found[1]


def summarize(source: SourceFile, tree: SyntaxTree, partner: Dict[int, int]) -> FileSummary:
    tokens = source.tokens
    code = tuple(i for i, tok in enumerate(tokens) if is_code(tok))
    guard = include_guard(tokens)

    sections: List[Tuple[str, int]] = []
    first_section: Dict[str, int] = {}
    for node in _top_level(tree):
        if guard is not None and node.kind == NodeKind.MACRO_DEFINITION and node.first == guard[2]:
            continue
        section = _section_of(source, tree, node)
        if section is None:
            continue
        sections.append((section, node.index))
        first_section.setdefault(section, node.first)

    functions: List[FunctionInfo] = []
    for node in tree.of_kind(NodeKind.FUNCTION_DEFINITION):
        body = next(
            (tree.nodes[c] for c in node.children if tree.nodes[c].kind == NodeKind.BRACE_BLOCK),
            None,
        )
        if body is None:
            continue
        labels = tuple(
            (n.name, n.first) for n in tree.walk(body.index)
            if n.kind == NodeKind.STATEMENT and n.keyword == "label" and n.name
        )
        gotos: List[Tuple[str, int]] = []
        for i in range(body.first, body.last):
            if tokens[i].is_keyword("goto"):
                j = i + 1
                while j < body.last and not is_code(tokens[j]):
                    j += 1
                if j < body.last and tokens[j].kind == TokenKind.IDENTIFIER:
                    gotos.append((tokens[j].text, i))
        functions.append(
            FunctionInfo(node.index, node.name, body.first, body.last - 1, labels, tuple(gotos))
        )

    dead: List[Tuple[int, int]] = []
    for node in tree.of_kind(NodeKind.PREPROCESSOR_BLOCK):
        if node.children and _IF_ZERO_RE.match(tokens[node.first].text):
            dead.append((node.first, node.last - 1))

    return FileSummary(
        partner=partner,
        code=code,
        sections=tuple(sections),
        first_section=first_section,
        functions=tuple(functions),
        dead_regions=tuple(dead),
        is_header=source.path.endswith((".h", ".H", ".hh")),
        guard=guard,
    )


# ============================================================
# ======================== ENTRY POINT =======================
# ============================================================

def build(source: SourceFile) -> Tuple[SyntaxTree, FileSummary, List[StructureError]]:
    """
    Build the shallow tree and the file summary for a lexed file.

    Unbalanced delimiters are reported as StructureErrors; the builder keeps
    going by turning the rest of the file into one trailing BRACE_BLOCK.
    """
    partner, cut, errors = match_delimiters(source)
    if cut is not None:
        partner = {a: b for a, b in partner.items() if a < cut and b < cut}
    try:
        tree = _build_tree(source, partner, cut)
    except RecursionError:
        log(f"{source.path}: nesting too deep to build a tree; structural rules skipped")
        tree = _build_tree(source, partner, 0)
    return tree, summarize(source, tree, partner), errors


def _build_tree(source: SourceFile, partner: Dict[int, int], cut: Optional[int]) -> SyntaxTree:
    count = len(source.tokens)
    builder = _Builder(source, partner)
    root = builder.new(NodeKind.FILE, 0, count, None)
    builder.sequence(0, cut if cut is not None else count, root)
    if cut is not None:
        builder.new(NodeKind.BRACE_BLOCK, cut, count, root)
    return builder.freeze()
