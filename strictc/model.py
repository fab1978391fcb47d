"""
Core data model shared by every stage of the pipeline.

Tokens, spans and diagnostics are frozen value types. Syntax nodes live in an
arena (`SyntaxTree.nodes`) and refer to each other by index, so a tree can be
read from several threads without any locking.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple


# ============================================================
# ======================== SEVERITY ==========================
# ============================================================

class Severity(Enum):
    INFO = 1
    WARNING = 2
    ERROR = 3

    @classmethod
    def parse(cls, value: str) -> "Severity":
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"invalid severity '{value}'") from None

    def __lt__(self, other: "Severity") -> bool:
        return self.value < other.value

    def __le__(self, other: "Severity") -> bool:
        return self.value <= other.value

    def __gt__(self, other: "Severity") -> bool:
        return self.value > other.value

    def __ge__(self, other: "Severity") -> bool:
        return self.value >= other.value

    def __str__(self) -> str:
        return self.name.lower()


class Category(Enum):
    NAMING = "naming"
    WHITESPACE = "whitespace"
    STRUCTURE = "structure"
    COMMENTS = "comments"
    KEYWORDS = "keywords"
    DOCUMENTATION = "documentation"
    # Raised by the pipeline itself rather than by an evaluator.
    LEXICAL = "lexical"
    ENGINE = "engine"

    @classmethod
    def parse(cls, value: str) -> "Category":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown rule category '{value}'") from None


# ============================================================
# ========================= SPANS ============================
# ============================================================

@dataclass(frozen=True)
class Span:
    """
    Half-open character range `[start, end)` inside one file, with the
    1-based line/column of both ends.
    """
    file: str
    start: int
    end: int
    line: int
    column: int
    end_line: int
    end_column: int

    def within(self, length: int) -> bool:
        return 0 <= self.start <= self.end <= length

    def to_dict(self) -> Dict[str, object]:
        return {
            "file": self.file,
            "line_start": self.line,
            "col_start": self.column,
            "line_end": self.end_line,
            "col_end": self.end_column,
            "offset": self.start,
            "length": self.end - self.start,
        }


# ============================================================
# ========================= TOKENS ===========================
# ============================================================

class TokenKind(Enum):
    IDENTIFIER = "identifier"
    KEYWORD = "keyword"
    NUMBER = "number"
    STRING = "string"
    CHAR = "char"
    OPERATOR = "operator"
    PUNCTUATION = "punctuation"
    COMMENT = "comment"
    PREPROCESSOR = "preprocessor"
    WHITESPACE = "whitespace"
    NEWLINE = "newline"
    ERROR = "error"


TRIVIA_KINDS = frozenset({TokenKind.WHITESPACE, TokenKind.NEWLINE, TokenKind.COMMENT})


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    span: Span

    @property
    def line(self) -> int:
        return self.span.line

    @property
    def column(self) -> int:
        return self.span.column

    @property
    def is_trivia(self) -> bool:
        return self.kind in TRIVIA_KINDS

    def is_op(self, *texts: str) -> bool:
        return self.kind in (TokenKind.OPERATOR, TokenKind.PUNCTUATION) and self.text in texts

    def is_keyword(self, *texts: str) -> bool:
        return self.kind == TokenKind.KEYWORD and (not texts or self.text in texts)

    @property
    def is_block_comment(self) -> bool:
        return self.kind == TokenKind.COMMENT and self.text.startswith("/*")

    @property
    def is_line_comment(self) -> bool:
        return self.kind == TokenKind.COMMENT and self.text.startswith("//")


# ============================================================
# ====================== SOURCE FILE =========================
# ============================================================

@dataclass
class SourceFile:
    """
    One file under analysis. Populated once by the lexer, read-only after.
    """
    path: str
    text: str
    tokens: Tuple[Token, ...] = ()
    line_ending: str = "lf"  # "lf", "crlf", "cr", "mixed" or "none"
    encoding_valid: bool = True
    lex_errors: Tuple[object, ...] = ()
    line_starts: Tuple[int, ...] = (0,)

    @property
    def length(self) -> int:
        return len(self.text)

    @property
    def line_count(self) -> int:
        return len(self.line_starts)

    def line_text(self, line: int) -> str:
        """Text of a 1-based line without its terminator."""
        if line < 1 or line > len(self.line_starts):
            return ""
        start = self.line_starts[line - 1]
        end = self.line_starts[line] if line < len(self.line_starts) else len(self.text)
        return self.text[start:end].rstrip("\r\n")

    def position(self, offset: int) -> Tuple[int, int]:
        """Map a character offset to a 1-based (line, column)."""
        lo, hi = 0, len(self.line_starts) - 1
        while lo < hi:
            mid = (lo + hi + 1) // 2
            if self.line_starts[mid] <= offset:
                lo = mid
            else:
                hi = mid - 1
        return lo + 1, offset - self.line_starts[lo] + 1

    def span(self, start: int, end: int) -> Span:
        start = max(0, min(start, len(self.text)))
        end = max(start, min(end, len(self.text)))
        line, column = self.position(start)
        end_line, end_column = self.position(end)
        return Span(self.path, start, end, line, column, end_line, end_column)

    def token_span(self, first: Token, last: Optional[Token] = None) -> Span:
        last = last or first
        return self.span(first.span.start, last.span.end)


# ============================================================
# ====================== SYNTAX TREE =========================
# ============================================================

class NodeKind(Enum):
    FILE = "file"
    BRACE_BLOCK = "brace_block"
    STATEMENT = "statement"
    DECLARATION = "declaration"
    FUNCTION_DEFINITION = "function_definition"
    TYPE_DEFINITION = "type_definition"
    MACRO_DEFINITION = "macro_definition"
    COMMENT_BLOCK = "comment_block"
    PREPROCESSOR_BLOCK = "preprocessor_block"


@dataclass(frozen=True)
class SyntaxNode:
    """
    A shallow grouping of tokens `[first, last)`.

    `keyword` holds the leading control keyword of a statement (`if`,
    `switch`, ...), `name` the declared name of functions, types and macros,
    and `comment` the index of the comment block documenting this node. A
    comment block points back at its construct through `documents`.
    """
    index: int
    kind: NodeKind
    first: int
    last: int
    parent: Optional[int] = None
    children: Tuple[int, ...] = ()
    name: Optional[str] = None
    keyword: Optional[str] = None
    comment: Optional[int] = None
    documents: Optional[int] = None


@dataclass
class SyntaxTree:
    nodes: List[SyntaxNode] = field(default_factory=list)
    root: int = 0

    def node(self, index: int) -> SyntaxNode:
        return self.nodes[index]

    def children(self, node: SyntaxNode) -> List[SyntaxNode]:
        return [self.nodes[i] for i in node.children]

    def parent(self, node: SyntaxNode) -> Optional[SyntaxNode]:
        return None if node.parent is None else self.nodes[node.parent]

    def walk(self, start: Optional[int] = None) -> Iterator[SyntaxNode]:
        """Pre-order traversal starting at `start` (the root by default)."""
        stack = [self.root if start is None else start]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def of_kind(self, *kinds: NodeKind) -> List[SyntaxNode]:
        return [n for n in self.walk() if n.kind in kinds]

    def ancestors(self, node: SyntaxNode) -> Iterator[SyntaxNode]:
        current = self.parent(node)
        while current is not None:
            yield current
            current = self.parent(current)

    def enclosing_function(self, node: SyntaxNode) -> Optional[SyntaxNode]:
        for ancestor in self.ancestors(node):
            if ancestor.kind == NodeKind.FUNCTION_DEFINITION:
                return ancestor
        return None


# ============================================================
# ====================== DIAGNOSTICS =========================
# ============================================================

@dataclass(frozen=True)
class Diagnostic:
    rule_id: str
    severity: Severity
    span: Span
    message: str
    fix: Optional[str] = None

    @property
    def path(self) -> str:
        return self.span.file

    @property
    def line(self) -> int:
        return self.span.line

    @property
    def column(self) -> int:
        return self.span.column

    @property
    def key(self) -> Tuple[str, int, int]:
        return (self.rule_id, self.span.start, self.span.end)

    @property
    def sort_key(self) -> Tuple[int, int, str, int]:
        return (self.span.line, self.span.column, self.rule_id, self.span.end)

    def to_dict(self) -> Dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "severity": str(self.severity),
            "message": self.message,
            "location": self.span.to_dict(),
            "suggested_fix": self.fix,
        }


# ============================================================
# ====================== SUPPRESSIONS ========================
# ============================================================

class DirectiveKind(Enum):
    NEXT_LINE = "next_line"
    RANGE_START = "range_start"
    RANGE_END = "range_end"
    FILE_WIDE = "file_wide"


@dataclass(frozen=True)
class SuppressionDirective:
    kind: DirectiveKind
    rule_ids: Tuple[str, ...]
    span: Span

    def covers(self, rule_id: str) -> bool:
        return not self.rule_ids or rule_id in self.rule_ids
