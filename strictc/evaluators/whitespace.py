"""
Whitespace and layout rules.

Most of these work on the raw token stream (including whitespace and newline
tokens); line-based rules read the text through SourceFile.line_text.
"""

from __future__ import annotations
import re
from typing import Dict, Iterator, List, Optional, Tuple

from ..model import Diagnostic, NodeKind, TokenKind
from ..registry import Rule
from .base import Evaluator, FileContext

ASSIGNMENT_OPERATORS = frozenset({"=", "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "<<=", ">>="})
BINARY_OPERATORS = frozenset({"==", "!=", "<", ">", "<=", ">=", "&&", "||", "/", "%", "|", "^", "<<", ">>", "?"})
AMBIGUOUS_OPERATORS = frozenset({"*", "&", "+", "-"})
PREFIX_OPERATORS = frozenset({"!", "~", "++", "--"})
SPACED_KEYWORDS = frozenset({"if", "while", "for", "switch"})

_NEWLINE_LABELS = {"\n": "LF", "\r\n": "CRLF", "\r": "CR"}


# ============================================================
# ================ OPERATOR CLASSIFICATION ===================
# ============================================================

def is_cast_close(ctx: FileContext, close: int) -> bool:
    """True when the `)` at `close` ends a cast such as `(uint8_t *)`."""
    opener = ctx.summary.partner.get(close)
    if opener is None:
        return False
    before = ctx.prev_code(opener)
    if before is not None:
        prev = ctx.tokens[before]
        if prev.kind == TokenKind.IDENTIFIER or prev.is_keyword("sizeof") or prev.is_op(")", "]"):
            return False
    inner = ctx.code_between(opener, close)
    if not inner:
        return False
    saw_type = False
    for i in inner:
        tok = ctx.tokens[i]
        if ctx.is_type_name(tok):
            saw_type = True
        elif not tok.is_op("*"):
            return False
    return saw_type


def _ends_operand(ctx: FileContext, i: Optional[int]) -> bool:
    if i is None:
        return False
    tok = ctx.tokens[i]
    if tok.kind in (TokenKind.IDENTIFIER, TokenKind.NUMBER, TokenKind.STRING, TokenKind.CHAR):
        return True
    if tok.is_op("]"):
        return True
    if tok.is_op(")"):
        return not is_cast_close(ctx, i)
    return tok.is_op("++", "--") and _ends_operand(ctx, ctx.prev_code(i))


def operator_role(ctx: FileContext, i: int) -> str:
    """Classify `* & + -` at `i` as "binary", "unary" or "declarator"."""
    tok = ctx.tokens[i]
    prev = ctx.prev_code(i)
    if tok.text == "*":
        if prev is not None and (ctx.is_type_name(ctx.tokens[prev]) or ctx.tokens[prev].is_op("*")):
            return "declarator"
        nxt = ctx.next_code(i)
        if nxt is not None and ctx.tokens[nxt].is_op(")", ",") and prev is not None \
                and not _ends_operand(ctx, prev):
            return "declarator"
    return "binary" if _ends_operand(ctx, prev) else "unary"


def _spaced(ctx: FileContext, i: int) -> Tuple[bool, bool]:
    tokens = ctx.tokens
    ok_kinds = (TokenKind.WHITESPACE, TokenKind.NEWLINE)
    before = i == 0 or tokens[i - 1].kind in ok_kinds
    after = i + 1 >= len(tokens) or tokens[i + 1].kind in ok_kinds
    return before, after


def _ternary_colons(ctx: FileContext) -> set:
    colons = set()
    pending = 0
    for i in ctx.code_tokens():
        tok = ctx.tokens[i]
        if tok.is_op(";", "{", "}") or tok.is_keyword("case", "default"):
            pending = 0
        elif tok.is_op("?"):
            pending += 1
        elif tok.is_op(":") and pending:
            pending -= 1
            colons.add(i)
    return colons


# ============================================================
# ==================== TOKEN SPACING =========================
# ============================================================

def check_operator_spacing(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    colons = _ternary_colons(ctx)
    for i in ctx.code_tokens():
        tok = ctx.tokens[i]
        if tok.kind != TokenKind.OPERATOR:
            continue
        text = tok.text
        if text in AMBIGUOUS_OPERATORS:
            if operator_role(ctx, i) != "binary":
                continue
        elif text == ":":
            if i not in colons:
                continue
        elif text not in ASSIGNMENT_OPERATORS and text not in BINARY_OPERATORS:
            continue
        before, after = _spaced(ctx, i)
        if before and after:
            continue
        side = "on both sides" if not (before or after) else ("before it" if not before else "after it")
        yield ctx.report(rule, i, op=text, side=side)


def check_unary_spacing(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    for i in ctx.code_tokens():
        tok = tokens[i]
        if tok.kind != TokenKind.OPERATOR:
            continue
        if tok.text in PREFIX_OPERATORS:
            if tok.text in ("++", "--") and _ends_operand(ctx, ctx.prev_code(i)):
                continue
        elif tok.text in AMBIGUOUS_OPERATORS:
            if operator_role(ctx, i) != "unary":
                continue
        else:
            continue
        if i + 1 < len(tokens) and tokens[i + 1].kind == TokenKind.WHITESPACE:
            yield ctx.report(rule, i, op=tok.text)


def check_double_space(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    for i, tok in ctx.until_cancelled(enumerate(tokens)):
        if tok.kind != TokenKind.WHITESPACE or len(tok.text) < 2 or tok.text.strip(" "):
            continue
        if i == 0 or tokens[i - 1].kind == TokenKind.NEWLINE or tokens[i - 1].text.startswith("\\"):
            continue
        if i + 1 >= len(tokens):
            continue
        nxt = tokens[i + 1]
        if nxt.kind in (TokenKind.NEWLINE, TokenKind.COMMENT) or nxt.text.startswith("\\"):
            continue
        yield ctx.report(rule, i, count=len(tok.text))


def check_comma_spacing(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    for i in ctx.code_tokens():
        if not tokens[i].is_op(","):
            continue
        if i >= 2 and tokens[i - 1].kind == TokenKind.WHITESPACE and tokens[i - 2].kind != TokenKind.NEWLINE:
            yield ctx.report(rule, i - 1, problem="space before ','")
        if i + 1 < len(tokens) and tokens[i + 1].kind not in (TokenKind.WHITESPACE, TokenKind.NEWLINE):
            yield ctx.report(rule, i, problem="missing space after ','")


def check_semicolon_spacing(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    for i in ctx.code_tokens():
        if not tokens[i].is_op(";") or i < 2:
            continue
        if tokens[i - 1].kind != TokenKind.WHITESPACE or tokens[i - 2].kind == TokenKind.NEWLINE:
            continue
        prev = ctx.prev_code(i)
        if prev is not None and tokens[prev].is_op(";", "("):
            continue
        yield ctx.report(rule, i - 1)


def check_keyword_paren(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    for i in ctx.code_tokens():
        tok = tokens[i]
        if not tok.is_keyword(*SPACED_KEYWORDS):
            continue
        paren = ctx.next_code(i)
        if paren is None or not tokens[paren].is_op("("):
            continue
        between = tokens[i + 1:paren]
        if len(between) == 1 and between[0].text == " ":
            continue
        yield ctx.report(rule, i, paren, keyword=tok.text)


def check_call_paren(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    for i in ctx.code_tokens():
        tok = tokens[i]
        if tok.kind != TokenKind.IDENTIFIER or ctx.is_type_name(tok) or i + 2 >= len(tokens):
            continue
        if tokens[i + 1].kind == TokenKind.WHITESPACE and tokens[i + 2].is_op("("):
            yield ctx.report(rule, i + 1, name=tok.text)


def check_paren_inner(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    tokens = ctx.tokens
    count = len(tokens)
    for i in ctx.code_tokens():
        tok = tokens[i]
        if tok.is_op("(") and i + 2 < count and tokens[i + 1].kind == TokenKind.WHITESPACE \
                and tokens[i + 2].kind not in (TokenKind.NEWLINE, TokenKind.COMMENT):
            yield ctx.report(rule, i + 1, side="after '('")
        elif tok.is_op(")") and i >= 2 and tokens[i - 1].kind == TokenKind.WHITESPACE \
                and tokens[i - 2].kind != TokenKind.NEWLINE and not tokens[i - 2].is_op("("):
            yield ctx.report(rule, i - 1, side="before ')'")


# ============================================================
# ========================= BRACES ===========================
# ============================================================

def _brace_blocks(ctx: FileContext):
    for node in ctx.until_cancelled(ctx.tree.of_kind(NodeKind.BRACE_BLOCK)):
        if not ctx.tokens[node.first].is_op("{"):
            continue
        close = ctx.summary.partner.get(node.first)
        if close is None or close != node.last - 1:
            continue
        yield node, node.first, close


def check_brace_open_line(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    own_line = rule.param("placement", "own_line") != "end_of_line"
    for node, open_idx, _ in _brace_blocks(ctx):
        parent = ctx.tree.parent(node)
        first = ctx.first_on_line(open_idx)
        if own_line and not first:
            yield ctx.report(rule, open_idx, expected="be on its own line")
        elif not own_line and first and parent is not None \
                and parent.kind not in (NodeKind.BRACE_BLOCK, NodeKind.FILE):
            yield ctx.report(rule, open_idx, expected="end the line that opens the block")


def check_brace_close_line(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    own_line = rule.param("placement", "own_line") != "end_of_line"
    tokens = ctx.tokens
    for node, open_idx, close in _brace_blocks(ctx):
        if tokens[open_idx].line == tokens[close].line:
            continue
        if not ctx.first_on_line(close):
            yield ctx.report(rule, close, problem="closing brace must start its line")
        nxt = ctx.next_code(close)
        if nxt is None or tokens[nxt].line != tokens[close].line:
            continue
        parent = ctx.tree.parent(node)
        follower = tokens[nxt]
        if parent is not None and parent.kind == NodeKind.TYPE_DEFINITION:
            continue
        if parent is not None and parent.keyword == "do" and follower.is_keyword("while"):
            continue
        if follower.is_keyword("else") and not own_line:
            continue
        yield ctx.report(rule, nxt, problem="'" + follower.text + "' must not follow '}' on the same line")


# ============================================================
# ========================= LINES ============================
# ============================================================

def _lines(ctx: FileContext) -> Iterator[Tuple[int, int, str]]:
    source = ctx.source
    total = source.line_count
    if total > 1 and source.line_starts[-1] == source.length:
        total -= 1
    for line in ctx.until_cancelled(range(1, total + 1)):
        yield line, source.line_starts[line - 1], source.line_text(line)


def check_line_length(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    limit = int(rule.param("max_line_length", 120))
    for _, start, text in _lines(ctx):
        if len(text) > limit:
            yield ctx.report_span(rule, start + limit, start + len(text), length=len(text), limit=limit)


def check_tab(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for match in ctx.until_cancelled(re.finditer(r"\t+", ctx.source.text)):
        yield ctx.report_span(rule, match.start(), match.end())


def check_trailing(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    for _, start, text in _lines(ctx):
        match = re.search(r"[ \t]+$", text)
        if match:
            yield ctx.report_span(rule, start + match.start(), start + match.end())


def check_indent(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    unit = int(rule.param("indent_width", 4))
    tokens = ctx.tokens
    for i, tok in ctx.until_cancelled(enumerate(tokens)):
        if tok.kind != TokenKind.WHITESPACE or (i > 0 and tokens[i - 1].kind != TokenKind.NEWLINE):
            continue
        if i + 1 >= len(tokens) or tok.text.startswith("\\"):
            continue
        first = tokens[i + 1]
        if first.kind in (TokenKind.NEWLINE, TokenKind.COMMENT, TokenKind.PREPROCESSOR, TokenKind.WHITESPACE):
            continue
        if _is_continuation(ctx, i + 1):
            continue
        width = len(tok.text.expandtabs(unit))
        if width % unit:
            yield ctx.report(rule, i, width=width, unit=unit)


def _is_continuation(ctx: FileContext, i: int) -> bool:
    prev = ctx.prev_code(i)
    if prev is None:
        return False
    tok = ctx.tokens[prev]
    if tok.is_op(";", "{", "}", ":") or tok.is_keyword("else", "do"):
        return False
    if tok.is_op(")"):
        if ctx.tokens[i].is_op("{"):
            return False
        opener = ctx.summary.partner.get(prev)
        before = ctx.prev_code(opener) if opener is not None else None
        return not (before is not None and ctx.tokens[before].is_keyword("if", "while", "for", "switch"))
    return True


def check_line_ending(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    style = ctx.source.line_ending
    if style not in ("cr", "mixed"):
        return
    newlines = [i for i, t in enumerate(ctx.tokens) if t.kind == TokenKind.NEWLINE]
    if not newlines:
        return
    if style == "cr":
        yield ctx.report(rule, newlines[0], problem="line endings use bare CR")
        return
    expected = ctx.tokens[newlines[0]].text
    for i in newlines[1:]:
        text = ctx.tokens[i].text
        if text != expected:
            yield ctx.report(
                rule, i,
                problem=f"inconsistent line ending {_NEWLINE_LABELS.get(text, text)!s} "
                        f"in a file using {_NEWLINE_LABELS.get(expected, expected)}",
            )


def check_eof_newline(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    text = ctx.source.text
    if text and not text.endswith(("\n", "\r")):
        yield ctx.report_span(rule, len(text) - 1, len(text))


def check_blank_lines(ctx: FileContext, rule: Rule) -> Iterator[Diagnostic]:
    limit = int(rule.param("max_blank_lines", 2))
    runs: List[List[Tuple[int, str]]] = []
    current: List[Tuple[int, str]] = []
    for _, start, text in _lines(ctx):
        if text.strip():
            if current:
                runs.append(current)
            current = []
        else:
            current.append((start, text))
    if current:
        runs.append(current)
    for run in runs:
        if len(run) > limit:
            start, text = run[limit]
            yield ctx.report_span(rule, start, start + len(text), count=len(run), limit=limit)


EVALUATORS: Dict[str, Evaluator] = {
    "WHITESPACE.LINE_LENGTH": check_line_length,
    "WHITESPACE.TAB": check_tab,
    "WHITESPACE.TRAILING": check_trailing,
    "WHITESPACE.DOUBLE_SPACE": check_double_space,
    "WHITESPACE.OPERATOR_SPACING": check_operator_spacing,
    "WHITESPACE.UNARY_SPACING": check_unary_spacing,
    "WHITESPACE.COMMA_SPACING": check_comma_spacing,
    "WHITESPACE.SEMICOLON_SPACING": check_semicolon_spacing,
    "WHITESPACE.KEYWORD_PAREN": check_keyword_paren,
    "WHITESPACE.CALL_PAREN": check_call_paren,
    "WHITESPACE.PAREN_INNER": check_paren_inner,
    "WHITESPACE.BRACE_OPEN_LINE": check_brace_open_line,
    "WHITESPACE.BRACE_CLOSE_LINE": check_brace_close_line,
    "WHITESPACE.INDENT": check_indent,
    "WHITESPACE.LINE_ENDING": check_line_ending,
    "WHITESPACE.EOF_NEWLINE": check_eof_newline,
    "WHITESPACE.BLANK_LINES": check_blank_lines,
}
