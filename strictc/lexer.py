"""
C99 lexer.

Every character of the input ends up in exactly one token: whitespace runs,
newlines and comments are kept because several rules look at them. Malformed
input never raises; the lexer records a LexError, emits an ERROR marker token
and carries on with the rest of the file.
"""

from __future__ import annotations
import re
from typing import List, Optional, Tuple, Union

from .errors import LexError
from .model import SourceFile, Token, TokenKind

KEYWORDS = frozenset(
    """
    auto break case char const continue default do double else enum extern
    float for goto if inline int long register restrict return short signed
    sizeof static struct switch typedef union unsigned void volatile while
    _Alignas _Alignof _Atomic _Bool _Complex _Generic _Imaginary _Noreturn
    _Static_assert _Thread_local
    """.split()
)

# Longest first so that the first match is the maximal munch.
OPERATORS = (
    "...", "<<=", ">>=",
    "->", "++", "--", "<<", ">>", "<=", ">=", "==", "!=", "&&", "||",
    "*=", "/=", "%=", "+=", "-=", "&=", "^=", "|=", "##",
    "+", "-", "*", "/", "%", "&", "|", "^", "!", "~", "<", ">", "=", "?", ":", ".", "#",
)
PUNCTUATION = frozenset("(){}[];,")

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
# C preprocessing-number: greedy enough to swallow suffixes and exponents.
_NUMBER_RE = re.compile(r"\.?[0-9](?:[eEpP][+-]|[0-9A-Za-z_.])*")
_SPACE_RE = re.compile(r"[ \t\f\v]+")
_LITERAL_PREFIXES = ("u8", "L", "u", "U")
_STRAY_CHARACTERS = frozenset("@$`\\")


def _line_starts(text: str) -> Tuple[Tuple[int, ...], str]:
    """Offsets where each line begins, plus the line-ending style."""
    starts = [0]
    seen = set()
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if ch == "\r":
            if i + 1 < length and text[i + 1] == "\n":
                seen.add("crlf")
                i += 2
            else:
                seen.add("cr")
                i += 1
            starts.append(i)
            continue
        if ch == "\n":
            seen.add("lf")
            starts.append(i + 1)
        i += 1
    if not seen:
        style = "none"
    elif len(seen) > 1:
        style = "mixed"
    else:
        style = seen.pop()
    return tuple(starts), style


def _decode(data: Union[str, bytes]) -> Tuple[str, Optional[int]]:
    """Return the text and, for invalid UTF-8, the character offset of the first bad byte."""
    if isinstance(data, str):
        return data, None
    try:
        return data.decode("utf-8"), None
    except UnicodeDecodeError as exc:
        prefix = data[: exc.start].decode("utf-8", errors="replace")
        return data.decode("utf-8", errors="replace"), len(prefix)


class _Scanner:
    def __init__(self, source: SourceFile) -> None:
        self.source = source
        self.text = source.text
        self.pos = 0
        self.tokens: List[Token] = []
        self.errors: List[LexError] = []
        self.at_line_start = True

    # ----------------------------------------------------------
    def emit(self, kind: TokenKind, start: int, end: int) -> None:
        self.tokens.append(Token(kind, self.text[start:end], self.source.span(start, end)))
        self.pos = end
        if kind == TokenKind.NEWLINE:
            self.at_line_start = True
        elif kind not in (TokenKind.WHITESPACE, TokenKind.COMMENT):
            self.at_line_start = False

    def error(self, rule_id: str, message: str, start: int, end: int) -> None:
        self.errors.append(LexError(message, self.source.span(start, end), rule_id=rule_id))

    def marker(self, at: int) -> None:
        """Zero-width ERROR token flagging where lexing gave up on a construct."""
        self.tokens.append(Token(TokenKind.ERROR, "", self.source.span(at, at)))

    # ----------------------------------------------------------
    def run(self) -> None:
        text = self.text
        length = len(text)
        while self.pos < length:
            i = self.pos
            ch = text[i]

            if ch == "\r":
                end = i + 2 if text.startswith("\r\n", i) else i + 1
                self.emit(TokenKind.NEWLINE, i, end)
            elif ch == "\n":
                self.emit(TokenKind.NEWLINE, i, i + 1)
            elif ch in " \t\f\v":
                match = _SPACE_RE.match(text, i)
                self.emit(TokenKind.WHITESPACE, i, match.end())
            elif text.startswith("//", i):
                self.emit(TokenKind.COMMENT, i, self._line_end(i))
            elif text.startswith("/*", i):
                self._block_comment(i)
            elif ch == "#" and self.at_line_start:
                self._directive(i)
            elif ch == '"' or ch == "'":
                self._quoted(i, i)
            elif ch.isdigit() or (ch == "." and i + 1 < length and text[i + 1].isdigit()):
                match = _NUMBER_RE.match(text, i)
                self.emit(TokenKind.NUMBER, i, match.end())
            elif ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z"):
                self._identifier(i)
            elif ch in PUNCTUATION:
                self.emit(TokenKind.PUNCTUATION, i, i + 1)
            elif ch == "\\" and self._newline_length(i + 1):
                # Line splice outside a directive.
                self.emit(TokenKind.WHITESPACE, i, i + 1)
            else:
                self._operator_or_stray(i)

    def _line_end(self, i: int) -> int:
        text = self.text
        while i < len(text) and text[i] not in "\r\n":
            i += 1
        return i

    def _newline_length(self, i: int) -> int:
        if self.text.startswith("\r\n", i):
            return 2
        if i < len(self.text) and self.text[i] in "\r\n":
            return 1
        return 0

    def _block_comment(self, i: int) -> None:
        close = self.text.find("*/", i + 2)
        if close == -1:
            end = len(self.text)
            self.emit(TokenKind.COMMENT, i, end)
            self.error("LEX.UNTERMINATED_COMMENT", "unterminated block comment", i, end)
            self.marker(end)
            return
        self.emit(TokenKind.COMMENT, i, close + 2)

    def _directive(self, i: int) -> None:
        text = self.text
        j = i
        quote: Optional[str] = None
        while j < len(text):
            ch = text[j]
            if quote:
                if ch == "\\":
                    j += 2
                    continue
                if ch == quote or ch in "\r\n":
                    quote = None
                    if ch in "\r\n":
                        break
                j += 1
                continue
            if ch in "\"'":
                quote = ch
            elif text.startswith("//", j) or text.startswith("/*", j):
                break
            elif ch == "\\":
                skip = self._newline_length(j + 1)
                if skip:
                    if j + 1 + skip >= len(text):
                        end = len(text)
                        self.error(
                            "LEX.UNTERMINATED_CONTINUATION",
                            "line continuation at end of file",
                            j,
                            end,
                        )
                        self.emit(TokenKind.PREPROCESSOR, i, end)
                        self.marker(end)
                        return
                    j += 1 + skip
                    continue
                if j + 1 >= len(text):
                    self.error(
                        "LEX.UNTERMINATED_CONTINUATION",
                        "line continuation at end of file",
                        j,
                        j + 1,
                    )
                    self.emit(TokenKind.PREPROCESSOR, i, j + 1)
                    self.marker(j + 1)
                    return
            elif ch in "\r\n":
                break
            j += 1
        body_end = j
        while body_end > i and text[body_end - 1] in " \t":
            body_end -= 1
        self.emit(TokenKind.PREPROCESSOR, i, body_end)
        if body_end < j:
            self.emit(TokenKind.WHITESPACE, body_end, j)

    def _identifier(self, i: int) -> None:
        match = _IDENT_RE.match(self.text, i)
        end = match.end()
        word = match.group(0)
        if word in _LITERAL_PREFIXES and end < len(self.text) and self.text[end] in "\"'":
            self._quoted(i, end)
            return
        kind = TokenKind.KEYWORD if word in KEYWORDS else TokenKind.IDENTIFIER
        self.emit(kind, i, end)

    def _quoted(self, start: int, quote_at: int) -> None:
        text = self.text
        quote = text[quote_at]
        kind = TokenKind.STRING if quote == '"' else TokenKind.CHAR
        j = quote_at + 1
        while j < len(text):
            ch = text[j]
            if ch == "\\":
                j += 1 + max(1, self._newline_length(j + 1))
                continue
            if ch == quote:
                self.emit(kind, start, j + 1)
                return
            if ch in "\r\n":
                break
            j += 1
        j = min(j, len(text))
        rule_id = "LEX.UNTERMINATED_STRING" if kind == TokenKind.STRING else "LEX.UNTERMINATED_CHAR"
        label = "string" if kind == TokenKind.STRING else "character"
        self.emit(kind, start, j)
        self.error(rule_id, f"unterminated {label} literal", start, j)
        self.marker(j)

    def _operator_or_stray(self, i: int) -> None:
        text = self.text
        for op in OPERATORS:
            if text.startswith(op, i):
                self.emit(TokenKind.OPERATOR, i, i + len(op))
                return
        ch = text[i]
        self.emit(TokenKind.ERROR, i, i + 1)
        # Non-ASCII characters are reported by the encoding scan instead.
        if ord(ch) < 128:
            self.error("LEX.INVALID_CHARACTER", f"character {ch!r} is not valid C", i, i + 1)


def _non_ascii_errors(source: SourceFile) -> List[LexError]:
    errors: List[LexError] = []
    text = source.text
    i = 0
    while i < len(text):
        if ord(text[i]) < 128:
            i += 1
            continue
        j = i
        while j < len(text) and ord(text[j]) >= 128:
            j += 1
        errors.append(
            LexError("non-ASCII character in source", source.span(i, j), rule_id="LEX.NON_ASCII")
        )
        i = j
    return errors


def tokenize(path: str, data: Union[str, bytes]) -> SourceFile:
    """
    Lex `data` into a SourceFile.

    Lexing is deterministic and restartable: calling it again on the same
    input yields an identical token tuple.
    """
    text, bad_offset = _decode(data)
    starts, style = _line_starts(text)
    source = SourceFile(path=path, text=text, line_ending=style, line_starts=starts)

    scanner = _Scanner(source)
    scanner.run()

    errors: List[LexError] = []
    if bad_offset is not None:
        source.encoding_valid = False
        errors.append(
            LexError(
                "file is not valid UTF-8",
                source.span(bad_offset, min(bad_offset + 1, len(text))),
                rule_id="LEX.INVALID_ENCODING",
            )
        )
    errors.extend(scanner.errors)
    errors.extend(_non_ascii_errors(source))

    source.tokens = tuple(scanner.tokens)
    source.lex_errors = tuple(sorted(errors, key=lambda e: (e.span.start, e.rule_id)))
    return source


def significant(tokens: Tuple[Token, ...]) -> List[int]:
    """Indices of the tokens that are neither whitespace, newlines nor comments."""
    return [i for i, tok in enumerate(tokens) if not tok.is_trivia]
