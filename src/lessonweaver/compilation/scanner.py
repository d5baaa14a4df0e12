"""On-demand lexer for TSX lesson sources.

Tokens are produced one at a time so the transpiler can switch the lexing mode (regular code,
JSX tag, JSX text, template continuation) at the exact position it needs. `mark`/`reset` make
speculative lookahead cheap.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass
from typing import Literal

TokenKind = Literal["name", "private", "num", "str", "template", "regex", "punct", "eof"]
TemplatePart = Literal["full", "head", "middle", "tail"]

_IDENT_RE = re.compile(r"(?:[^\W\d]|\$)(?:\w|\$)*")
_JSX_IDENT_RE = re.compile(r"(?:[^\W\d]|\$)(?:\w|\$|-)*")
_NUMBER_RE = re.compile(
    r"0[xX][0-9a-fA-F_]+n?|0[oO][0-7_]+n?|0[bB][01_]+n?"
    r"|(?:\d[\d_]*(?:\.[\d_]*)?|\.\d[\d_]*)(?:[eE][+-]?\d[\d_]*)?n?"
)
_PUNCTUATORS = sorted(
    [
        ">>>=", "...", "===", "!==", "**=", "<<=", ">>=", ">>>", "&&=", "||=", "??=",
        "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.", "++", "--", "+=", "-=",
        "*=", "/=", "%=", "&=", "|=", "^=", "<<", ">>", "**",
        "{", "}", "(", ")", "[", "]", ";", ",", "<", ">", "+", "-", "*", "/", "%", "&",
        "|", "^", "!", "~", "?", ":", "=", ".", "@",
    ],
    key=len,
    reverse=True,
)

# Keywords after which a `/` starts a regular expression rather than a division.
_REGEX_AFTER_KEYWORDS = frozenset(
    {
        "return", "typeof", "instanceof", "in", "of", "new", "delete", "void", "throw",
        "case", "do", "else", "yield", "await", "extends",
    }
)


@dataclass(frozen=True)
class Diagnostic:
    """A problem found while reading or transforming a source."""

    code: str
    message: str
    line: int
    column: int
    severity: Literal["error", "warning"] = "error"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    start: int
    end: int
    nl_before: bool = False
    gap: str = ""
    template: TemplatePart | None = None


@dataclass(frozen=True)
class Comment:
    start: int
    text: str


class ScanError(Exception):
    """Raised for malformed lexical input."""

    def __init__(self, code: str, message: str, pos: int) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.pos = pos


class Scanner:
    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0
        self._prev: Token | None = None
        self._line_starts = [0] + [m.end() for m in re.finditer(r"\r\n|\r|\n", source)]
        self.comments: dict[int, Comment] = {}

    # -- positions -------------------------------------------------------------------------

    def location(self, pos: int) -> tuple[int, int]:
        """1-based (line, column) for an offset."""

        index = bisect.bisect_right(self._line_starts, pos) - 1
        return index + 1, pos - self._line_starts[index] + 1

    def mark(self) -> tuple[int, Token | None]:
        return self.pos, self._prev

    def reset(self, state: tuple[int, Token | None]) -> None:
        self.pos, self._prev = state

    # -- trivia ----------------------------------------------------------------------------

    def _skip_trivia(self) -> tuple[str, bool]:
        src = self.source
        n = len(src)
        parts: list[str] = []
        newline = False
        while self.pos < n:
            ch = src[self.pos]
            if ch in " \t\f\v\u00a0\ufeff":
                parts.append(ch)
                self.pos += 1
            elif ch in "\r\n\u2028\u2029":
                parts.append("" if src.startswith("\r\n", self.pos) else "\n")
                newline = True
                self.pos += 1
            elif src.startswith("//", self.pos):
                end = self.pos
                while end < n and src[end] not in "\r\n\u2028\u2029":
                    end += 1
                self.comments[self.pos] = Comment(self.pos, src[self.pos:end])
                self.pos = end
            elif src.startswith("/*", self.pos):
                end = src.find("*/", self.pos + 2)
                if end == -1:
                    raise ScanError("unterminated-comment", "Unterminated block comment", self.pos)
                text = src[self.pos:end + 2]
                self.comments[self.pos] = Comment(self.pos, text)
                breaks = text.count("\n")
                if breaks:
                    newline = True
                    parts.append("\n" * breaks)
                else:
                    parts.append(" ")
                self.pos = end + 2
            else:
                break
        return "".join(parts), newline

    # -- tokens ----------------------------------------------------------------------------

    def next_token(self, *, jsx_tag: bool = False) -> Token:
        """Read the next token.

        Args:
            jsx_tag: Lex inside a JSX tag: names may contain `-`, strings are raw, and `>`/`/`
                are always single punctuators.
        """

        gap, newline = self._skip_trivia()
        src = self.source
        start = self.pos
        if start >= len(src):
            return self._emit(Token("eof", "", start, start, newline, gap))

        ch = src[start]
        if jsx_tag:
            if ch in "\"'":
                end = src.find(ch, start + 1)
                if end == -1:
                    raise ScanError("unterminated-string", "Unterminated string literal", start)
                return self._emit(Token("str", src[start:end + 1], start, end + 1, newline, gap))
            m = _JSX_IDENT_RE.match(src, start)
            if m:
                return self._emit(Token("name", m.group(0), start, m.end(), newline, gap))
            if ch in ">/":
                return self._emit(Token("punct", ch, start, start + 1, newline, gap))

        m = _IDENT_RE.match(src, start)
        if m:
            return self._emit(Token("name", m.group(0), start, m.end(), newline, gap))
        if ch == "#":
            m = _IDENT_RE.match(src, start + 1)
            if m:
                return self._emit(Token("private", src[start:m.end()], start, m.end(), newline, gap))
        if ch.isdigit() or (ch == "." and src[start + 1:start + 2].isdigit()):
            m = _NUMBER_RE.match(src, start)
            if m:
                return self._emit(Token("num", m.group(0), start, m.end(), newline, gap))
        if ch in "\"'":
            end = self._string_end(start)
            return self._emit(Token("str", src[start:end], start, end, newline, gap))
        if ch == "`":
            return self._emit(self._template(start + 1, start, newline, gap, first=True))
        if ch == "/" and self._regex_allowed():
            end = self._regex_end(start)
            return self._emit(Token("regex", src[start:end], start, end, newline, gap))
        for p in _PUNCTUATORS:
            if src.startswith(p, start):
                if p == "?." and src[start + 2:start + 3].isdigit():
                    continue
                return self._emit(Token("punct", p, start, start + len(p), newline, gap))
        raise ScanError("invalid-character", f"Invalid character {ch!r}", start)

    def _emit(self, token: Token) -> Token:
        self.pos = token.end
        self._prev = token
        return token

    def _regex_allowed(self) -> bool:
        prev = self._prev
        if prev is None:
            return True
        if prev.kind in ("num", "str", "regex", "private"):
            return False
        if prev.kind == "template":
            return prev.template in ("head", "middle")
        if prev.kind == "name":
            return prev.value in _REGEX_AFTER_KEYWORDS
        return prev.value not in (")", "]")

    def _string_end(self, start: int) -> int:
        src = self.source
        quote = src[start]
        i = start + 1
        while i < len(src):
            ch = src[i]
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                return i + 1
            if ch in "\r\n":
                break
            i += 1
        raise ScanError("unterminated-string", "Unterminated string literal", start)

    def _regex_end(self, start: int) -> int:
        src = self.source
        i = start + 1
        in_class = False
        while i < len(src):
            ch = src[i]
            if ch in "\r\n":
                break
            if ch == "\\":
                i += 2
                continue
            if ch == "[":
                in_class = True
            elif ch == "]":
                in_class = False
            elif ch == "/" and not in_class:
                i += 1
                while i < len(src) and (src[i].isalnum() or src[i] in "_$"):
                    i += 1
                return i
            i += 1
        raise ScanError("unterminated-regex", "Unterminated regular expression literal", start)

    def _template(self, body_start: int, token_start: int, newline: bool, gap: str, *, first: bool) -> Token:
        src = self.source
        i = body_start
        while i < len(src):
            ch = src[i]
            if ch == "\\":
                i += 2
                continue
            if ch == "`":
                part: TemplatePart = "full" if first else "tail"
                return Token("template", src[token_start:i + 1], token_start, i + 1, newline, gap, part)
            if ch == "$" and src.startswith("${", i):
                part = "head" if first else "middle"
                return Token("template", src[token_start:i + 2], token_start, i + 2, newline, gap, part)
            i += 1
        raise ScanError("unterminated-template", "Unterminated template literal", token_start)

    def template_continuation(self) -> Token:
        """Read the rest of a template literal after the `}` closing a substitution.

        The scanner must be positioned right after that `}`.
        """

        return self._emit(self._template(self.pos, self.pos - 1, False, "", first=False))

    # -- JSX -------------------------------------------------------------------------------

    def jsx_text(self) -> tuple[str, int]:
        """Read raw JSX text up to the next `<` or `{`.

        Returns:
            The text and its start offset.
        """

        src = self.source
        start = self.pos
        i = start
        while i < len(src) and src[i] not in "<{":
            if src[i] in ">}":
                raise ScanError(
                    "jsx-invalid-character",
                    f"Unexpected {src[i]!r} in JSX text; use {{'{src[i]}'}} or an HTML entity",
                    i,
                )
            i += 1
        if i >= len(src):
            raise ScanError("jsx-unterminated", "Unterminated JSX contents", start)
        self.pos = i
        return src[start:i], start

    def peek_char(self) -> str:
        return self.source[self.pos:self.pos + 1]
