"""TSX to JavaScript transform.

A single pass over the token stream that drops TypeScript-only syntax and lowers JSX to
`React.createElement` calls. It does not build a full syntax tree: it recognises the places where
types may appear (declarations, parameters, return positions, `as`/`satisfies`, type arguments)
and skips them with a small type grammar. Everything else is copied through with its original
spacing, minus comments.

The same pass feeds the static validator (syntax and lint diagnostics, import references) and
the compiler (output code), so a source the validator accepts always compiles.
"""

from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass, field
from typing import Callable, Literal

from lessonweaver.compilation.scanner import Diagnostic, ScanError, Scanner, Token

ImportKind = Literal["static", "side_effect", "type", "reexport", "dynamic", "require"]

_PAIRS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = frozenset(_PAIRS.values())

_KEYWORDS = frozenset(
    {
        "break", "case", "catch", "class", "const", "continue", "debugger", "default", "delete",
        "do", "else", "enum", "export", "extends", "finally", "for", "function", "if", "import",
        "in", "instanceof", "new", "return", "switch", "throw", "try", "typeof", "var", "void",
        "while", "with", "yield", "let", "await",
    }
)
_STATEMENT_STARTS = frozenset(
    {
        "const", "let", "var", "function", "class", "export", "import", "interface", "return",
        "if", "for", "while", "do", "switch", "try", "throw", "async",
    }
)
_TS_PARAM_MODIFIERS = frozenset({"public", "private", "protected", "readonly", "override"})
_TS_MEMBER_MODIFIERS = _TS_PARAM_MODIFIERS | {"abstract", "declare"}
_TYPE_OPERATORS = frozenset({"keyof", "unique", "readonly", "infer"})
_TS_DIRECTIVE_RE = re.compile(r"^(?://|/\*)\s*@ts-(ignore|expect-error|nocheck)\b(.*?)(?:\*/)?$", re.DOTALL)
_IDENT_RE = re.compile(r"^(?:[^\W\d]|\$)(?:\w|\$)*$")
_TS_COMMENT_MIN_DESCRIPTION = 10


@dataclass(frozen=True)
class ImportRef:
    """A module reference found in the source."""

    module: str
    kind: ImportKind
    line: int
    column: int


@dataclass
class TranspileResult:
    code: str
    errors: list[Diagnostic] = field(default_factory=list)
    lint: list[Diagnostic] = field(default_factory=list)
    imports: list[ImportRef] = field(default_factory=list)
    has_default_export: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors


class _Abort(Exception):
    def __init__(self, diagnostic: Diagnostic) -> None:
        super().__init__(diagnostic.message)
        self.diagnostic = diagnostic


def _ident_char(ch: str) -> bool:
    return bool(ch) and (ch.isalnum() or ch in "_$")


def _string_value(token: Token) -> str:
    # Module specifiers are plain; escape sequences are not expected here.
    return token.value[1:-1]


def clean_jsx_text(text: str) -> str | None:
    """Collapse JSX text the way React's JSX transform does.

    Lines are trimmed, lines that are only whitespace disappear, and the remaining lines are
    joined with single spaces. Returns None when nothing is left.
    """

    text = html.unescape(text)
    lines = re.split(r"\r\n|\n|\r", text)
    last_non_empty = 0
    for i, line in enumerate(lines):
        if re.search(r"[^ \t]", line):
            last_non_empty = i

    out: list[str] = []
    for i, line in enumerate(lines):
        trimmed = line.replace("\t", " ")
        if i != 0:
            trimmed = trimmed.lstrip(" ")
        if i != len(lines) - 1:
            trimmed = trimmed.rstrip(" ")
        if trimmed:
            if i != last_non_empty:
                trimmed += " "
            out.append(trimmed)
    joined = "".join(out)
    return joined or None


class _Transpiler:
    def __init__(self, source: str) -> None:
        self.s = Scanner(source)
        self.tok: Token = Token("eof", "", 0, 0)
        self.last: Token | None = None
        self.out: list[str] = []
        self._tail = ""
        self.lint: list[Diagnostic] = []
        self.imports: list[ImportRef] = []
        self.has_default_export = False
        self.react_bound = False
        self.uses_jsx = False
        self._handlers: dict[str, Callable[[], bool]] = {
            "import": self._kw_import,
            "export": self._kw_export,
            "interface": self._kw_interface,
            "type": self._kw_type,
            "enum": self._kw_enum,
            "declare": self._kw_declare,
            "namespace": self._kw_namespace,
            "module": self._kw_namespace,
            "abstract": self._kw_abstract,
            "function": self._kw_function,
            "class": self._kw_class,
            "const": self._kw_var,
            "let": self._kw_var,
            "var": self._kw_var,
            "catch": self._kw_catch,
            "as": self._kw_as,
            "satisfies": self._kw_as,
            "eval": self._kw_eval,
            "new": self._kw_new,
            "require": self._kw_require,
            "dangerouslySetInnerHTML": self._kw_dangerous,
        }

    # -- driver ----------------------------------------------------------------------------

    def run(self) -> TranspileResult:
        errors: list[Diagnostic] = []
        try:
            self._next()
            self._stream()
            if self.tok.kind != "eof":
                raise self._abort(self.tok, "unexpected-token", f"Unexpected '{self.tok.value}'")
        except _Abort as exc:
            errors.append(exc.diagnostic)

        self._check_ts_comments()
        if not errors and not self.has_default_export:
            line, column = self.s.location(0)
            self.lint.append(
                Diagnostic(
                    "missing-default-export",
                    "Lesson component must have a default export",
                    line,
                    column,
                )
            )

        code = ""
        if not errors:
            code = "".join(self.out).strip() + "\n"
            if self.uses_jsx and not self.react_bound:
                code = 'import * as React from "react";\n' + code

        seen: set[tuple[str, int, int]] = set()
        lint: list[Diagnostic] = []
        for d in self.lint:
            key = (d.code, d.line, d.column)
            if key not in seen:
                seen.add(key)
                lint.append(d)
        return TranspileResult(
            code=code,
            errors=errors,
            lint=lint,
            imports=self.imports,
            has_default_export=self.has_default_export,
        )

    # -- token plumbing --------------------------------------------------------------------

    def _abort(self, where: Token | int, code: str, message: str) -> _Abort:
        pos = where if isinstance(where, int) else where.start
        line, column = self.s.location(pos)
        return _Abort(Diagnostic(code, message, line, column))

    def _next(self, *, jsx_tag: bool = False) -> None:
        try:
            self.tok = self.s.next_token(jsx_tag=jsx_tag)
        except ScanError as exc:
            raise self._abort(exc.pos, exc.code, exc.message) from None

    def _mark(self) -> tuple:
        return self.s.mark(), self.tok, len(self.lint)

    def _reset(self, state: tuple) -> None:
        scanner_state, tok, lint_len = state
        self.s.reset(scanner_state)
        self.tok = tok
        del self.lint[lint_len:]

    def _lookahead(self, probe: Callable[[], bool]) -> bool:
        state = self._mark()
        try:
            return probe()
        except _Abort:
            return False
        finally:
            self._reset(state)

    def _attempt(self, probe: Callable[[], bool]) -> bool:
        state = self._mark()
        try:
            ok = probe()
        except _Abort:
            ok = False
        if not ok:
            self._reset(state)
        return ok

    def _peek(self, n: int = 1) -> Token:
        state = self._mark()
        try:
            for _ in range(n):
                self._next()
            return self.tok
        except _Abort:
            return Token("eof", "", self.tok.end, self.tok.end)
        finally:
            self._reset(state)

    def _at(self, value: str) -> bool:
        return self.tok.kind == "punct" and self.tok.value == value

    def _at_name(self, value: str | None = None) -> bool:
        return self.tok.kind == "name" and (value is None or self.tok.value == value)

    def _expect(self, value: str) -> None:
        if not self._at(value):
            if self.tok.kind == "eof":
                raise self._abort(self.tok, "unexpected-eof", f"'{value}' expected before end of input")
            raise self._abort(self.tok, "unexpected-token", f"'{value}' expected, found '{self.tok.value}'")

    # -- output ----------------------------------------------------------------------------

    def _write(self, gap: str, text: str) -> None:
        if not gap and text and _ident_char(self._tail) and _ident_char(text[0]):
            gap = " "
        chunk = gap + text
        if chunk:
            self.out.append(chunk)
            self._tail = chunk[-1]

    def _emit(self) -> None:
        self._write(self.tok.gap, self.tok.value)
        self.last = self.tok
        self._next()

    def _capture(self, body: Callable[[], None]) -> str:
        saved_out, saved_tail = self.out, self._tail
        self.out, self._tail = [], ""
        try:
            body()
            return "".join(self.out).strip()
        finally:
            self.out, self._tail = saved_out, saved_tail

    def _lint(self, tok: Token, code: str, message: str, severity: Literal["error", "warning"] = "error") -> None:
        line, column = self.s.location(tok.start)
        self.lint.append(Diagnostic(code, message, line, column, severity))

    # -- classification --------------------------------------------------------------------

    @staticmethod
    def _is_expr_end(tok: Token | None) -> bool:
        if tok is None:
            return False
        if tok.kind in ("num", "str", "regex", "private"):
            return True
        if tok.kind == "template":
            return tok.template in ("full", "tail")
        if tok.kind == "name":
            return tok.value not in _KEYWORDS
        return tok.kind == "punct" and tok.value in (")", "]")

    def _last_is(self, *values: str) -> bool:
        return self.last is not None and self.last.kind in ("punct", "name") and self.last.value in values

    # -- streaming -------------------------------------------------------------------------

    def _stream(
        self,
        stops: frozenset[str] = frozenset(),
        stop_if: Callable[[Token], bool] | None = None,
    ) -> None:
        """Copy tokens until a closing bracket of this level, a stop token, or end of input."""

        while True:
            t = self.tok
            if t.kind == "eof":
                return
            if t.kind == "punct" and (t.value in _CLOSERS or t.value in stops):
                return
            if stop_if is not None and stop_if(t):
                return
            self._element()

    def _element(self) -> None:
        t = self.tok
        if t.kind == "punct":
            v = t.value
            if v == "(":
                arrow_possible = not self._is_expr_end(self.last) or self._last_is("async")
                if arrow_possible and self._lookahead(self._arrow_params_ahead):
                    self._arrow_params()
                else:
                    self._bracketed()
            elif v in ("[", "{"):
                self._bracketed()
            elif v == "<":
                self._less_than()
            elif v == "!" and not t.nl_before and self._is_expr_end(self.last):
                self._next()
            elif v == "@":
                raise self._abort(t, "unsupported-syntax", "Decorators are not supported")
            else:
                self._emit()
            return

        if t.kind == "template":
            self._template_literal()
            return

        if t.kind == "name" and not self._last_is(".", "?."):
            handler = self._handlers.get(t.value)
            if handler is not None:
                is_key = (
                    t.value != "dangerouslySetInnerHTML"
                    and self._last_is("{", ",")
                    and self._peek().value == ":"
                )
                if not is_key and handler():
                    return
            if self._last_is("{", ",", "*", "async", "get", "set", "static") and self._peek().value in ("(", "<"):
                if self._lookahead(self._method_ahead):
                    self._method()
                    return
        self._emit()

    def _bracketed(self) -> None:
        closer = _PAIRS[self.tok.value]
        self._emit()
        self._stream()
        self._expect(closer)
        self._emit()

    def _template_literal(self) -> None:
        part = self.tok.template
        self._emit()
        while part in ("head", "middle"):
            self._stream()
            self._expect("}")
            try:
                self.tok = self.s.template_continuation()
            except ScanError as exc:
                raise self._abort(exc.pos, exc.code, exc.message) from None
            part = self.tok.template
            self._emit()

    def _end_statement(self, *, drop: bool = False) -> None:
        if self._at(";"):
            if drop:
                self._next()
            else:
                self._emit()
        elif not drop:
            self._write("", ";")

    # -- types -----------------------------------------------------------------------------

    def _skip_type(self, *, allow_conditional: bool = True) -> None:
        if self._at("|") or self._at("&"):
            self._next()
        self._skip_type_operator()
        while self._at("|") or self._at("&"):
            self._next()
            self._skip_type_operator()
        if allow_conditional and self._at_name("extends") and not self.tok.nl_before:
            self._next()
            self._skip_type(allow_conditional=False)
            self._expect("?")
            self._next()
            self._skip_type()
            self._expect(":")
            self._next()
            self._skip_type()

    def _skip_type_operator(self) -> None:
        while self._at_name() and self.tok.value in _TYPE_OPERATORS:
            nxt = self._peek()
            if nxt.kind in ("punct", "eof") and nxt.value not in ("(", "[", "{", "-"):
                break
            self._next()
        self._skip_primary_type()
        while self._at("[") and not self.tok.nl_before:
            self._next()
            if not self._at("]"):
                self._skip_type()
            self._expect("]")
            self._next()

    def _skip_primary_type(self) -> None:
        t = self.tok
        if t.kind == "punct":
            if t.value == "(":
                if self._lookahead(self._function_type_ahead):
                    self._skip_balanced()
                    self._expect("=>")
                    self._next()
                    self._skip_type()
                else:
                    self._next()
                    self._skip_type()
                    self._expect(")")
                    self._next()
                return
            if t.value == "<":
                self._skip_type_params()
                self._expect("(")
                self._skip_balanced()
                self._expect("=>")
                self._next()
                self._skip_type()
                return
            if t.value in ("{", "["):
                self._skip_balanced()
                return
            if t.value == "-" and self._peek().kind == "num":
                self._next()
                self._next()
                return
            raise self._abort(t, "unexpected-token", f"Type expected, found '{t.value}'")

        if t.kind in ("str", "num"):
            self._next()
            return
        if t.kind == "template":
            self._skip_template_type()
            return
        if t.kind != "name":
            raise self._abort(t, "unexpected-token", "Type expected")

        if t.value == "new":
            self._next()
            if self._at("<"):
                self._skip_type_params()
            self._expect("(")
            self._skip_balanced()
            self._expect("=>")
            self._next()
            self._skip_type()
            return
        if t.value == "typeof":
            self._next()
            if self._at_name("import"):
                self._next()
                self._expect("(")
                self._skip_balanced()
            else:
                self._skip_entity_name()
            if self._at("<") and not self.tok.nl_before:
                self._skip_type_args()
            return
        if t.value == "asserts" and self._peek().kind == "name" and not self._peek().nl_before:
            self._next()
            self._next()
            if self._at_name("is"):
                self._next()
                self._skip_type()
            return

        if t.value == "any":
            self._lint(t, "no-explicit-any", "Unexpected any. Specify a different type", "warning")
        self._skip_entity_name()
        if self._at("<") and not self.tok.nl_before:
            self._skip_type_args()
        if self._at_name("is") and not self.tok.nl_before:
            self._next()
            self._skip_type()

    def _skip_entity_name(self) -> None:
        if not self._at_name():
            raise self._abort(self.tok, "unexpected-token", "Identifier expected")
        self._next()
        while self._at("."):
            self._next()
            if not self._at_name():
                raise self._abort(self.tok, "unexpected-token", "Identifier expected")
            self._next()

    def _skip_template_type(self) -> None:
        part = self.tok.template
        self._next()
        while part in ("head", "middle"):
            self._skip_type()
            self._expect("}")
            try:
                self.tok = self.s.template_continuation()
            except ScanError as exc:
                raise self._abort(exc.pos, exc.code, exc.message) from None
            part = self.tok.template
            self._next()

    def _function_type_ahead(self) -> bool:
        self._skip_balanced()
        return self._at("=>")

    def _expect_gt(self) -> None:
        t = self.tok
        if t.kind == "punct" and t.value.startswith(">"):
            if t.value == ">":
                self._next()
            else:
                # `>>` closing nested type arguments
                self.tok = Token("punct", t.value[1:], t.start + 1, t.end)
            return
        raise self._abort(t, "unexpected-token", f"'>' expected, found '{t.value}'")

    def _skip_type_args(self) -> None:
        self._expect("<")
        self._next()
        while True:
            self._skip_type()
            if self._at(","):
                self._next()
                continue
            self._expect_gt()
            return

    def _skip_type_params(self) -> None:
        self._expect("<")
        self._next()
        while True:
            while self._at_name() and self.tok.value in ("const", "in", "out") and self._peek().kind == "name":
                self._next()
            if not self._at_name():
                raise self._abort(self.tok, "unexpected-token", "Type parameter declaration expected")
            self._next()
            if self._at_name("extends"):
                self._next()
                self._skip_type(allow_conditional=False)
            if self._at("="):
                self._next()
                self._skip_type()
            if self._at(","):
                self._next()
                if self.tok.kind == "punct" and self.tok.value.startswith(">"):
                    self._expect_gt()
                    return
                continue
            self._expect_gt()
            return

    def _skip_balanced(self) -> None:
        """Skip a bracketed group (or template literal) starting at the current token."""

        stack: list[str] = []
        while True:
            t = self.tok
            if t.kind == "eof":
                raise self._abort(t, "unexpected-eof", "Unexpected end of input")
            if t.kind == "punct" and t.value in _PAIRS:
                stack.append(_PAIRS[t.value])
            elif t.kind == "template" and t.template == "head":
                stack.append("${")
            elif t.kind == "punct" and t.value in _CLOSERS:
                expected = stack.pop() if stack else None
                if expected == "${" and t.value == "}":
                    try:
                        self.tok = self.s.template_continuation()
                    except ScanError as exc:
                        raise self._abort(exc.pos, exc.code, exc.message) from None
                    if self.tok.template == "middle":
                        stack.append("${")
                elif expected != t.value:
                    raise self._abort(t, "unexpected-token", f"Unexpected '{t.value}'")
            elif not stack:
                raise self._abort(t, "unexpected-token", "Bracket expected")
            self._next()
            if not stack:
                return

    def _skip_initializer(self) -> None:
        while not (self._at(",") or self._at(")")):
            t = self.tok
            if t.kind == "eof" or (t.kind == "punct" and t.value in _CLOSERS):
                raise self._abort(t, "unexpected-token", f"Unexpected '{t.value}'")
            if (t.kind == "punct" and t.value in _PAIRS) or (t.kind == "template" and t.template == "head"):
                self._skip_balanced()
            else:
                self._next()

    # -- parameters ------------------------------------------------------------------------

    def _skip_params(self) -> bool:
        """Skip a parenthesised parameter list; False when it cannot be one."""

        self._expect("(")
        self._next()
        while not self._at(")"):
            if self._at("..."):
                self._next()
            if self._at_name():
                self._next()
            elif self._at("{") or self._at("["):
                self._skip_balanced()
            else:
                return False
            if self._at("?"):
                self._next()
            if self._at(":"):
                self._next()
                self._skip_type()
            if self._at("="):
                self._next()
                self._skip_initializer()
            if self._at(","):
                self._next()
            elif not self._at(")"):
                return False
        self._next()
        return True

    def _arrow_params_ahead(self) -> bool:
        if not self._skip_params():
            return False
        if self._at(":"):
            self._next()
            self._skip_type()
        return self._at("=>") and not self.tok.nl_before

    def _method_ahead(self) -> bool:
        self._next()
        if self._at("<"):
            self._skip_type_params()
        if not self._skip_params():
            return False
        if self._at(":"):
            self._next()
            self._skip_type()
        return self._at("{")

    def _params(self) -> None:
        self._expect("(")
        self._emit()
        while True:
            if self._at(")"):
                self._emit()
                return
            t = self.tok
            if t.kind == "name" and t.value in _TS_PARAM_MODIFIERS and self._peek().kind == "name":
                raise self._abort(t, "unsupported-syntax", "Parameter properties are not supported")
            if self._at_name("this") and self._peek().value == ":":
                self._next()
                self._next()
                self._skip_type()
                if self._at(","):
                    self._next()
                continue
            if self._at("..."):
                self._emit()
            if self._at_name():
                if self.tok.value == "React":
                    self.react_bound = True
                self._emit()
            elif self._at("{") or self._at("["):
                self._bracketed()
            else:
                raise self._abort(self.tok, "unexpected-token", "Parameter declaration expected")
            if self._at("?"):
                self._next()
            if self._at(":"):
                self._next()
                self._skip_type()
            if self._at("="):
                self._emit()
                self._stream(stops=frozenset({","}))
            if self._at(","):
                self._emit()
            elif not self._at(")"):
                raise self._abort(self.tok, "unexpected-token", "',' or ')' expected")

    def _arrow_params(self) -> None:
        self._params()
        if self._at(":"):
            self._next()
            self._skip_type()

    def _method(self) -> None:
        self._emit()
        if self._at("<"):
            self._skip_type_params()
        self._params()
        if self._at(":"):
            self._next()
            self._skip_type()

    # -- `<`: comparison, type arguments, generic arrow or JSX ----------------------------

    def _less_than(self) -> None:
        if self._is_expr_end(self.last):
            if self._attempt(self._call_type_args):
                return
            self._emit()
            return
        if self._lookahead(self._generic_arrow_ahead):
            self._skip_type_params()
            return
        self._jsx()

    def _call_type_args(self) -> bool:
        self._skip_type_args()
        return self._at("(") or (self.tok.kind == "template" and not self.tok.nl_before)

    def _generic_arrow_ahead(self) -> bool:
        self._next()
        if not self._at_name():
            return False
        self._next()
        return self._at(",") or self._at_name("extends")

    # -- JSX -------------------------------------------------------------------------------

    def _jsx(self) -> None:
        lt = self.tok
        code = self._jsx_element()
        self._write(lt.gap, code)
        self.last = Token("punct", ")", lt.start, lt.start)
        self._next()

    def _jsx_element(self) -> str:
        """Lower one element; the scanner is left right after its final `>`."""

        self.uses_jsx = True
        lt = self.tok
        self._next(jsx_tag=True)
        if self._at(">"):
            children = self._jsx_children()
            self._next(jsx_tag=True)
            if not self._at(">"):
                raise self._abort(self.tok, "jsx-closing-tag-mismatch", "Expected corresponding closing tag for JSX fragment")
            return self._create_element("React.Fragment", [], children)

        if not self._at_name():
            raise self._abort(lt, "unexpected-token", "JSX element name expected")
        name = self._jsx_name()
        props = self._jsx_attributes()
        if self._at("/"):
            self._next(jsx_tag=True)
            self._expect(">")
            return self._create_element(self._jsx_type(name), props, [])

        self._expect(">")
        children = self._jsx_children()
        self._next(jsx_tag=True)
        closing_tok = self.tok
        closing = self._jsx_name() if self._at_name() else ""
        if closing != name:
            raise self._abort(
                closing_tok,
                "jsx-closing-tag-mismatch",
                f"Expected corresponding JSX closing tag for '{name}'",
            )
        self._expect(">")
        return self._create_element(self._jsx_type(name), props, children)

    def _jsx_name(self) -> str:
        parts = [self.tok.value]
        self._next(jsx_tag=True)
        while self._at(".") or self._at(":"):
            parts.append(self.tok.value)
            self._next(jsx_tag=True)
            if not self._at_name():
                raise self._abort(self.tok, "unexpected-token", "Identifier expected")
            parts.append(self.tok.value)
            self._next(jsx_tag=True)
        return "".join(parts)

    @staticmethod
    def _jsx_type(name: str) -> str:
        if name[0].islower() or "-" in name or ":" in name:
            return json.dumps(name)
        return name

    def _jsx_attributes(self) -> list[str]:
        props: list[str] = []
        while not (self._at(">") or self._at("/")):
            t = self.tok
            if t.kind == "eof":
                raise self._abort(t, "jsx-unterminated", "Unterminated JSX element")
            if self._at("{"):
                self._next()
                self._expect("...")
                self._next()
                props.append("..." + self._jsx_expression())
                self._next(jsx_tag=True)
                continue
            if not self._at_name():
                raise self._abort(t, "unexpected-token", "Identifier expected in JSX attributes")
            name = t.value
            self._next(jsx_tag=True)
            if self._at(":"):
                self._next(jsx_tag=True)
                name = f"{name}:{self.tok.value}"
                self._next(jsx_tag=True)
            if name == "dangerouslySetInnerHTML":
                self._lint(t, "banned-api", "dangerouslySetInnerHTML is not allowed in lesson components")

            value = "true"
            if self._at("="):
                self._next(jsx_tag=True)
                v = self.tok
                if v.kind == "str":
                    value = json.dumps(html.unescape(v.value[1:-1]), ensure_ascii=False)
                elif self._at("{"):
                    self._next()
                    if self._at("}"):
                        raise self._abort(v, "unexpected-token", "JSX attributes must only be assigned a non-empty expression")
                    value = self._jsx_expression()
                elif self._at("<"):
                    value = self._jsx_element()
                else:
                    raise self._abort(v, "unexpected-token", "JSX value should be either an expression or a quoted JSX text")
                self._next(jsx_tag=True)
            key = name if _IDENT_RE.match(name) else json.dumps(name)
            props.append(f"{key}: {value}")
        return props

    def _jsx_expression(self) -> str:
        self.last = Token("punct", "{", self.tok.start, self.tok.start)
        code = self._capture(self._stream)
        self._expect("}")
        return code

    def _jsx_children(self) -> list[str]:
        children: list[str] = []
        while True:
            try:
                text, _start = self.s.jsx_text()
            except ScanError as exc:
                raise self._abort(exc.pos, exc.code, exc.message) from None
            cleaned = clean_jsx_text(text)
            if cleaned is not None:
                children.append(json.dumps(cleaned, ensure_ascii=False))

            if self.s.peek_char() == "{":
                self._next()
                self._next()
                if self._at("}"):
                    continue
                if self._at("..."):
                    self._next()
                    children.append("..." + self._jsx_expression())
                else:
                    children.append(self._jsx_expression())
                continue

            self._next(jsx_tag=True)
            state = self.s.mark()
            try:
                nxt = self.s.next_token(jsx_tag=True)
            except ScanError as exc:
                raise self._abort(exc.pos, exc.code, exc.message) from None
            if nxt.kind == "punct" and nxt.value == "/":
                self.tok = nxt
                return children
            self.s.reset(state)
            children.append(self._jsx_element())

    @staticmethod
    def _create_element(type_code: str, props: list[str], children: list[str]) -> str:
        args = [type_code, "{ " + ", ".join(props) + " }" if props else "null", *children]
        return "React.createElement(" + ", ".join(args) + ")"

    # -- declarations and statements -------------------------------------------------------

    def _kw_import(self) -> bool:
        nxt = self._peek()
        if nxt.value == "(":
            arg = self._peek(2)
            if arg.kind == "str":
                self._record(arg, "dynamic")
            return False
        if nxt.value == ".":
            return False
        self._import_declaration()
        return True

    def _record(self, token: Token, kind: ImportKind) -> None:
        line, column = self.s.location(token.start)
        self.imports.append(ImportRef(_string_value(token), kind, line, column))

    def _import_declaration(self) -> None:
        start = self.tok
        self._next()
        if self.tok.kind == "str":
            module = self.tok
            self._record(module, "side_effect")
            self._write(start.gap, f"import {module.value}")
            self._next()
            self._end_statement()
            return

        type_only = False
        if self._at_name("type"):
            nxt = self._peek()
            if (nxt.kind == "name" and nxt.value != "from") or nxt.value in ("{", "*"):
                type_only = True
                self._next()

        default: str | None = None
        namespace: str | None = None
        named: list[tuple[str, bool]] | None = None
        if self._at_name() and self.tok.value != "from":
            default = self.tok.value
            self._next()
            if self._at("="):
                raise self._abort(self.tok, "unsupported-syntax", "'import x = require()' is not supported")
            if self._at(","):
                self._next()
        if self._at("*"):
            self._next()
            if not self._at_name("as"):
                raise self._abort(self.tok, "unexpected-token", "'as' expected")
            self._next()
            namespace = self.tok.value
            self._next()
        elif self._at("{"):
            named = self._specifiers()

        if not self._at_name("from"):
            raise self._abort(self.tok, "unexpected-token", "'from' expected")
        self._next()
        if self.tok.kind != "str":
            raise self._abort(self.tok, "unexpected-token", "Module specifier expected")
        module = self.tok
        self._next()
        if self._at_name() and self.tok.value in ("with", "assert") and not self.tok.nl_before:
            self._next()
            self._skip_balanced()

        self._record(module, "type" if type_only else "static")
        if type_only:
            self._end_statement(drop=True)
            return

        value_named = [text for text, is_type in named if not is_type] if named is not None else []
        if default is None and namespace is None and not value_named:
            # only type specifiers: nothing survives at runtime
            self._end_statement(drop=True)
            return

        parts: list[str] = []
        if default is not None:
            parts.append(default)
            if default == "React":
                self.react_bound = True
        if namespace is not None:
            parts.append(f"* as {namespace}")
            if namespace == "React":
                self.react_bound = True
        if value_named:
            parts.append("{ " + ", ".join(value_named) + " }")
        self._write(start.gap, f"import {', '.join(parts)} from {module.value}")
        self.last = module
        self._end_statement()

    def _specifiers(self) -> list[tuple[str, bool]]:
        self._expect("{")
        self._next()
        specs: list[tuple[str, bool]] = []
        while not self._at("}"):
            is_type = False
            if self._at_name("type"):
                nxt = self._peek()
                if nxt.kind in ("name", "str") and not (nxt.value == "as" and self._peek(2).kind != "name"):
                    is_type = True
                    self._next()
            if self.tok.kind not in ("name", "str"):
                raise self._abort(self.tok, "unexpected-token", "Identifier expected")
            text = self.tok.value
            self._next()
            if self._at_name("as"):
                self._next()
                text = f"{text} as {self.tok.value}"
                self._next()
            specs.append((text, is_type))
            if self._at(","):
                self._next()
            elif not self._at("}"):
                raise self._abort(self.tok, "unexpected-token", "',' expected")
        self._next()
        return specs

    def _kw_export(self) -> bool:
        start = self.tok
        nxt = self._peek()
        if nxt.kind == "name":
            if nxt.value == "type":
                after = self._peek(2)
                if after.value in ("{", "*"):
                    self._next()
                    self._next()
                    if self._at("*"):
                        self._next()
                        if self._at_name("as"):
                            self._next()
                            self._next()
                    else:
                        self._skip_balanced()
                    if self._at_name("from"):
                        self._next()
                        self._record(self.tok, "type")
                        self._next()
                    self._end_statement(drop=True)
                    return True
                self._next()
                if not self._kw_type():
                    raise self._abort(self.tok, "unexpected-token", "Declaration expected")
                return True
            if nxt.value == "interface":
                self._next()
                self._kw_interface()
                return True
            if nxt.value in ("enum", "declare", "namespace", "module"):
                raise self._abort(nxt, "unsupported-syntax", f"'{nxt.value}' declarations are not supported")
            if nxt.value == "const" and self._peek(2).value == "enum":
                raise self._abort(nxt, "unsupported-syntax", "'enum' declarations are not supported")
            if nxt.value == "default":
                self.has_default_export = True
                self._emit()
                self._emit()
                return True
            return False

        if nxt.value == "=":
            raise self._abort(nxt, "unsupported-syntax", "'export =' is not supported")
        if nxt.value == "{":
            self._next()
            specs = self._specifiers()
            module: Token | None = None
            if self._at_name("from"):
                self._next()
                module = self.tok
                self._record(module, "reexport")
                self._next()
            values = [text for text, is_type in specs if not is_type]
            if any(text == "default" or text.endswith(" as default") for text in values):
                self.has_default_export = True
            if specs and not values:
                self._end_statement(drop=True)
                return True
            clause = "export { " + ", ".join(values) + " }" if values else "export {}"
            if module is not None:
                clause += f" from {module.value}"
            self._write(start.gap, clause)
            self._end_statement()
            return True
        if nxt.value == "*":
            self._next()
            self._next()
            clause = "export *"
            if self._at_name("as"):
                self._next()
                clause += f" as {self.tok.value}"
                self._next()
            if not self._at_name("from"):
                raise self._abort(self.tok, "unexpected-token", "'from' expected")
            self._next()
            module = self.tok
            self._record(module, "reexport")
            self._next()
            self._write(start.gap, f"{clause} from {module.value}")
            self._end_statement()
            return True
        return False

    def _kw_interface(self) -> bool:
        nxt = self._peek()
        if nxt.kind != "name" or nxt.nl_before:
            return False
        self._next()
        self._next()
        while not self._at("{"):
            if self.tok.kind == "eof":
                raise self._abort(self.tok, "unexpected-eof", "'{' expected")
            if self._at("<"):
                self._skip_angle()
            else:
                self._next()
        self._skip_balanced()
        if self._at(";"):
            self._next()
        return True

    def _skip_angle(self) -> None:
        # interface heritage: `<T extends X>` or `Base<T>`
        if self._lookahead(lambda: (self._skip_type_params(), True)[1]):
            self._skip_type_params()
        else:
            self._skip_type_args()

    def _kw_type(self) -> bool:
        nxt = self._peek()
        if nxt.kind != "name" or nxt.nl_before:
            return False
        if self._peek(2).value not in ("=", "<"):
            return False
        self._next()
        self._next()
        if self._at("<"):
            self._skip_type_params()
        self._expect("=")
        self._next()
        self._skip_type()
        if self._at(";"):
            self._next()
        return True

    def _kw_enum(self) -> bool:
        if self._peek().kind != "name":
            return False
        raise self._abort(self.tok, "unsupported-syntax", "'enum' declarations are not supported; use a const object")

    def _kw_declare(self) -> bool:
        nxt = self._peek()
        if nxt.kind != "name" or nxt.nl_before:
            return False
        raise self._abort(self.tok, "unsupported-syntax", "Ambient 'declare' statements are not supported")

    def _kw_namespace(self) -> bool:
        nxt = self._peek()
        if nxt.kind not in ("name", "str") or nxt.nl_before:
            return False
        if self._peek(2).value not in ("{", "."):
            return False
        raise self._abort(self.tok, "unsupported-syntax", f"'{self.tok.value}' declarations are not supported")

    def _kw_abstract(self) -> bool:
        if self._peek().value != "class":
            return False
        self._next()
        return True

    def _kw_function(self) -> bool:
        self._emit()
        if self._at("*"):
            self._emit()
        if self._at_name():
            self._emit()
        if self._at("<"):
            self._skip_type_params()
        self._params()
        if self._at(":"):
            self._next()
            self._skip_type()
        if not self._at("{"):
            raise self._abort(self.tok, "unsupported-syntax", "Function declarations without a body are not supported")
        return True

    def _kw_class(self) -> bool:
        self._emit()
        if self._at_name() and self.tok.value not in ("extends", "implements"):
            self._emit()
        if self._at("<"):
            self._skip_type_params()
        if self._at_name("extends"):
            self._emit()
            while not (self._at("{") or self._at_name("implements")):
                if self.tok.kind == "eof":
                    raise self._abort(self.tok, "unexpected-eof", "'{' expected")
                if self._at("<"):
                    self._skip_type_args()
                elif self._at("("):
                    self._bracketed()
                else:
                    self._emit()
        if self._at_name("implements"):
            self._next()
            while not self._at("{"):
                if self.tok.kind == "eof":
                    raise self._abort(self.tok, "unexpected-eof", "'{' expected")
                if self._at("<"):
                    self._skip_type_args()
                else:
                    self._next()
        self._expect("{")
        self._class_body()
        return True

    def _class_body(self) -> None:
        self._emit()
        while not self._at("}"):
            t = self.tok
            if t.kind == "eof":
                raise self._abort(t, "unexpected-eof", "'}' expected")
            if self._at(";"):
                self._emit()
                continue
            while self._at_name() and self.tok.value in _TS_MEMBER_MODIFIERS:
                nxt = self._peek()
                if nxt.nl_before or not (nxt.kind in ("name", "private", "str", "num") or nxt.value in ("[", "*")):
                    break
                self._next()
            if self._at_name("static") and self._peek().value == "{":
                self._emit()
                self._bracketed()
                continue
            while self._at_name() and self.tok.value in ("static", "async", "get", "set", "accessor"):
                nxt = self._peek()
                if nxt.nl_before or nxt.value in ("(", "=", ":", ";", "?", "!", "<", "}"):
                    break
                self._emit()
            if self._at("*"):
                self._emit()

            if self._at("["):
                if self._lookahead(self._index_signature_ahead):
                    self._skip_balanced()
                    self._expect(":")
                    self._next()
                    self._skip_type()
                    if self._at(";"):
                        self._next()
                    continue
                self._bracketed()
            elif self.tok.kind in ("name", "private", "str", "num"):
                self._emit()
            else:
                raise self._abort(self.tok, "unexpected-token", "Class member expected")

            if self._at("?") or self._at("!"):
                self._next()
            if self._at("<"):
                self._skip_type_params()
            if self._at("("):
                self._params()
                if self._at(":"):
                    self._next()
                    self._skip_type()
                if not self._at("{"):
                    raise self._abort(self.tok, "unsupported-syntax", "Class methods without a body are not supported")
                self._bracketed()
                continue
            if self._at(":"):
                self._next()
                self._skip_type()
            if self._at("="):
                self._emit()
                self._stream(
                    stops=frozenset({";"}),
                    stop_if=lambda tok: tok.nl_before and tok.kind in ("name", "private"),
                )
            if self._at(";"):
                self._emit()
            elif not (self._at("}") or self.tok.nl_before):
                raise self._abort(self.tok, "unexpected-token", "';' expected")
        self._emit()

    def _index_signature_ahead(self) -> bool:
        self._next()
        if not self._at_name():
            return False
        self._next()
        return self._at(":")

    def _kw_var(self) -> bool:
        nxt = self._peek()
        if self.tok.value == "const" and nxt.kind == "name" and nxt.value == "enum":
            raise self._abort(nxt, "unsupported-syntax", "'const enum' declarations are not supported")
        if not (nxt.kind == "name" or nxt.value in ("{", "[")):
            return False
        self._emit()
        while True:
            if self._at_name():
                if self.tok.value == "React":
                    self.react_bound = True
                self._emit()
            elif self._at("{") or self._at("["):
                self._bracketed()
            else:
                raise self._abort(self.tok, "unexpected-token", "Variable declaration expected")
            if self._at("!"):
                self._next()
            if self._at(":"):
                self._next()
                self._skip_type()
            if self._at("="):
                self._emit()
                self._stream(
                    stops=frozenset({",", ";"}),
                    stop_if=lambda tok: tok.nl_before and tok.kind == "name" and tok.value in _STATEMENT_STARTS,
                )
            if self._at(","):
                self._emit()
                continue
            return True

    def _kw_catch(self) -> bool:
        if self._peek().value != "(":
            return False
        self._emit()
        self._emit()
        if self._at_name():
            self._emit()
        elif self._at("{") or self._at("["):
            self._bracketed()
        if self._at(":"):
            self._next()
            self._skip_type()
        self._expect(")")
        self._emit()
        return True

    def _kw_as(self) -> bool:
        if self.tok.nl_before:
            return False
        if not (self._is_expr_end(self.last) or self._last_is("}")):
            return False
        self._next()
        if self._at_name("const"):
            self._next()
        else:
            self._skip_type()
        return True

    def _kw_eval(self) -> bool:
        if self._peek().value == "(":
            self._lint(self.tok, "banned-api", "eval() is not allowed in lesson components")
        return False

    def _kw_new(self) -> bool:
        nxt = self._peek()
        if nxt.kind == "name" and nxt.value == "Function":
            self._lint(self.tok, "banned-api", "new Function() is not allowed in lesson components")
        return False

    def _kw_require(self) -> bool:
        if self._peek().value == "(":
            arg = self._peek(2)
            if arg.kind == "str":
                self._record(arg, "require")
        return False

    def _kw_dangerous(self) -> bool:
        self._lint(self.tok, "banned-api", "dangerouslySetInnerHTML is not allowed in lesson components")
        return False

    # -- comments --------------------------------------------------------------------------

    def _check_ts_comments(self) -> None:
        for comment in sorted(self.s.comments.values(), key=lambda c: c.start):
            m = _TS_DIRECTIVE_RE.match(comment.text.strip())
            if not m:
                continue
            directive, rest = m.group(1), m.group(2)
            line, column = self.s.location(comment.start)
            if directive == "nocheck":
                self.lint.append(
                    Diagnostic("ban-ts-comment", 'Do not use "@ts-nocheck" because it alters compilation errors', line, column)
                )
                continue
            description = rest.strip().lstrip(":-").strip()
            if len(description) < _TS_COMMENT_MIN_DESCRIPTION:
                self.lint.append(
                    Diagnostic(
                        "ban-ts-comment",
                        f'Include a description after the "@ts-{directive}" directive to explain why it is '
                        f"necessary (at least {_TS_COMMENT_MIN_DESCRIPTION} characters)",
                        line,
                        column,
                    )
                )


def transpile(source: str) -> TranspileResult:
    """Transform a TSX source into an ES module.

    Returns:
        TranspileResult: `code` is empty when `errors` is not.
    """

    return _Transpiler(source).run()
